import sys

from phpstyle.cli import main

sys.exit(main())
