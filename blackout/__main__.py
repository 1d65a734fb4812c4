import sys

from blackout.cli import main

sys.exit(main())
