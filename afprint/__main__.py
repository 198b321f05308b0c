import sys

from afprint.cli import main

sys.exit(main())
