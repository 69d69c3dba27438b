import sys

from idiolint.cli import main

sys.exit(main())
