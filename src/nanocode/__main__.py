import sys

from nanocode.cli import main

sys.exit(main())
