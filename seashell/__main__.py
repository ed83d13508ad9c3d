import sys

from seashell.cli import main

sys.exit(main())
