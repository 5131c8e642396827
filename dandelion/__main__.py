import sys

from dandelion.cli import main

sys.exit(main())
