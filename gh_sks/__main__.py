import sys

from gh_sks.cli import main

sys.exit(main())
