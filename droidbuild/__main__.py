import sys

from droidbuild.cli import main

sys.exit(main())
