import sys

from surveysim.cli import main

sys.exit(main())
