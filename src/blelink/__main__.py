import sys

from blelink.console import main

sys.exit(main())
