import sys

from ._gr import main

sys.exit(main())
