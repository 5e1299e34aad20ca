"""Allow ``python -m rateprowler``."""

import sys

from rateprowler.app import main

sys.exit(main())
