"""Allow ``python -m simple_bank``"""

import sys

from .cli import main


sys.exit(main())
