"""Allow ``python -m src.nfftrace``."""

import sys

from src.nfftrace.cli import main

sys.exit(main())
