"""Allow ``python -m hostfuzz``."""

import sys

from hostfuzz.cli import main

sys.exit(main())
