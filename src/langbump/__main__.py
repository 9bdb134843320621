"""Allow ``python -m langbump``."""
import sys

from .cli import main

sys.exit(main())
