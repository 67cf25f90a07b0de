"""
Entry point for running the scanner as a module.

Usage:
    python -m dtdscan scan ./src
    python -m dtdscan --help
"""

import sys
from dtdscan.cli import main

if __name__ == "__main__":
    sys.exit(main())
