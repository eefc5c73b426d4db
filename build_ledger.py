#!/usr/bin/env python3
"""Statement ledger builder.

Entry point script that wraps the package CLI so the ledger can be built
from a checkout without installing the package.

Usage:
    python build_ledger.py --input-dir ./downloads --notifications notifications.json

For full documentation and options:
    python build_ledger.py --help
"""

import sys
from pathlib import Path

# Add src to path for development installs
src_path = Path(__file__).parent / "src"
if src_path.exists():
    sys.path.insert(0, str(src_path))

from statement_ledger.cli import main

if __name__ == "__main__":
    sys.exit(main())
