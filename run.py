#!/usr/bin/env python3
"""
Simple Bank Entry Point

Starts an interactive card banking session against a SQLite card store.

    python run.py -fileName card.s3db
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from simple_bank.cli import main


if __name__ == "__main__":
    sys.exit(main())
