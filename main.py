#!/usr/bin/env python3
"""
Sheet Recon - Main Entry Point
Reconcile two spreadsheets from the command line.
"""

import sys

from sheetrecon.cli import main


if __name__ == "__main__":
    sys.exit(main())
