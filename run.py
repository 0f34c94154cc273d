#!/usr/bin/env python3
"""Entry-point for the liverelay YouTube → Icecast relay."""

import sys

from liverelay.cli import main

if __name__ == "__main__":
    sys.exit(main())
