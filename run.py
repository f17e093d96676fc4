"""Entry point for the Novel Sync command-line tool."""

import sys

from novelsync.cli import main

if __name__ == "__main__":
    sys.exit(main())
