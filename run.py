#!/usr/bin/env python3
"""
SCRATCH MINI Launcher
======================
Run this script to open the demo stage.
"""

import sys

from scratch_mini.main import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:] or ["run"]))
