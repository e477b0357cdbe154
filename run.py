#!/usr/bin/env python3
"""
Game Client Launcher

Launches several game clients side by side for local multiplayer testing.

Usage:
    python run.py [count] [options] [-- client args...]
"""

import sys

from clientgrid.launcher.main import main

if __name__ == "__main__":
    sys.exit(main())
