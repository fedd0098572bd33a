#!/usr/bin/env python
"""
Weather Tuner CLI - seamless looping rain and snow overlays

Usage:
    python main.py <command> [kind] [options]

Examples:
    python main.py export rain                  # 8s 1280x720 rain loop
    python main.py preview snow                 # Live window (pygame)
    python main.py presets                      # Show all presets
"""

import sys

from weather_tuner.cli import main


if __name__ == '__main__':
    sys.exit(main())
