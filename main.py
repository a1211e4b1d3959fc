#!/usr/bin/env python3
"""
RGW Usage Exporter - Main entry point.

Usage:
    python main.py --ak AK --sk SK --endpoint 127.0.0.1:8080 serve
    python main.py --ak AK --sk SK collect
    python main.py --ak AK --sk SK query --type usage --uid alice
"""

import sys

from rgw_exporter.cli import main

if __name__ == '__main__':
    sys.exit(main())
