#!/usr/bin/env python3
"""
httpdouble Standalone Server

Run a mock server from a source checkout without installing the package.

Examples:
    python3 httpdouble-server.py --port 5000
    python3 httpdouble-server.py --port 5000 --expose --static-mock-dir ./mocks
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from httpdouble.cli import main


if __name__ == '__main__':
    sys.exit(main())
