"""
pytest configuration for dnsperf tests

This file ensures tests can find the dnsperf module regardless of environment
"""

import sys
from pathlib import Path

# Add parent directory to path so tests can import dnsperf
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))
