"""Pytest configuration for the scopestate test suite."""

import sys
from pathlib import Path

# Add the project root to path for src imports
sys.path.insert(0, str(Path(__file__).parent.parent))
