"""
Pytest configuration for unit tests.

Sets up Python path for module imports.
"""

import sys
from pathlib import Path

# Go up: unit -> tests -> project root
project_dir = Path(__file__).parent.parent.parent
if str(project_dir) not in sys.path:
    sys.path.insert(0, str(project_dir))
