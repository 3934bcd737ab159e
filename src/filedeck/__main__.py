"""Package entry point.

This module enables running the project with:

    python -m filedeck ...
"""

from __future__ import annotations

import sys

from filedeck.cli import main

if __name__ == "__main__":
    sys.exit(main())
