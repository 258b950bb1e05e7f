#!/usr/bin/env python3
"""
Proctor Merge Scheduler

Combines completed test sessions now and then every ``merge_interval_hours``
(8 by default) until interrupted with Ctrl+C or SIGTERM. Equivalent to the
``proctor-merge`` console script.
"""

import sys
from pathlib import Path

# Ensure project root is on sys.path for ``proctor`` imports
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from proctor.services.merge.scheduler import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
