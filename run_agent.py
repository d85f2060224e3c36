#!/usr/bin/env python3
"""Entry point to run the alert pipeline without installing the package.

  python run_agent.py inbox samples/inbox.yaml
  python run_agent.py live "scrum master" -l London -s mock
"""
from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from jobalerts.cli import main

if __name__ == "__main__":
    sys.exit(main())
