#!/usr/bin/env python3
"""
Entry point used by cron to ingest regional news.

Usage:
    python3 scripts/ingest_news.py --trigger scheduled --priority high
    python3 scripts/ingest_news.py --trigger manual --include-low-priority --limit-per-source 5
"""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.regional_news.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
