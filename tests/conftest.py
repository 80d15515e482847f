# ruff: noqa: INP001
"""Pytest configuration shared across review workflow tests."""

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Deterministic settings for import-time initialization, regardless of shell env.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DB_AUTO_MIGRATE"] = "false"
os.environ["TRIGGER_TIMEOUT_SECONDS"] = "60"
