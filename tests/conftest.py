# tests/conftest.py
"""
Global test bootstrap
- Points the app at a throwaway SQLite database and workspace root
  BEFORE any `app.*` module is imported (settings are read at import time)
- Keeps logs on the console only
- Pulls in the db/app/media fixtures
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set before importing the app)
# ──────────────────────────────────────────────────────────────────────────────
_TMP = Path(tempfile.mkdtemp(prefix="luminav-tests-"))
os.environ["SQLALCHEMY_DATABASE_URI"] = f"sqlite+aiosqlite:///{_TMP / 'test.db'}"
os.environ["WORKSPACE_ROOT"] = str(_TMP / "workspaces")
os.environ.setdefault("AWS_BUCKET_NAME", "test-bucket")
os.environ.setdefault("AWS_REGION", "eu-north-1")
os.environ["AWS_S3_ENDPOINT_URL"] = ""
os.environ["LOG_TO_FILE"] = "0"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["DB_CREATE_ALL"] = "false"
os.environ["CANCEL_ON_CLIENT_DISCONNECT"] = "false"
os.environ["PUBLISH_ROLLBACK_ON_FAILURE"] = "false"

# ──────────────────────────────────────────────────────────────────────────────
# 📦 Fixtures
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.db import *          # noqa: F401,F403,E402
from tests.fixtures.app import *         # noqa: F401,F403,E402
from tests.fixtures.media import *       # noqa: F401,F403,E402
