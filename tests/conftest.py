import sys
from pathlib import Path

import pytest

# The ``cia`` package and the root entry modules are imported from a checkout.
REPO_ROOT = str(Path(__file__).resolve().parents[1])
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

CONFIG_ENV_VARS = ("SHARED_VERSION", "SERVER_HOST", "SERVER_PORT", "LOG_LEVEL", "CIA_CONFIG_FILE")


@pytest.fixture(autouse=True)
def clear_config_env(monkeypatch):
    """Keep the developer's configuration variables out of every test."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
