import os
from pathlib import Path
import sys

import pytest

# Ensure project root is on sys.path for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Load .env into os.environ so integration tests can pick up keys
from core.config_adapter import DotEnvConfigSource  # noqa: E402

dotenv = DotEnvConfigSource(path=ROOT / ".env")
for key, val in dotenv.values().items():
    os.environ.setdefault(key, val)


@pytest.fixture
def isolated_config(monkeypatch):
    """Fresh config per test that never reads the developer's real .env."""
    from core import config as cfg
    from core import settings

    monkeypatch.setenv("DOTENV_PATH", "tests/.env.DO_NOT_USE")
    cfg._config_adapter.cache_clear()  # type: ignore[attr-defined]
    settings.get_pipeline_settings.cache_clear()
    settings.get_app_settings.cache_clear()
    yield monkeypatch
    cfg._config_adapter.cache_clear()  # type: ignore[attr-defined]
    settings.get_pipeline_settings.cache_clear()
    settings.get_app_settings.cache_clear()
