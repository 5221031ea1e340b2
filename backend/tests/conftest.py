import json
from pathlib import Path

import pytest
from httpx import AsyncClient, ASGITransport

from liga.core.config import Settings
from liga.main import create_app


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_settings(tmp_path):
    """Settings isolated from the environment: log sinks and public dir under tmp_path."""
    public = tmp_path / "public"
    public.mkdir()
    (public / "hello.txt").write_text("hola desde public")

    return Settings(
        _env_file=None,
        NODE_ENV="test",
        LOG_ERROR_FILE=str(tmp_path / "error.log"),
        LOG_COMBINED_FILE=str(tmp_path / "combined.log"),
        PUBLIC_DIR=str(public),
    )


@pytest.fixture
def make_app(test_settings):
    """Build an app with optional collaborator routers and setting overrides."""
    def _make(routers=None, presence=None, **overrides):
        config = test_settings.model_copy(update=overrides) if overrides else test_settings
        return create_app(config, routers=routers, presence=presence)
    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def read_records(path) -> list:
    """Parse a JSON-lines log sink written during a test."""
    path = Path(path)
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


@pytest.fixture
def log_records(test_settings):
    """Callable returning (error_records, combined_records)."""
    def _read():
        return read_records(test_settings.LOG_ERROR_FILE), read_records(test_settings.LOG_COMBINED_FILE)
    return _read
