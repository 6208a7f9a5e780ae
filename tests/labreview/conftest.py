import pytest
from httpx import ASGITransport, AsyncClient

from labreview.config import Settings
from labreview.container import build_container
from labreview.infra.db.inmemory import build_inmemory_repositories
from labreview.main import create_app


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        session_backend="memory",
        functions_backend="local",
        interpretation_backend="demo",
        pdf_text_backend="demo",
        use_sql_repos=False,
        pdf_upload_dir=tmp_path / "uploads",
        max_upload_bytes=1024 * 1024,
        cors_allow_origins="*",
    )


@pytest.fixture
def repositories():
    return build_inmemory_repositories()


@pytest.fixture
async def container(test_settings, repositories):
    container = build_container(test_settings, repositories=repositories)
    yield container
    await container.aclose()


@pytest.fixture
async def client(container):
    app = create_app(container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
