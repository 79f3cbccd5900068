import os
import tempfile

# Settings are read at import time, point them at throwaway locations first.
_TMP_DIR = tempfile.mkdtemp(prefix="artiste-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["PHOTOS_ROOT"] = os.path.join(_TMP_DIR, "photos")
os.environ["IMAGE_GENERATION_BACKEND"] = "comfyui"
os.environ.pop("PEER_URL", None)
os.environ.pop("BROADCAST_TOKEN", None)

import pytest
import pytest_asyncio

from artiste.db import engine, AsyncSessionLocal
from artiste.models import Base
from artiste.services.jobs import JobStore


@pytest_asyncio.fixture
async def db_session_factory():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield AsyncSessionLocal
    await engine.dispose()


@pytest_asyncio.fixture
async def job_store(db_session_factory):
    return JobStore(db_session_factory)


@pytest.fixture
def photos_root(tmp_path):
    root = tmp_path / "photos"
    root.mkdir()
    return str(root)
