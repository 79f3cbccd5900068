import os
from datetime import datetime

import pytest

from scripts.purge_jobs import purge_jobs


@pytest.mark.asyncio
async def test_purge_removes_only_soft_deleted_jobs(job_store, db_session_factory, photos_root):
    kept = await job_store.create(user_id="u1", prompt="keep me")
    gone = await job_store.create(user_id="u1", prompt="drop me")
    gone.mark_completed("gone.png")
    gone.deleted_at = datetime.now()
    await job_store.save(gone)

    os.makedirs(gone.storage_dir(photos_root), exist_ok=True)
    artifact = os.path.join(gone.storage_dir(photos_root), "gone.png")
    with open(artifact, "wb") as f:
        f.write(b"png")

    with pytest.raises(SystemExit):
        await purge_jobs(yes=False, session_factory=db_session_factory)
    assert await job_store.get(gone.job_id) is not None

    counts = await purge_jobs(yes=True, remove_files=True, photos_root=photos_root, session_factory=db_session_factory)

    assert counts.deleted_jobs == 0
    assert counts.jobs == 1
    assert await job_store.get(kept.job_id) is not None
    assert await job_store.get(gone.job_id) is None
    assert not os.path.exists(artifact)
