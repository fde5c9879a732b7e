from __future__ import annotations

import json
import zipfile
from pathlib import Path
from typing import Any

from .config import (
    FETCH_TIMEOUT_SECONDS,
    META_TIMEOUT_SECONDS,
    PROJECT_JSON_FILENAME,
    SCRATCH_API_URL,
    SCRATCH_PROJECTS_URL,
)
from .errors import ArtifactError, Failure
from .fetch import RemoteFetcher


NOT_SHARED_MESSAGE = "This project is not shared publicly."


async def fetch_project_token(fetcher: RemoteFetcher, project_id: str) -> str:
    """Look up the access token the asset API needs for a shared project."""
    meta = await fetcher.fetch_json(f"{SCRATCH_API_URL}/projects/{project_id}", timeout=META_TIMEOUT_SECONDS)
    token = meta.get("project_token") if isinstance(meta, dict) else None
    if not token:
        raise ArtifactError(Failure.INPUT_INVALID, NOT_SHARED_MESSAGE)
    return str(token)


async def fetch_project_json(fetcher: RemoteFetcher, project_id: str) -> Any:
    token = await fetch_project_token(fetcher, project_id)
    return await fetcher.fetch_json(
        f"{SCRATCH_PROJECTS_URL}/{project_id}",
        timeout=FETCH_TIMEOUT_SECONDS,
        params={"token": token},
    )


def write_project_bundle(bundle_dir: Path, archive_path: Path, project: Any) -> Path:
    """Write project.json into the bundle and pack it into an .sb3 archive.

    The archive is fully closed before this returns, so it is safe to stream.
    """
    json_path = bundle_dir / PROJECT_JSON_FILENAME
    json_path.write_text(json.dumps(project, indent=2, ensure_ascii=False), encoding="utf-8")
    with zipfile.ZipFile(archive_path, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        zf.write(json_path, arcname=PROJECT_JSON_FILENAME)
    return archive_path
