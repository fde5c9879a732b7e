from __future__ import annotations

import asyncio
import atexit
import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from starlette.responses import FileResponse
from starlette.types import Receive, Scope, Send

from .config import (
    ARTIFACT_EXTENSIONS,
    CLEANUP_GRACE_SECONDS,
    KIND_SUBDIRS,
    PROJECT_ARCHIVE_FILENAME,
)
from .security import artifact_name, is_safe_basename, safe_join, sanitize_name


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    kind: str
    path: Path
    download_name: str
    # Set for bundle kinds: the whole directory is removed instead of `path`.
    bundle_dir: Optional[Path] = None

    @property
    def disposal_target(self) -> Path:
        return self.bundle_dir if self.bundle_dir is not None else self.path


def _disambiguator() -> str:
    return f"{time.time_ns()}_{uuid.uuid4().hex[:8]}"


class EphemeralStore:
    """Owns every short-lived file the service writes.

    Lifecycle: init() once before serving, shutdown() once after. Paths handed
    out by allocate()/allocate_bundle() are unique per call, so concurrent
    requests never share a file even for identical input.
    """

    def __init__(self, root: Path, grace_seconds: float = CLEANUP_GRACE_SECONDS) -> None:
        self.root = Path(root).resolve()
        self.grace_seconds = max(0.0, grace_seconds)
        self._exit_hook_registered = False

    def init(self) -> None:
        # Clear anything a crashed/killed previous process left behind.
        self.sweep_orphans()
        self.root.mkdir(parents=True, exist_ok=True)

    def shutdown(self) -> None:
        self.sweep_orphans()

    def register_exit_hook(self) -> None:
        """Sweep on normal interpreter exit. Safe to call more than once."""
        if self._exit_hook_registered:
            return
        atexit.register(self.sweep_orphans)
        self._exit_hook_registered = True

    def sweep_orphans(self) -> bool:
        """Recursively delete the whole ephemeral root.

        Never raises: failing to sweep must not block startup or shutdown.
        Returns True when the root is gone afterwards.
        """
        try:
            shutil.rmtree(self.root)
            logger.info("Temporary files cleaned up: %s", self.root)
        except FileNotFoundError:
            pass
        except Exception:
            logger.exception("Sweep of %s failed", self.root)
        return not self.root.exists()

    def _kind_dir(self, kind: str) -> Path:
        if kind not in ARTIFACT_EXTENSIONS:
            raise ValueError(f"Unknown artifact kind: {kind}")
        directory = safe_join(self.root, KIND_SUBDIRS[kind])
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def allocate(self, source_text: str, kind: str, download_name: Optional[str] = None) -> Artifact:
        """Reserve a unique path for one request's output file.

        The file itself is not created; the caller writes it.
        """
        directory = self._kind_dir(kind)
        filename = f"{sanitize_name(source_text)}_{_disambiguator()}{ARTIFACT_EXTENSIONS[kind]}"
        if not is_safe_basename(filename):
            raise ValueError("Unsafe artifact name")
        return Artifact(
            kind=kind,
            path=safe_join(directory, filename),
            download_name=download_name or artifact_name(source_text, kind),
        )

    def allocate_bundle(self, project_id: str, download_name: str) -> Artifact:
        """Create a request-scoped scratch directory for a project archive."""
        directory = self._kind_dir("project-archive")
        dirname = f"{sanitize_name(project_id)}_{_disambiguator()}"
        if not is_safe_basename(dirname):
            raise ValueError("Unsafe bundle name")
        bundle_dir = safe_join(directory, dirname)
        bundle_dir.mkdir(parents=True, exist_ok=False)
        return Artifact(
            kind="project-archive",
            path=bundle_dir / PROJECT_ARCHIVE_FILENAME,
            download_name=download_name,
            bundle_dir=bundle_dir,
        )

    def dispose(self, artifact: Artifact) -> bool:
        """Remove an artifact (or its bundle directory).

        Idempotent: a target that is already gone counts as removed. Other
        failures are logged and left for the next sweep.
        """
        target = artifact.disposal_target
        try:
            if artifact.bundle_dir is not None:
                shutil.rmtree(target)
            else:
                target.unlink()
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning("Failed to delete %s: %s", target, e)
            return False
        return True

    def schedule_dispose(self, artifact: Artifact) -> None:
        if self.grace_seconds <= 0:
            self.dispose(artifact)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.dispose(artifact)
            return
        # Handles are not tracked; anything still pending at exit is left to the shutdown sweep.
        loop.call_later(self.grace_seconds, self.dispose, artifact)

    def deliver(self, artifact: Artifact, media_type: Optional[str] = None) -> "DisposingFileResponse":
        return DisposingFileResponse(self, artifact, media_type=media_type)


class DisposingFileResponse(FileResponse):
    """FileResponse that removes its artifact once transmission is over.

    Removal happens after the send finished or failed (including a client
    that went away), never while the file is still being streamed.
    """

    def __init__(self, store: EphemeralStore, artifact: Artifact, media_type: Optional[str] = None) -> None:
        super().__init__(
            artifact.path,
            media_type=media_type,
            filename=artifact.download_name,
            headers={"Cache-Control": "no-store", "X-Content-Type-Options": "nosniff"},
        )
        self.store = store
        self.artifact = artifact

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except BaseException as e:
            logger.error("Delivery of %s failed: %r", self.artifact.download_name, e)
            raise
        else:
            logger.info("Delivered %s", self.artifact.download_name)
        finally:
            self.store.schedule_dispose(self.artifact)
