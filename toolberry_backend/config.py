from __future__ import annotations

import os
from pathlib import Path


# Root directory for all ephemeral artifacts.
# Default: project-local ./temp, wiped at startup and shutdown.
# Override with env var TOOLBERRY_TEMP_ROOT.
_root_raw = os.environ.get("TOOLBERRY_TEMP_ROOT")
if _root_raw and _root_raw.strip():
    TEMP_ROOT = Path(_root_raw)
else:
    # toolberry_backend/ -> project root
    TEMP_ROOT = Path(__file__).resolve().parent.parent / "temp"
TEMP_ROOT = TEMP_ROOT.resolve()

PUBLIC_DIR = Path(__file__).resolve().parent.parent / "public"

PORT = int(os.environ.get("PORT", "8080"))
HOST = os.environ.get("TOOLBERRY_HOST", "127.0.0.1")
LOG_LEVEL = os.environ.get("TOOLBERRY_LOG_LEVEL", "INFO").upper()

# Remote fetch limits.
FETCH_TIMEOUT_SECONDS = float(os.environ.get("TOOLBERRY_FETCH_TIMEOUT_SECONDS", "15"))
META_TIMEOUT_SECONDS = float(os.environ.get("TOOLBERRY_META_TIMEOUT_SECONDS", "10"))
MAX_REDIRECTS = int(os.environ.get("TOOLBERRY_MAX_REDIRECTS", "5"))
USER_AGENT = "Toolberry/1.0 (+https://github.com/toolberry)"

# Delay between the end of a transmission and the removal of its artifact.
CLEANUP_GRACE_SECONDS = float(os.environ.get("TOOLBERRY_CLEANUP_GRACE_SECONDS", "0"))

SCRATCH_API_URL = os.environ.get("TOOLBERRY_SCRATCH_API_URL", "https://api.scratch.mit.edu").rstrip("/")
SCRATCH_PROJECTS_URL = os.environ.get(
    "TOOLBERRY_SCRATCH_PROJECTS_URL", "https://projects.scratch.mit.edu"
).rstrip("/")

# QR rendering defaults.
QR_SIZE_PX = 500
QR_MARGIN = 2
QR_DARK_COLOR = "#000000"
QR_LIGHT_COLOR = "#ffffff"
QR_ERROR_CORRECTION = "M"

# Artifact kind -> file extension.
ARTIFACT_EXTENSIONS = {
    "page-snapshot": ".html",
    "project-archive": ".sb3",
    "qr-image": ".png",
}

# Subfolders of TEMP_ROOT, one per kind.
KIND_SUBDIRS = {
    "page-snapshot": "pages",
    "project-archive": "scratch",
    "qr-image": "qrcodes",
}

# Scratch bundle layout.
PROJECT_JSON_FILENAME = "project.json"
PROJECT_ARCHIVE_FILENAME = "project.sb3"
