from __future__ import annotations

import re
from pathlib import Path

from .config import ARTIFACT_EXTENSIONS


_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9]")
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_BARE_DOMAIN_RE = re.compile(r"^[\w.-]+\.[a-z]{2,}", re.IGNORECASE | re.ASCII)
_PROJECT_URL_RE = re.compile(r"projects/(\d+)")
_NON_DIGITS_RE = re.compile(r"\D")

# Keep generated names well under the usual 255 byte filename limit,
# leaving room for the disambiguator and extension.
MAX_NAME_LENGTH = 180


def sanitize_name(text: str) -> str:
    """Replace every character outside [A-Za-z0-9] with '_'.

    One '_' per replaced character, so 'https://example.com' becomes
    'https___example_com'. The result can never contain '.', '/' or '\\'.
    """
    cleaned = _UNSAFE_CHARS_RE.sub("_", str(text or ""))[:MAX_NAME_LENGTH]
    return cleaned or "file"


def artifact_name(text: str, kind: str) -> str:
    try:
        ext = ARTIFACT_EXTENSIONS[kind]
    except KeyError:
        raise ValueError(f"Unknown artifact kind: {kind}")
    return f"{sanitize_name(text)}{ext}"


def is_safe_basename(name: str) -> bool:
    """Allow only simple filenames (no directories, no '.' or '..')."""
    if not isinstance(name, str) or not name:
        return False
    if name in (".", ".."):
        return False
    if name != Path(name).name:
        return False
    if "/" in name or "\\" in name:
        return False
    return True


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays within base_dir.

    This defends against path traversal when building paths from user-controlled input.
    """
    base_dir = base_dir.resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if resolved == base_dir:
        return resolved
    if base_dir not in resolved.parents:
        raise ValueError("Path traversal attempt")
    return resolved


def has_http_scheme(text: str) -> bool:
    return bool(_SCHEME_RE.match(text or ""))


def complete_url(text: str) -> str:
    """Prefix https:// when the input has no scheme but looks like a bare domain."""
    text = text or ""
    if not has_http_scheme(text) and _BARE_DOMAIN_RE.match(text):
        return "https://" + text
    return text


def extract_project_id(text: str) -> str:
    """Pull a Scratch project id out of a raw id or a project URL.

    Returns an empty string when no digits are present.
    """
    text = text or ""
    match = _PROJECT_URL_RE.search(text)
    if match:
        return match.group(1)
    return _NON_DIGITS_RE.sub("", text)
