"""Backend utilities for the Toolberry download endpoints.

This package keeps FastAPI route handlers thin:
- ephemeral artifact lifecycle (allocate, deliver, dispose, sweep)
- safe naming / path handling for user-controlled input
- remote fetch with one failure classification shared by every endpoint
- Scratch project bundling and QR rendering

Every file this package writes lives under the ephemeral root and is removed
once its request finishes. Nothing here is meant to survive a restart.
"""
