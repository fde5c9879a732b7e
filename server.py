from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from toolberry_backend.config import HOST, LOG_LEVEL, PORT, PUBLIC_DIR, TEMP_ROOT
from toolberry_backend.errors import ArtifactError, Failure, error_response
from toolberry_backend.fetch import RemoteFetcher, check_http_url
from toolberry_backend.qr import render_qr
from toolberry_backend.scratch import fetch_project_json, write_project_bundle
from toolberry_backend.security import complete_url, extract_project_id, has_http_scheme
from toolberry_backend.store import EphemeralStore


logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("toolberry")


PAGE_MESSAGES = {
    Failure.NOT_FOUND: "The page could not be found. Please check the URL.",
    Failure.REMOTE_ERROR: "Failed to fetch the HTML. Please check the URL.",
    Failure.LOCAL_FAILURE: "Failed to save the HTML.",
}

SCRATCH_MESSAGES = {
    Failure.NOT_FOUND: "The project could not be found. Please check the ID.",
    Failure.REMOTE_ERROR: "Failed to fetch the Scratch project.",
    Failure.LOCAL_FAILURE: "Failed to build the Scratch project archive.",
}

QR_FAILED_MESSAGE = "Failed to generate the QR code."


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Sweep leftovers from a previous run before accepting requests.
    # uvicorn turns SIGINT/SIGTERM into the shutdown half of this context.
    store = EphemeralStore(TEMP_ROOT)
    store.init()
    store.register_exit_hook()
    app.state.store = store
    app.state.fetcher = RemoteFetcher()
    logger.info("Toolberry is ready; temporary files go to %s", store.root)
    try:
        yield
    finally:
        store.shutdown()


app = FastAPI(lifespan=lifespan)

# Allow the browser app to call the API even when index.html is opened from disk
# (file:// pages send Origin: null, which otherwise fails CORS).
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


@app.middleware("http")
async def _no_cache_static_assets(request: Request, call_next):
    response = await call_next(request)
    path = (request.url.path or "").lower()
    # Make local iteration predictable: ensure browsers always re-fetch edited assets.
    if path == "/" or path.endswith((".css", ".js", ".html")):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(ArtifactError)
async def _artifact_error_handler(request: Request, exc: ArtifactError) -> JSONResponse:
    if exc.failure is Failure.LOCAL_FAILURE:
        logger.error("[%s] %s: %s", request.url.path, exc.failure.value, exc.message, exc_info=exc)
    else:
        logger.warning("[%s] %s: %s (cause: %r)", request.url.path, exc.failure.value, exc.message, exc.__cause__)
    return error_response(exc)


def get_store(request: Request) -> EphemeralStore:
    return request.app.state.store


def get_fetcher(request: Request) -> RemoteFetcher:
    return request.app.state.fetcher


@app.get("/healthz")
async def healthz() -> JSONResponse:
    return JSONResponse({"ok": True})


@app.get("/download")
async def download_page(
    url: Optional[str] = None,
    store: EphemeralStore = Depends(get_store),
    fetcher: RemoteFetcher = Depends(get_fetcher),
) -> Response:
    """Fetch a web page and return it as an .html download."""
    if not url or not url.strip():
        raise ArtifactError(Failure.INPUT_INVALID, "Please enter a URL.")

    target = complete_url(url.strip())
    if not has_http_scheme(target):
        raise ArtifactError(Failure.INPUT_INVALID, "Please enter a valid http(s) URL.")
    check_http_url(target)

    try:
        response = await fetcher.fetch(target)
    except ArtifactError as e:
        raise e.localize(PAGE_MESSAGES)

    artifact = None
    try:
        artifact = store.allocate(target, "page-snapshot")
        await run_in_threadpool(artifact.path.write_text, response.text, encoding="utf-8")
    except Exception as e:
        if artifact is not None:
            store.dispose(artifact)
        raise ArtifactError(Failure.LOCAL_FAILURE, PAGE_MESSAGES[Failure.LOCAL_FAILURE]) from e

    return store.deliver(artifact, media_type="text/html; charset=utf-8")


@app.get("/scratch-download/{project_ref:path}")
async def download_scratch_project(
    project_ref: str,
    store: EphemeralStore = Depends(get_store),
    fetcher: RemoteFetcher = Depends(get_fetcher),
) -> Response:
    """Repackage a shared Scratch project as an .sb3 archive.

    `project_ref` may be a bare id or a full project URL.
    """
    project_id = extract_project_id(project_ref)
    if not project_id:
        raise ArtifactError(Failure.INPUT_INVALID, "Please enter a project ID or URL.")

    try:
        artifact = store.allocate_bundle(project_id, f"scratch-project-{project_id}.sb3")
    except OSError as e:
        raise ArtifactError(Failure.LOCAL_FAILURE, SCRATCH_MESSAGES[Failure.LOCAL_FAILURE]) from e

    try:
        project = await fetch_project_json(fetcher, project_id)
        await run_in_threadpool(write_project_bundle, artifact.bundle_dir, artifact.path, project)
    except ArtifactError as e:
        store.dispose(artifact)
        raise e.localize(SCRATCH_MESSAGES)
    except Exception as e:
        store.dispose(artifact)
        raise ArtifactError(Failure.LOCAL_FAILURE, SCRATCH_MESSAGES[Failure.LOCAL_FAILURE]) from e

    return store.deliver(artifact, media_type="application/x.scratch.sb3")


@app.get("/qrcode")
async def make_qrcode(
    text: Optional[str] = None,
    store: EphemeralStore = Depends(get_store),
) -> Response:
    if not text or not text.strip():
        raise ArtifactError(Failure.INPUT_INVALID, "Please enter text or a URL.")

    artifact = None
    try:
        artifact = store.allocate("qr", "qr-image", download_name="qrcode.png")
        await run_in_threadpool(render_qr, complete_url(text), artifact.path)
    except Exception as e:
        if artifact is not None:
            store.dispose(artifact)
        raise ArtifactError(Failure.LOCAL_FAILURE, QR_FAILED_MESSAGE) from e

    return store.deliver(artifact, media_type="image/png")


# Static file hosting (so you can open http://localhost:8080/)
# Note: define API routes above, then mount static at '/'.
if PUBLIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=str(PUBLIC_DIR), html=True), name="static")


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    uvicorn.run("server:app", host=HOST, port=PORT, reload=False)
