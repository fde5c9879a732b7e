from __future__ import annotations

import json
import socket
from pathlib import Path
from typing import Callable

import httpx


Handler = Callable[[httpx.Request], httpx.Response]


class RemoteStub:
    """Routes outgoing requests by host and records every call."""

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.calls: list[httpx.Request] = []

    def route(self, host: str, handler: Handler) -> None:
        self.routes[host] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.routes.get(request.url.host)
        if handler is None:
            return httpx.Response(404, text="no route")
        return handler(request)


def json_response(payload: object, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )


def dns_failure(request: httpx.Request) -> httpx.Response:
    try:
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
    except socket.gaierror as e:
        raise httpx.ConnectError("[Errno -2] Name or service not known", request=request) from e


def connection_refused(request: httpx.Request) -> httpx.Response:
    try:
        raise ConnectionRefusedError(111, "Connection refused")
    except ConnectionRefusedError as e:
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request) from e


def read_timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


def leftover_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return [p for p in root.rglob("*") if p.is_file()]
