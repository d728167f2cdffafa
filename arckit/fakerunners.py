"""An in-memory list of self-hosted runners served over a fake HTTP API."""

from __future__ import annotations

import copy
import json
import logging
import re
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Iterable
from urllib.parse import urlsplit

_OWNER = r"(?:repos/[^/]+/[^/]+|orgs/[^/]+)"
_LIST_PATH = re.compile(rf"^/{_OWNER}/actions/runners$")
_REMOVE_PATH = re.compile(rf"^/{_OWNER}/actions/runners/(?P<id>[^/]+)$")

OFFLINE_ID_BASE = 1000

_log = logging.getLogger(__name__)


def _runner(runner_id: int, name: str, status: str) -> dict[str, Any]:
    return {
        "id": runner_id,
        "name": name,
        "os": "linux",
        "status": status,
        "busy": False,
    }


class _RunnersServer:
    """A running HTTP server; close it, or use it as a context manager."""

    def __init__(self, runners: "RunnersList") -> None:
        self._httpd = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(runners))
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()

    @property
    def url(self) -> str:
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def close(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()
        self._thread.join()

    def __enter__(self) -> "_RunnersServer":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _make_handler(runners: "RunnersList") -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        def _dispatch(self) -> None:
            path = urlsplit(self.path).path
            if _LIST_PATH.match(path):
                body = json.dumps(runners.list_payload()).encode()
                self.send_response(200)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)
                return
            match = _REMOVE_PATH.match(path)
            if match:
                runners.remove(match["id"])
                self.send_response(200)
                self.send_header("Content-Length", "0")
                self.end_headers()
                return
            self.send_error(404)

        do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = _dispatch

        def log_message(self, format: str, *args: Any) -> None:
            _log.debug("%s - " + format, self.address_string(), *args)

    return Handler


class RunnersList:
    """Runners as the hosting service would list them."""

    def __init__(self) -> None:
        self._runners: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    @property
    def runners(self) -> list[dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._runners)

    def add(self, runner: dict[str, Any]) -> None:
        """Append a runner unless one with the same name is present."""
        with self._lock:
            if all(r["name"] != runner["name"] for r in self._runners):
                self._runners.append(dict(runner))

    def sync(self, names: Iterable[str]) -> None:
        """Replace the list with online runners of the given names."""
        with self._lock:
            self._runners = []
        for index, name in enumerate(names):
            self.add(_runner(index, name, "online"))

    def add_offline(self, names: Iterable[str]) -> None:
        """Add offline runners of the given names."""
        for index, name in enumerate(names):
            self.add(_runner(OFFLINE_ID_BASE + index, name, "offline"))

    def remove(self, runner_id: int | str) -> None:
        """Remove the runners whose id matches ``runner_id``."""
        wanted = str(runner_id)
        with self._lock:
            self._runners = [
                r
                for r in self._runners
                if r.get("id") is None or str(r["id"]) != wanted
            ]

    def list_payload(self) -> dict[str, Any]:
        """The body of a runner listing response."""
        with self._lock:
            return {
                "total_count": len(self._runners),
                "runners": copy.deepcopy(self._runners),
            }

    def serve(self) -> _RunnersServer:
        """Start serving the list over HTTP on a free local port."""
        return _RunnersServer(self)