"""HTTP health and status server."""

from __future__ import annotations

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable

from ratebot.conversion.worker import ConversionWorker
from ratebot.rates.store import RateStore
from ratebot.session.manager import SessionManager


class HealthServer:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        bot_name: str,
        version: str,
        session: SessionManager,
        worker: ConversionWorker,
        store: RateStore,
        contacts_provider: Callable[[], int] | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._bot_name = bot_name
        self._version = version
        self._session = session
        self._worker = worker
        self._store = store
        self._contacts_provider = contacts_provider or (lambda: 0)
        self._started_at = time.time()
        self._thread: threading.Thread | None = None
        self._httpd: ThreadingHTTPServer | None = None

    @property
    def port(self) -> int:
        if self._httpd is not None:
            return int(self._httpd.server_address[1])
        return self._port

    def start(self) -> None:
        handler_cls = self._build_handler()
        self._httpd = ThreadingHTTPServer((self._host, self._port), handler_cls)
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=2)
        self._httpd = None
        self._thread = None

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok" if self._session.is_connected() else "degraded",
            "bot": self._bot_name,
            "session": self._session.state.value,
            "uptime": int(time.time() - self._started_at),
        }

    def status(self) -> dict[str, Any]:
        return {
            "bot": self._bot_name,
            "version": self._version,
            "session": self._session.state.value,
            "session_restarts": self._session.restarts,
            "queue_pending": self._worker.pending(),
            "queue_capacity": self._worker.capacity,
            "cached_bases": self._store.cached_bases(),
            "contacts": self._contacts_provider(),
        }

    def _build_handler(self) -> type[BaseHTTPRequestHandler]:
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                path = self.path.split("?")[0]
                if path == "/health":
                    payload = server.health()
                    self._write_json(200 if payload["status"] == "ok" else 503, payload)
                    return
                if path == "/status":
                    self._write_json(200, server.status())
                    return
                self._write_json(404, {"error": "Not found"})

            def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
                # Keep request noise out of the bot log.
                _ = (format, args)
                return

            def _write_json(self, status_code: int, payload: dict[str, Any]) -> None:
                encoded = json.dumps(payload, ensure_ascii=True).encode("utf-8")
                self.send_response(status_code)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(encoded)))
                self.end_headers()
                self.wfile.write(encoded)

        return Handler
