"""Local viewer server for locshare.

Serves the short link redirect and session data as JSON so a map page (or
``curl``) can follow a shared link on the producing machine.
"""

from __future__ import annotations

import http.server
import json
import socketserver
import webbrowser
from typing import Any
from urllib.parse import quote, unquote, urlparse

from locshare.errors import NotFoundError
from locshare.lib.logging import get_logger
from locshare.lib.store import Store
from locshare.models.session import SessionStore
from locshare.models.shortlink import ShortLinkDirectory, link_stats, sort_newest_first
from locshare.services.viewer import (
    STATUS_LINK_NOT_FOUND,
    require_session,
    resolve_short_code,
    session_stats,
    session_view,
)

logger = get_logger("locshare.server")


class ViewerHandler(http.server.BaseHTTPRequestHandler):
    """HTTP request handler for the viewer."""

    store: Store  # Set by make_server()

    @property
    def sessions(self) -> SessionStore:
        return SessionStore(self.store)

    @property
    def links(self) -> ShortLinkDirectory:
        return ShortLinkDirectory(self.store)

    def do_GET(self) -> None:
        """Handle GET requests."""
        path = unquote(urlparse(self.path).path).rstrip("/") or "/"

        if path.startswith("/s/"):
            self._serve_short_code(path[len("/s/"):])
        elif path.startswith("/map/"):
            self._serve_session(path[len("/map/"):])
        elif path.startswith("/api/session/"):
            self._serve_session(path[len("/api/session/"):])
        elif path == "/api/sessions":
            self._send_json([s.to_dict() for s in self.sessions.list_sessions()])
        elif path == "/api/links":
            self._serve_links()
        else:
            self._send_json({"error": "Not Found"}, status=404)

    def _serve_short_code(self, code: str) -> None:
        """Record a click and redirect to the session's map."""
        resolution = resolve_short_code(self.links, self.sessions, code)
        if resolution.status == STATUS_LINK_NOT_FOUND or resolution.link is None:
            self._send_json(
                {"error": "Link not found", "status": resolution.status},
                status=404,
            )
            return

        self.send_response(302)
        self.send_header("Location", f"/map/{quote(resolution.link.session_id)}")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _serve_session(self, session_id: str) -> None:
        """Serve a session's statistics and map payload."""
        try:
            session = require_session(self.sessions, session_id)
        except NotFoundError:
            self._send_json(
                {"error": "Session not found. Make sure the tracker is running and the link is correct."},
                status=404,
            )
            return
        self._send_json({"stats": session_stats(session), "view": session_view(session)})

    def _serve_links(self) -> None:
        """Serve all short links, newest first, with totals."""
        links = sort_newest_first(self.links.list_links())
        self._send_json({
            "links": [link.to_dict() for link in links],
            "stats": link_stats(links),
        })

    def _send_json(self, data: Any, status: int = 200) -> None:
        """Send JSON response."""
        encoded = json.dumps(data, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class ViewerServer(socketserver.TCPServer):
    """TCP server that can rebind its port right after a restart."""

    allow_reuse_address = True


def make_server(store: Store, host: str = "127.0.0.1", port: int = 8080) -> ViewerServer:
    """Create (but do not start) the viewer server.

    Args:
        store: Store holding sessions and links.
        host: Server host.
        port: Server port (0 picks a free one).

    Returns:
        Bound TCP server.
    """
    handler = type("BoundViewerHandler", (ViewerHandler,), {"store": store})
    return ViewerServer((host, port), handler)


def start_server(
    store: Store,
    host: str = "127.0.0.1",
    port: int = 8080,
    open_browser: bool = False,
) -> None:
    """Start the viewer server and block until interrupted.

    Args:
        store: Store holding sessions and links.
        host: Server host.
        port: Server port.
        open_browser: Open the link listing in a browser.
    """
    with make_server(store, host, port) as httpd:
        url = f"http://{host}:{port}/api/links"
        logger.info("Viewer available at http://%s:%d/", host, port)
        logger.info("Press Ctrl+C to stop")

        if open_browser:
            webbrowser.open(url)

        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Viewer stopped")
