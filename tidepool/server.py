"""Development server for Tidepool.

Serves the built site with live reload:
- Watches the source tree and rebuilds after a quiet period with no further changes.
- Injects a polling script into HTML responses; the page reloads itself when
  `/__reload__` answers "reload".
- Rejects missing paths with a 404 and unreadable files with a 500.

Key classes:
- ReloadFlag: Lock-guarded boolean shared between the rebuild loop and HTTP handlers.
- RebuildLoop: Owns the debounce state machine and runs rebuilds one at a time.
- SiteWatcher: Connects a watchdog observer to a RebuildLoop.
- DevServer: Initial build, watcher and HTTP server together.
- _ChangeHandler: File system event handler that forwards events to the loop.
- _ReloadHandler: HTTP request handler that serves the destination directory.
"""

from __future__ import annotations

import functools
import io
import logging
import os
import queue
import threading
import time
import webbrowser
from collections.abc import Callable, Iterable
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import DEFAULT_DESTINATION, build_site
from .html_utils import RELOAD_PATH, inject_reload_script

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3

# watchdog reports renames as "moved"; they count as modifications.
QUALIFYING_EVENT_TYPES = frozenset({"created", "modified", "deleted", "moved"})


class ReloadFlag:
    """Boolean telling polling clients that a rebuild happened.

    The flag is delivered at most once: `consume` reads and clears it under the
    same lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending = False

    def set(self) -> None:
        with self._lock:
            self._pending = True

    def consume(self) -> bool:
        """Return whether the flag was set, clearing it."""
        with self._lock:
            pending, self._pending = self._pending, False
        return pending


class RebuildLoop:
    """Debounce file-system events into single rebuilds.

    The watcher callback only calls `submit`. Everything else (filtering, the
    quiet-window timer, setting the reload flag and rebuilding) happens on the
    thread that runs `run`, so at most one rebuild executes at a time. Events that
    arrive during a rebuild wait in the queue and are coalesced into the next batch.

    States: idle (waiting for a qualifying event), debouncing (waiting for the quiet
    window to pass), rebuilding. Putting None on the queue closes the loop.

    Attributes:
        rebuild: Callable performing one full build.
        debounce_seconds: Length of the quiet window.
        reload_flag: Flag set before each rebuild, if any.
        events: Unbounded channel from the watcher callback.
        closed: True once the channel has been closed.
    """

    def __init__(
        self,
        rebuild: Callable[[], object],
        ignored_dirs: Iterable[Path] = (),
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        reload_flag: ReloadFlag | None = None,
    ):
        self.rebuild = rebuild
        self.debounce_seconds = debounce_seconds
        self.reload_flag = reload_flag
        self.events: queue.Queue = queue.Queue()
        self.closed = False
        self._ignored_dirs = [Path(path).resolve() for path in ignored_dirs]

    def submit(self, event) -> None:
        self.events.put(event)

    def close(self) -> None:
        self.events.put(None)

    def qualifies(self, event) -> bool:
        """Check whether an event should trigger a rebuild.

        Directory events, kinds other than create/modify/delete/move, and changes
        under an ignored directory (the build output) are discarded.
        """
        if getattr(event, "is_directory", False):
            return False
        if getattr(event, "event_type", None) not in QUALIFYING_EVENT_TYPES:
            return False
        paths = [event.src_path]
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            paths.append(dest_path)
        return any(not self._is_ignored(path) for path in paths)

    def _is_ignored(self, raw_path) -> bool:
        path = Path(os.fsdecode(raw_path)).resolve()
        for ignored in self._ignored_dirs:
            try:
                path.relative_to(ignored)
                return True
            except ValueError:
                continue
        return False

    def run(self) -> None:
        """Process change batches until the channel is closed."""
        while not self.closed:
            self.process_batch()

    def process_batch(self, timeout: float | None = None) -> bool:
        """Wait for one batch of changes and rebuild once.

        Args:
            timeout: Maximum seconds to wait for the first qualifying event; None
                waits forever.

        Returns:
            True if a rebuild ran.
        """
        if not self._wait_for_change(timeout):
            return False
        if not self._debounce():
            return False
        if self.reload_flag is not None:
            self.reload_flag.set()
        self._rebuild_safely()
        return True

    def _wait_for_change(self, timeout: float | None) -> bool:
        while True:
            try:
                event = self.events.get(timeout=timeout)
            except queue.Empty:
                return False
            if event is None:
                self.closed = True
                return False
            if self.qualifies(event):
                logger.debug("Change detected: %s", event.src_path)
                return True

    def _debounce(self) -> bool:
        deadline = time.monotonic() + self.debounce_seconds
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            try:
                event = self.events.get(timeout=remaining)
            except queue.Empty:
                return True
            if event is None:
                self.closed = True
                return False
            if self.qualifies(event):
                deadline = time.monotonic() + self.debounce_seconds

    def _rebuild_safely(self) -> None:
        logger.info("Change detected; rebuilding...")
        try:
            self.rebuild()
        except Exception:
            # The previous output keeps being served until a rebuild succeeds.
            logger.exception("Rebuild failed")


class _ChangeHandler(FileSystemEventHandler):
    """Forwards every raw watchdog event to a RebuildLoop."""

    def __init__(self, loop: RebuildLoop):
        super().__init__()
        self.loop = loop

    def on_any_event(self, event):
        self.loop.submit(event)


class SiteWatcher:
    """Rebuilds the site whenever the source tree changes.

    Attributes:
        source: Root directory of the site sources.
        destination: Build output directory (ignored by the watcher).
        include_drafts: Whether rebuilds include drafts.
        loop: The debounce/rebuild loop.
    """

    def __init__(
        self,
        source: Path,
        destination: Path,
        include_drafts: bool = False,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        reload_flag: ReloadFlag | None = None,
    ):
        self.source = source
        self.destination = destination
        self.include_drafts = include_drafts
        self.loop = RebuildLoop(
            self.rebuild,
            ignored_dirs=[destination],
            debounce_seconds=debounce_seconds,
            reload_flag=reload_flag,
        )
        self._observer: Observer | None = None
        self._thread: threading.Thread | None = None

    def rebuild(self) -> None:
        result = build_site(self.source, self.destination, include_drafts=self.include_drafts)
        logger.info("Rebuilt %d pages into %s", len(result.pages), result.destination)

    def start(self) -> None:
        handler = _ChangeHandler(self.loop)
        observer = Observer()
        observer.schedule(handler, str(self.source), recursive=True)
        observer.start()
        self._observer = observer
        self._thread = threading.Thread(target=self.loop.run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
        self.loop.close()


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that serves the build output with live reload.

    Attributes:
        reload_flag: Flag consumed by requests to the reload endpoint.
    """

    reload_flag: ReloadFlag | None = None

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):  # noqa: A002 - signature from BaseHTTPRequestHandler
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self):
        if urlsplit(self.path).path == RELOAD_PATH:
            self._serve_reload_status()
            return
        super().do_GET()

    def _serve_reload_status(self) -> None:
        """Answer "reload" once per rebuild, "ok" otherwise."""
        flag = self.reload_flag
        body = b"reload" if flag is not None and flag.consume() else b"ok"
        self.send_response(200)
        self.send_header("Content-type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def send_head(self):
        path = Path(self.translate_path(self.path))
        if path.is_dir():
            parts = urlsplit(self.path)
            if not parts.path.endswith("/"):
                # Directory URLs always end in a slash.
                location = urlunsplit((parts[0], parts[1], parts[2] + "/", parts[3], parts[4]))
                self.send_response(301)
                self.send_header("Location", location)
                self.send_header("Content-Length", "0")
                self.end_headers()
                return None
            path = path / "index.html"
        if not path.is_file():
            self.send_error(404, "File not found")
            return None
        try:
            payload = path.read_bytes()
        except OSError:
            self.send_error(500, "Internal Server Error")
            return None

        if path.suffix.lower() == ".html":
            content = inject_reload_script(payload.decode("utf-8", errors="replace"))
            payload = content.encode("utf-8")
            content_type = "text/html; charset=utf-8"
        else:
            content_type = self.guess_type(str(path))
        self.send_response(200)
        self.send_header("Content-type", content_type)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        return io.BytesIO(payload)


class DevServer:
    """Development server with live reload functionality.

    Attributes:
        source: Root directory of the site sources.
        destination: Directory where the built site is served from.
        host: Interface the HTTP server binds to.
        port: Port for the HTTP server.
        include_drafts: Whether builds include drafts.
        reload_flag: Flag shared by the rebuild loop and HTTP handlers.
        watcher: Watcher that rebuilds on change.
    """

    def __init__(
        self,
        source: Path,
        host: str = "127.0.0.1",
        port: int = 4000,
        include_drafts: bool = False,
        destination: Path | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.source = source.resolve()
        self.destination = (destination or self.source / DEFAULT_DESTINATION).resolve()
        self.host = host
        self.port = port
        self.include_drafts = include_drafts
        self.reload_flag = ReloadFlag()
        self.watcher = SiteWatcher(
            self.source,
            self.destination,
            include_drafts=include_drafts,
            debounce_seconds=debounce_seconds,
            reload_flag=self.reload_flag,
        )
        self._httpd: ThreadingHTTPServer | None = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    def start(self, open_browser: bool = False) -> None:  # pragma: no cover - integration path
        build_site(self.source, self.destination, include_drafts=self.include_drafts)
        self._httpd = self._make_http_server()
        threading.Thread(target=self._httpd.serve_forever, daemon=True).start()
        self.watcher.start()
        logger.info("Serving %s at %s", self.destination, self.url)
        if open_browser:
            webbrowser.open(self.url)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        self.watcher.stop()
        if self._httpd:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None

    def _make_http_server(self) -> ThreadingHTTPServer:
        handler_cls = type(
            "_ReloadHandlerWithFlag",
            (_ReloadHandler,),
            {"reload_flag": self.reload_flag},
        )
        handler = functools.partial(handler_cls, directory=str(self.destination))
        return ThreadingHTTPServer((self.host, self.port), handler)
