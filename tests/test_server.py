import io
import threading
import time
import urllib.error
import urllib.request
from types import SimpleNamespace

import pytest

from tidepool.html_utils import RELOAD_PATH
from tidepool.server import (
    DevServer,
    RebuildLoop,
    ReloadFlag,
    SiteWatcher,
    _ChangeHandler,
    _ReloadHandler,
)


class DummyEvent:
    def __init__(self, path, event_type="modified", is_directory=False, dest_path=""):
        self.src_path = str(path)
        self.event_type = event_type
        self.is_directory = is_directory
        self.dest_path = str(dest_path) if dest_path else ""


def make_loop(tmp_path, calls, flag=None, debounce=0.05):
    return RebuildLoop(
        lambda: calls.append("built"),
        ignored_dirs=[tmp_path / "_site"],
        debounce_seconds=debounce,
        reload_flag=flag,
    )


def make_handler(directory, path):
    handler = _ReloadHandler.__new__(_ReloadHandler)
    handler.path = path
    handler.directory = str(directory)
    handler.command = "GET"
    handler.request_version = "HTTP/1.1"
    handler.server_version = ""
    handler.sys_version = ""
    handler._headers_buffer = []
    handler.headers = {}
    handler.rfile = io.BytesIO(b"")
    handler.wfile = io.BytesIO()
    handler.responses_sent = []
    handler.errors_sent = []
    handler.send_response = lambda code, message=None: handler.responses_sent.append(code)
    handler.headers_sent = []
    handler.send_header = lambda key, value: handler.headers_sent.append((key, value))
    handler.end_headers = lambda: None
    handler.send_error = lambda code, message=None: handler.errors_sent.append(code)
    return handler


def test_reload_flag_is_delivered_once():
    flag = ReloadFlag()
    assert flag.consume() is False
    flag.set()
    flag.set()
    assert flag.consume() is True
    assert flag.consume() is False


def test_burst_of_events_triggers_one_rebuild(tmp_path):
    calls = []
    loop = make_loop(tmp_path, calls)
    for index in range(10):
        loop.submit(DummyEvent(tmp_path / f"page{index}.md"))
    assert loop.process_batch(timeout=1) is True
    assert calls == ["built"]
    assert loop.process_batch(timeout=0.01) is False
    assert calls == ["built"]


def test_events_during_window_extend_it(tmp_path):
    built_at = []
    loop = RebuildLoop(
        lambda: built_at.append(time.monotonic()),
        ignored_dirs=[tmp_path / "_site"],
        debounce_seconds=0.15,
    )
    submitted_at = []

    def keep_editing():
        for index in range(8):
            submitted_at.append(time.monotonic())
            loop.submit(DummyEvent(tmp_path / f"page{index}.md"))
            time.sleep(0.03)

    writer = threading.Thread(target=keep_editing)
    writer.start()
    assert loop.process_batch(timeout=1) is True
    writer.join()
    assert len(built_at) == 1
    assert built_at[0] >= submitted_at[-1] + 0.15
    assert loop.process_batch(timeout=0.05) is False
    assert len(built_at) == 1


def test_output_events_do_not_extend_window(tmp_path):
    built_at = []
    loop = RebuildLoop(
        lambda: built_at.append(time.monotonic()),
        ignored_dirs=[tmp_path / "_site"],
        debounce_seconds=0.1,
    )

    def write_output():
        for index in range(15):
            loop.submit(DummyEvent(tmp_path / "_site" / f"page{index}.html"))
            time.sleep(0.03)

    started = time.monotonic()
    loop.submit(DummyEvent(tmp_path / "index.md"))
    writer = threading.Thread(target=write_output)
    writer.start()
    assert loop.process_batch(timeout=1) is True
    writer.join()
    assert built_at[0] - started < 0.4


def test_reload_flag_set_before_rebuild(tmp_path):
    flag = ReloadFlag()
    seen = []
    loop = RebuildLoop(
        lambda: seen.append(flag.consume()),
        debounce_seconds=0.01,
        reload_flag=flag,
    )
    loop.submit(DummyEvent(tmp_path / "index.md"))
    assert loop.process_batch(timeout=1) is True
    assert seen == [True]


def test_output_directory_events_are_ignored(tmp_path):
    calls = []
    loop = make_loop(tmp_path, calls)
    loop.submit(DummyEvent(tmp_path / "_site" / "index.html"))
    loop.submit(DummyEvent(tmp_path / "_site" / "about" / "index.html", event_type="created"))
    assert loop.process_batch(timeout=0.05) is False
    assert calls == []


@pytest.mark.parametrize(
    "event",
    [
        DummyEvent("/tmp/site/docs", is_directory=True),
        DummyEvent("/tmp/site/index.md", event_type="opened"),
        DummyEvent("/tmp/site/index.md", event_type="closed"),
    ],
)
def test_non_qualifying_events(tmp_path, event):
    loop = make_loop(tmp_path, [])
    assert loop.qualifies(event) is False


def test_moves_count_as_changes(tmp_path):
    loop = make_loop(tmp_path, [])
    inside = DummyEvent(tmp_path / "a.md", event_type="moved", dest_path=tmp_path / "b.md")
    into_source = DummyEvent(
        tmp_path / "_site" / "tmp.html", event_type="moved", dest_path=tmp_path / "x.md"
    )
    assert loop.qualifies(inside) is True
    assert loop.qualifies(into_source) is True
    assert loop.qualifies(DummyEvent(tmp_path / "gone.md", event_type="deleted")) is True


def test_rebuild_failure_is_logged_and_loop_continues(tmp_path, caplog):
    attempts = []

    def failing_rebuild():
        attempts.append(1)
        raise RuntimeError("boom")

    loop = RebuildLoop(failing_rebuild, debounce_seconds=0.01)
    loop.submit(DummyEvent(tmp_path / "index.md"))
    assert loop.process_batch(timeout=1) is True
    assert "Rebuild failed" in caplog.text
    assert "boom" in caplog.text

    loop.submit(DummyEvent(tmp_path / "index.md"))
    assert loop.process_batch(timeout=1) is True
    assert len(attempts) == 2


def test_close_stops_run(tmp_path):
    calls = []
    loop = make_loop(tmp_path, calls)
    loop.close()
    loop.run()
    assert loop.closed is True
    assert calls == []


def test_close_during_debounce_skips_rebuild(tmp_path):
    calls = []
    loop = make_loop(tmp_path, calls, debounce=1)
    loop.submit(DummyEvent(tmp_path / "index.md"))
    loop.close()
    assert loop.process_batch(timeout=1) is False
    assert loop.closed is True
    assert calls == []


def test_change_handler_forwards_events(tmp_path):
    loop = make_loop(tmp_path, [])
    handler = _ChangeHandler(loop)
    event = DummyEvent(tmp_path / "index.md")
    handler.on_any_event(event)
    assert loop.events.get_nowait() is event


def test_site_watcher_rebuild_uses_build_site(monkeypatch, tmp_path):
    calls = {}

    def fake_build(source, destination, include_drafts=False):
        calls["args"] = (source, destination, include_drafts)
        return SimpleNamespace(pages=[], destination=destination)

    monkeypatch.setattr("tidepool.server.build_site", fake_build)
    watcher = SiteWatcher(tmp_path, tmp_path / "_site", include_drafts=True)
    watcher.rebuild()
    assert calls["args"] == (tmp_path, tmp_path / "_site", True)


def test_dev_server_defaults(tmp_path):
    server = DevServer(tmp_path, port=4321)
    assert server.destination == (tmp_path / "_site").resolve()
    assert server.url == "http://127.0.0.1:4321/"
    assert server.watcher.loop.reload_flag is server.reload_flag
    server.stop()
    assert server.watcher.loop.closed is False
    assert server.watcher.loop.events.get_nowait() is None


def test_send_head_injects_script(tmp_path):
    (tmp_path / "index.html").write_text("<html><body>Hello</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/index.html")
    body = _ReloadHandler.send_head(handler).read()
    assert handler.responses_sent == [200]
    assert body.startswith(b"<html><body>Hello")
    assert RELOAD_PATH.encode() in body
    assert body.endswith(b"</body></html>")


def test_send_head_serves_directory_index(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "index.html").write_text("<p>index</p>", encoding="utf-8")
    handler = make_handler(tmp_path, "/posts/")
    body = _ReloadHandler.send_head(handler).read()
    assert body.startswith(b"<p>index</p>")
    assert RELOAD_PATH.encode() in body


def test_send_head_leaves_other_files_alone(tmp_path):
    (tmp_path / "style.css").write_text("body {}", encoding="utf-8")
    handler = make_handler(tmp_path, "/style.css")
    assert _ReloadHandler.send_head(handler).read() == b"body {}"


def test_send_head_missing_file_is_404(tmp_path):
    handler = make_handler(tmp_path, "/missing.html")
    assert _ReloadHandler.send_head(handler) is None
    assert handler.errors_sent == [404]


def test_directory_without_index_is_404(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "note.txt").write_text("hi", encoding="utf-8")
    handler = make_handler(tmp_path, "/posts/")
    assert _ReloadHandler.send_head(handler) is None
    assert handler.errors_sent == [404]


def test_unreadable_file_is_500(monkeypatch, tmp_path):
    (tmp_path / "index.html").write_text("x", encoding="utf-8")

    def fail_read(self):
        raise PermissionError("denied")

    monkeypatch.setattr("pathlib.Path.read_bytes", fail_read)
    handler = make_handler(tmp_path, "/index.html")
    assert _ReloadHandler.send_head(handler) is None
    assert handler.errors_sent == [500]


def test_reload_endpoint_over_http(tmp_path):
    site = tmp_path / "_site"
    site.mkdir()
    (site / "index.html").write_text("<html><body>Hi</body></html>", encoding="utf-8")
    server = DevServer(tmp_path, port=0)
    httpd = server._make_http_server()
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    base = f"http://127.0.0.1:{httpd.server_address[1]}"

    def fetch(path):
        with urllib.request.urlopen(base + path, timeout=5) as response:
            return response.read().decode("utf-8")

    try:
        assert fetch(RELOAD_PATH) == "ok"
        server.reload_flag.set()
        assert fetch(RELOAD_PATH) == "reload"
        assert fetch(RELOAD_PATH) == "ok"
        assert RELOAD_PATH in fetch("/")
        with pytest.raises(urllib.error.HTTPError) as excinfo:
            fetch("/missing.html")
        assert excinfo.value.code == 404
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)


def test_directory_without_slash_redirects(tmp_path):
    (tmp_path / "about").mkdir()
    (tmp_path / "about" / "index.html").write_text("<p>about</p>", encoding="utf-8")
    handler = make_handler(tmp_path, "/about?ref=nav")
    assert _ReloadHandler.send_head(handler) is None
    assert handler.responses_sent == [301]
    assert ("Location", "/about/?ref=nav") in handler.headers_sent
