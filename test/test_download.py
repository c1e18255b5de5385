from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from pathlib import Path
import threading
import hashlib
import pytest

from crystalmc.download import DownloadOrchestrator, FetchError, IntegrityError, DEFAULT_CATEGORIES
from crystalmc.event import SimpleWatcher, ProgressEvent, CompleteEvent, ErrorEvent
from crystalmc.artifact import Asset


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class EventRecorder(SimpleWatcher):

    def __init__(self) -> None:
        self.events = []
        super().__init__({
            ProgressEvent: self.events.append,
            CompleteEvent: self.events.append,
            ErrorEvent: self.events.append,
        })

    def of_type(self, event_type: type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]


def test_download(tmp_path, http_server):

    data = b"hello world!"
    url = http_server.file("objects/hello", data)

    watcher = EventRecorder()
    orchestrator = DownloadOrchestrator(watcher=watcher, timeout=5)
    asset = Asset("hello", sha1(data), len(data), url, tmp_path / "dst" / "hello")
    orchestrator.queue("assets").add(asset)

    report, = orchestrator.process_queues([("assets", 4)])

    assert report.category == "assets"
    assert report.failures == 0
    outcome, = report.outcomes
    assert outcome.ok and outcome.size == len(data)
    assert asset.dst.read_bytes() == data
    assert len(orchestrator.queue("assets")) == 0

    progress = watcher.of_type(ProgressEvent)
    assert progress[-1].value == len(data) and progress[-1].total == len(data)
    assert len(watcher.of_type(CompleteEvent)) == 1
    assert not len(watcher.of_type(ErrorEvent))


def test_download_errors(tmp_path, http_server):

    watcher = EventRecorder()
    orchestrator = DownloadOrchestrator(watcher=watcher, timeout=5)
    queue = orchestrator.queue("libraries")

    not_found = Asset("not_found", None, 10, f"{http_server.url}/not_found.jar", tmp_path / "not_found.jar")
    conn_err = Asset("conn_err", None, 10, "http://127.0.0.1:1/conn_err.jar", tmp_path / "conn_err.jar")
    unsupported = Asset("unsupported", None, 10, "ftp://example.net/unsupported.jar", tmp_path / "unsupported.jar")
    ok = Asset("ok", None, 3, http_server.file("ok.jar", b"jar"), tmp_path / "ok.jar")

    for asset in (not_found, conn_err, unsupported, ok):
        queue.add(asset)

    report, = orchestrator.process_queues([("libraries", 2)])

    outcomes = {outcome.asset.id: outcome for outcome in report.outcomes}
    assert len(outcomes) == 4
    assert report.failures == 3

    def code(asset_id: str) -> str:
        error = outcomes[asset_id].error
        assert isinstance(error, FetchError)
        return error.code

    assert code("not_found") == FetchError.STATUS
    assert outcomes["not_found"].error.status == 404
    assert code("conn_err") == FetchError.CONNECTION
    assert code("unsupported") == FetchError.UNSUPPORTED_URL
    assert outcomes["ok"].ok

    # No partial file is kept for failed transfers.
    assert not not_found.dst.exists()
    assert not conn_err.dst.exists()

    assert len(watcher.of_type(ErrorEvent)) == 3
    assert len(watcher.of_type(CompleteEvent)) == 1

    # Failed assets count as processed bytes.
    last = watcher.of_type(ProgressEvent)[-1]
    assert last.value == last.total == 33


def test_download_redirect(tmp_path, http_server):

    data = b"<html>redirected</html>"
    http_server.file("redir/index.html", data)

    orchestrator = DownloadOrchestrator(timeout=5)
    # The server redirects a directory without trailing slash.
    asset = Asset("redir", sha1(data), len(data), f"{http_server.url}/redir", tmp_path / "redir.html")
    orchestrator.queue("files").add(asset)

    report, = orchestrator.process_queues([("files", 1)])
    assert report.failures == 0
    assert asset.dst.read_bytes() == data


def test_download_size_mismatch(tmp_path, http_server):

    data = b"size mismatch"
    url = http_server.file("mismatch", data)

    orchestrator = DownloadOrchestrator(timeout=5)
    queue = orchestrator.queue("assets")

    # Wrong size but matching hash, only a warning.
    good = Asset("good", sha1(data), 4, url, tmp_path / "good")
    # Wrong size and wrong hash, this is corruption.
    bad = Asset("bad", sha1(b"other"), 4, url, tmp_path / "bad")
    # Right size and no hash, nothing to check.
    trusted = Asset("trusted", None, len(data), url, tmp_path / "trusted")

    queue.add(good)
    queue.add(bad)
    queue.add(trusted)

    report, = orchestrator.process_queues([("assets", 3)])
    outcomes = {outcome.asset.id: outcome for outcome in report.outcomes}

    assert outcomes["good"].ok
    assert outcomes["trusted"].ok
    assert isinstance(outcomes["bad"].error, IntegrityError)
    assert report.failures == 1

    # The announced length replaced the expected size in the total.
    assert orchestrator.total == 3 * len(data)
    assert orchestrator.progress == 3 * len(data)


def test_two_categories_single_completion(tmp_path, http_server):

    watcher = EventRecorder()
    orchestrator = DownloadOrchestrator(watcher=watcher, timeout=5)

    assets_url = http_server.file("assets.bin", b"a" * 100)
    libraries_url = http_server.file("libraries.bin", b"l" * 50)
    orchestrator.queue("assets").add(Asset("assets.bin", None, 100, assets_url, tmp_path / "assets.bin"))
    orchestrator.queue("libraries").add(Asset("libraries.bin", None, 50, libraries_url, tmp_path / "libraries.bin"))

    reports = orchestrator.process_queues()

    assert [report.category for report in reports] == [category for category, _ in DEFAULT_CATEGORIES]
    assert sum(report.failures for report in reports) == 0
    assert orchestrator.total == 150

    progress = [e for e in watcher.of_type(ProgressEvent) if e.data == "download"]
    assert all(e.total == 150 for e in progress)
    values = [e.value for e in progress]
    assert values == sorted(values)
    assert values[-1] == 150

    complete = watcher.of_type(CompleteEvent)
    assert len(complete) == 1 and complete[0].data == "download"
    assert watcher.events[-1] is complete[0]


def test_empty_queues():

    watcher = EventRecorder()
    orchestrator = DownloadOrchestrator(watcher=watcher)
    reports = orchestrator.process_queues()

    assert all(not len(report.outcomes) for report in reports)
    assert orchestrator.total == 0
    assert len(watcher.of_type(CompleteEvent)) == 1


def test_callback(tmp_path, http_server):

    orchestrator = DownloadOrchestrator(timeout=5)
    queue = orchestrator.queue("java")

    called = []
    def callback(asset: Asset) -> None:
        called.append((asset.id, asset.dst.read_bytes(), threading.current_thread()))

    ok = Asset("ok", None, 2, http_server.file("ok.zip", b"ok"), tmp_path / "ok.zip")
    failing = Asset("failing", None, 2, f"{http_server.url}/missing.zip", tmp_path / "missing.zip")
    queue.add(ok)
    queue.add(failing)
    queue.callback = callback

    report, = orchestrator.process_queues([("java", 1)])

    # Only called after a successful transfer, from the coordinating thread.
    assert called == [("ok", b"ok", threading.current_thread())]
    assert report.failures == 1
    assert queue.callback is None


def test_callback_error(tmp_path, http_server):

    watcher = EventRecorder()
    orchestrator = DownloadOrchestrator(watcher=watcher, timeout=5)
    queue = orchestrator.queue("java")
    queue.add(Asset("ok", None, 2, http_server.file("ok.zip", b"ok"), tmp_path / "ok.zip"))

    def callback(asset: Asset) -> None:
        raise RuntimeError("extraction failed")

    queue.callback = callback

    report, = orchestrator.process_queues([("java", 1)])
    outcome, = report.outcomes
    assert isinstance(outcome.error, RuntimeError)
    assert isinstance(watcher.of_type(ErrorEvent)[0].error, RuntimeError)


def test_pack_xz_backlog(tmp_path, http_server):

    watcher = EventRecorder()
    orchestrator = DownloadOrchestrator(watcher=watcher, timeout=5)
    url = http_server.file("lib.jar.pack.xz", b"packed")
    orchestrator.queue("libraries").add(Asset("lib", None, 6, url, tmp_path / "lib.jar.pack.xz"))

    orchestrator.process_queues([("libraries", 1)])

    extract = [e for e in watcher.of_type(ProgressEvent) if e.data == "extract"]
    assert len(extract) == 1
    assert orchestrator.extract_queue == []


def test_unknown_category():
    with pytest.raises(ValueError):
        DownloadOrchestrator().queue("unknown")
    with pytest.raises(ValueError):
        DownloadOrchestrator().process_queues([("unknown", 1)])


class _TruncatingHandler(BaseHTTPRequestHandler):
    """Send only 500 bytes out of 1000, announcing the full length on `/announced`.
    """

    def do_GET(self):
        self.send_response(200)
        if self.path == "/announced":
            self.send_header("Content-Length", "1000")
        self.end_headers()
        self.wfile.write(b"x" * 500)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def truncating_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _TruncatingHandler)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def test_download_truncated(tmp_path, truncating_server):

    data = b"x" * 1000
    watcher = EventRecorder()
    orchestrator = DownloadOrchestrator(watcher=watcher, timeout=5)
    queue = orchestrator.queue("libraries")

    announced = Asset("announced", sha1(data), len(data), f"{truncating_server}/announced", tmp_path / "announced.jar")
    unannounced = Asset("unannounced", sha1(data), len(data), f"{truncating_server}/unannounced", tmp_path / "unannounced.jar")
    queue.add(announced)
    queue.add(unannounced)

    report, = orchestrator.process_queues([("libraries", 1)])
    outcomes = {outcome.asset.id: outcome for outcome in report.outcomes}
    assert report.failures == 2

    # Fewer bytes than the announced length is a failed transfer.
    error = outcomes["announced"].error
    assert isinstance(error, FetchError)
    assert error.code == FetchError.INCOMPLETE
    assert not announced.dst.exists()

    # Without announced length, the written size differs from the expected one and
    # the hash is checked.
    assert isinstance(outcomes["unannounced"].error, IntegrityError)

    # Bytes already received are not counted twice.
    assert orchestrator.total == 2000
    assert orchestrator.progress == 2000
    assert all(e.percent <= 100 for e in watcher.of_type(ProgressEvent))
