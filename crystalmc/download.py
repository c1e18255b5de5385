"""Definition of the download orchestrator, draining the download queue of each category
with a bounded number of threads while reporting progress.
"""

from http.client import HTTPConnection, HTTPSConnection, HTTPException
from subprocess import Popen, PIPE, STDOUT
from threading import Thread
from pathlib import Path
from queue import Queue
import urllib.parse
import logging

from .artifact import Asset, CategoryQueue
from .event import Watcher, ProgressEvent, CompleteEvent, ErrorEvent
from .http import ssl_context, USER_AGENT
from .util import validate_local

from typing import Optional, Dict, List, Tuple, Union


logger = logging.getLogger(__name__)


CATEGORIES = ("assets", "libraries", "files", "java")
DEFAULT_CATEGORIES = [("assets", 10), ("libraries", 10), ("files", 10), ("java", 1)]
DOWNLOAD_TIMEOUT = 15.0
MAX_REDIRECTS = 5
PACK_XZ_SUFFIX = ".pack.xz"


class DownloadOutcome:
    """Outcome of an asset's download, the error is none when successful.
    """

    __slots__ = "asset", "size", "error"

    def __init__(self, asset: Asset, size: int, error: Optional[Exception]) -> None:
        self.asset = asset
        self.size = size
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        return f"<DownloadOutcome {self.asset.id} {'ok' if self.ok else self.error}>"


class CategoryReport:
    """Report of a drained category, a category is complete once all its assets have
    been tried, failed or not.
    """

    __slots__ = "category", "outcomes"

    def __init__(self, category: str) -> None:
        self.category = category
        self.outcomes: List[DownloadOutcome] = []

    @property
    def failures(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)

    def __repr__(self) -> str:
        return f"<CategoryReport {self.category} count: {len(self.outcomes)}, failures: {self.failures}>"


class DownloadOrchestrator:
    """Owner of the download queue of every category. Each category is drained in turn
    when processing the queues, progress is given in bytes across all processed
    categories.

    :param extract_tool: Path to the JAR of the tool unpacking `.pack.xz` archives.
    :param java_exec: The java executable used to run the extraction tool.
    """

    def __init__(self, *,
        watcher: Optional[Watcher] = None,
        timeout: float = DOWNLOAD_TIMEOUT,
        extract_tool: Optional[Path] = None,
        java_exec: Optional[str] = None
    ) -> None:
        self.queues: Dict[str, CategoryQueue] = {name: CategoryQueue(name) for name in CATEGORIES}
        self.watcher = Watcher() if watcher is None else watcher
        self.timeout = timeout
        self.extract_tool = extract_tool
        self.java_exec = java_exec
        self.extract_queue: List[Path] = []
        self.progress = 0
        self.total = 0

    def queue(self, category: str) -> CategoryQueue:
        try:
            return self.queues[category]
        except KeyError:
            raise ValueError(f"unknown download category '{category}'")

    def process_queues(self, categories: List[Tuple[str, int]] = DEFAULT_CATEGORIES) -> List[CategoryReport]:
        """Process the given categories, each with its maximum number of parallel
        downloads. A single `CompleteEvent("download")` is emitted once everything is
        processed, even if nothing was queued.

        :return: One report per category, in the given order.
        """

        queues = [(self.queue(category), limit) for category, limit in categories]

        self.total = sum(queue.size for queue, _ in queues)
        self.progress = 0

        reports = [self.process_category(queue, limit) for queue, limit in queues]

        for queue, _ in queues:
            queue.clear()

        if len(self.extract_queue):
            self.watcher.handle(ProgressEvent("extract", 1, 1))
            self.extract_pack_xz()
            self.extract_queue.clear()

        self.watcher.handle(CompleteEvent("download"))
        return reports

    def process_category(self, queue: CategoryQueue, limit: int) -> CategoryReport:
        """Drain the given queue with at most 'limit' threads. Failing assets don't
        interrupt the category.
        """

        report = CategoryReport(queue.name)
        assets = list(queue)
        if not len(assets):
            return report

        # Big files first, for better parallelization at the end of the download.
        assets.sort(key=lambda a: a.size, reverse=True)

        threads_count = max(1, min(limit, len(assets)))
        logger.info("Downloading %d %s (%d bytes) with %d threads", len(assets), queue.name, queue.size, threads_count)

        assets_queue: Queue = Queue()
        result_queue: Queue = Queue()

        for asset in assets:
            assets_queue.put(asset)

        # None is a sentinel, one per thread.
        for _ in range(threads_count):
            assets_queue.put(None)

        for th_id in range(threads_count):
            th = Thread(target=_download_thread_wrapper,
                        args=(th_id, assets_queue, result_queue, self.timeout),
                        daemon=True,
                        name=f"Download Thread {th_id}")
            th.start()

        remaining = len(assets)
        while remaining:

            result = result_queue.get()

            if isinstance(result, _DownloadThreadCrash):
                raise ValueError(f"unexpected crash from thread {result.thread_id}", result.origin)

            elif isinstance(result, _DownloadChunk):
                self.progress += result.size
                self.watcher.handle(ProgressEvent("download", self.progress, self.total))

            elif isinstance(result, _DownloadLength):
                asset = result.asset
                logger.warning("Got %d bytes for %s: Expected %d", result.length, asset.id, asset.size)
                self.total += result.length - asset.size

            elif isinstance(result, _DownloadDone):
                remaining -= 1
                report.outcomes.append(self._finish(queue, result))

        if report.failures:
            logger.warning("%d item(s) in %s failed to process", report.failures, queue.name)
        else:
            logger.info("All %s have been processed successfully", queue.name)

        return report

    def _finish(self, queue: CategoryQueue, result: "_DownloadDone") -> DownloadOutcome:
        """Called from the coordinating thread when an asset's transfer has ended.
        """

        asset = result.asset

        if result.error is not None:
            logger.error("Failed to download %s (%s): %s", asset.id, asset.url, result.error)
            self.watcher.handle(ErrorEvent("download", result.error))
            return self._fail(result, result.error)

        if result.check_hash:
            if validate_local(asset.dst, asset.hash, asset.algo):
                logger.warning("Hashes match for %s, byte mismatch is an issue in the distribution index.", asset.id)
            else:
                logger.error("Hashes do not match, %s may be corrupted.", asset.id)
                return self._fail(result, IntegrityError(asset))

        if queue.callback is not None:
            try:
                queue.callback(asset)
            except Exception as e:
                logger.exception("Callback failed for %s", asset.id)
                self.watcher.handle(ErrorEvent("download", e))
                return self._fail(result, e)

        if asset.dst.name.endswith(PACK_XZ_SUFFIX):
            self.extract_queue.append(asset.dst)

        return DownloadOutcome(asset, result.size, None)

    def _fail(self, result: "_DownloadDone", error: Exception) -> DownloadOutcome:
        """The bytes of a failed asset that were never received still count as
        processed, the written ones were already reported.
        """
        self.progress += max(0, result.expected - result.size)
        self.watcher.handle(ProgressEvent("download", self.progress, self.total))
        return DownloadOutcome(result.asset, result.size, error)

    def extract_pack_xz(self) -> None:
        """Unpack the `.pack.xz` archives of the extraction backlog with the external
        extraction tool. Errors are logged.
        """

        if self.extract_tool is None or self.java_exec is None:
            logger.warning("No extraction tool or java executable, skipping %d archive(s) to unpack", len(self.extract_queue))
            return

        logger.info("Unpacking %d archive(s)", len(self.extract_queue))
        args = [self.java_exec, "-jar", str(self.extract_tool), "-packxz", ",".join(map(str, self.extract_queue))]

        try:
            process = Popen(args, stdout=PIPE, stderr=STDOUT, universal_newlines=True, encoding="utf-8", errors="replace")
        except OSError as e:
            logger.error("Failed to start the extraction tool: %s", e)
            return

        assert process.stdout is not None
        with process.stdout:
            for line in iter(process.stdout.readline, ""):
                logger.info("[PackXZExtract] %s", line.rstrip())

        logger.info("Extraction tool exited with code %d", process.wait())


class FetchError(Exception):
    """Raised when an asset can't be fetched: connection failure or timeout, non
    success status, too many redirects or fewer bytes than announced.
    """

    CONNECTION = "connection"
    STATUS = "status"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    UNSUPPORTED_URL = "unsupported_url"
    INCOMPLETE = "incomplete"

    def __init__(self, asset: Asset, code: str, *, status: int = 0, origin: Optional[Exception] = None) -> None:
        self.asset = asset
        self.code = code
        self.status = status
        self.origin = origin

    def __str__(self) -> str:
        if self.code == FetchError.STATUS:
            return f"{self.asset.url}: response code {self.status}"
        elif self.origin is not None:
            return f"{self.asset.url}: {self.code} ({self.origin})"
        return f"{self.asset.url}: {self.code}"


class IntegrityError(Exception):
    """Raised when a downloaded asset doesn't match its expected hash.
    """

    def __init__(self, asset: Asset) -> None:
        self.asset = asset

    def __str__(self) -> str:
        return f"{self.asset.id} may be corrupted, expected {self.asset.algo} {self.asset.hash}"


class _DownloadChunk:
    __slots__ = "asset", "size"
    def __init__(self, asset: Asset, size: int) -> None:
        self.asset = asset
        self.size = size

class _DownloadLength:
    """The server announced a length different from the expected size.
    """
    __slots__ = "asset", "length"
    def __init__(self, asset: Asset, length: int) -> None:
        self.asset = asset
        self.length = length

class _DownloadDone:
    __slots__ = "asset", "size", "error", "check_hash", "expected"
    def __init__(self, asset: Asset, size: int, error: Optional[Exception], check_hash: bool, expected: int) -> None:
        self.asset = asset
        self.size = size
        self.error = error
        self.check_hash = check_hash
        self.expected = expected

class _DownloadThreadCrash:
    """Unexpected exception happening in a thread, this is the result of a bad logic
    from programmer.
    """
    __slots__ = "thread_id", "origin",
    def __init__(self, thread_id: int, origin: Exception) -> None:
        self.thread_id = thread_id
        self.origin = origin


def _download_thread_wrapper(thread_id: int, assets_queue: Queue, result_queue: Queue, timeout: float) -> None:
    """Wrapper for the download thread that basically ensures that any unexpected error
    sends a signal (DownloadThreadCrash) to the master to signal the crash.
    """
    try:
        _download_thread(assets_queue, result_queue, timeout)
    except Exception as e:
        result_queue.put(_DownloadThreadCrash(thread_id, e))


def _download_thread(assets_queue: Queue, result_queue: Queue, timeout: float) -> None:
    """This function is internally used for multi-threaded download.

    :param assets_queue: Where assets to download are received.
    :param result_queue: Where threads send progress update.
    """

    # Cache for connections depending on host and https
    conn_cache: Dict[Tuple[bool, str, Optional[int]], Union[HTTPConnection, HTTPSConnection]] = {}

    # Each thread has its own buffer.
    buffer = memoryview(bytearray(65536))
    ctx = ssl_context()

    while True:

        asset: Optional[Asset] = assets_queue.get()

        # None is a sentinel to stop the thread, it should be consumed ONCE.
        if asset is None:
            break

        url = asset.url
        size = 0
        expected = asset.size
        check_hash = False
        error: Optional[Exception] = None
        redirects = 0

        try:

            while True:

                url_parsed = urllib.parse.urlparse(url)
                if url_parsed.scheme not in ("http", "https") or url_parsed.hostname is None:
                    raise FetchError(asset, FetchError.UNSUPPORTED_URL)

                https = url_parsed.scheme == "https"
                conn_key = (https, url_parsed.hostname, url_parsed.port)
                conn = conn_cache.get(conn_key)
                if conn is None:
                    if https:
                        conn = HTTPSConnection(url_parsed.hostname, url_parsed.port, timeout=timeout, context=ctx)
                    else:
                        conn = HTTPConnection(url_parsed.hostname, url_parsed.port, timeout=timeout)
                    conn_cache[conn_key] = conn

                target = url_parsed.path or "/"
                if url_parsed.query:
                    target += f"?{url_parsed.query}"

                try:
                    conn.request("GET", target, headers={"User-Agent": USER_AGENT})
                    res = conn.getresponse()

                    if res.status != 200:

                        # Skip all bytes in the stream to allow further requests.
                        while res.readinto(buffer):
                            pass

                        if res.status in (301, 302, 303, 307, 308) and res.headers.get("location"):
                            redirects += 1
                            if redirects > MAX_REDIRECTS:
                                raise FetchError(asset, FetchError.TOO_MANY_REDIRECTS)
                            url = urllib.parse.urljoin(url, res.headers["location"])
                            continue

                        raise FetchError(asset, FetchError.STATUS, status=res.status)

                    length: Optional[int] = None
                    content_length = res.headers.get("content-length")
                    if content_length is not None and content_length.isdigit():
                        length = int(content_length)
                        if length != asset.size:
                            result_queue.put(_DownloadLength(asset, length))
                            expected = length
                            check_hash = True

                    asset.dst.parent.mkdir(parents=True, exist_ok=True)
                    with asset.dst.open("wb") as dst_fp:
                        while True:
                            read_len = res.readinto(buffer)
                            if not read_len:
                                break
                            dst_fp.write(buffer[:read_len])
                            size += read_len
                            result_queue.put(_DownloadChunk(asset, read_len))

                    # The connection may be closed before the announced length without
                    # any error from the response.
                    if length is not None and size != length:
                        conn.close()
                        del conn_cache[conn_key]
                        raise FetchError(asset, FetchError.INCOMPLETE)

                    if asset.size > 0 and size != asset.size:
                        check_hash = True

                    break

                except (ConnectionError, OSError, HTTPException) as e:
                    # Throw away the potentially broken connection.
                    conn.close()
                    del conn_cache[conn_key]
                    raise FetchError(asset, FetchError.CONNECTION, origin=e)

        except FetchError as e:
            error = e
            # The transfer will be redone from scratch, remove any partial file.
            try:
                asset.dst.unlink()
            except FileNotFoundError:
                pass

        result_queue.put(_DownloadDone(asset, size, error, check_hash, expected))
