"""Provisioning of a Java runtime when none is installed: the latest OpenJDK 8 build is
downloaded through the `java` category of the download orchestrator and extracted in
the data directory, where the discovery will find it afterward.
"""

from zipfile import ZipFile, BadZipFile
from pathlib import Path
import urllib.parse
import platform
import tarfile
import logging

from .download import DownloadOrchestrator
from .event import Watcher, CompleteEvent, ErrorEvent
from .http import http_request, HttpError
from .java import java_exec_from_root
from .artifact import Asset

from typing import Optional


logger = logging.getLogger(__name__)


CORRETTO_URL = "https://corretto.aws/downloads/latest/amazon-corretto-{major}-x64-macos-jdk.tar.gz"
ADOPTIUM_URL = "https://api.adoptium.net/v3/assets/latest/{major}/hotspot"


class JdkDownload:
    """Information about a downloadable Java build.
    """

    __slots__ = "url", "size", "name"

    def __init__(self, url: str, size: int, name: str) -> None:
        self.url = url
        self.size = size
        self.name = name

    def __repr__(self) -> str:
        return f"<JdkDownload {self.name} size: {self.size}>"


class JavaProvisioner:
    """Download and extract an OpenJDK build.

    :param orchestrator: The orchestrator owning the `java` download queue.
    """

    def __init__(self, orchestrator: DownloadOrchestrator, *,
        watcher: Optional[Watcher] = None,
        timeout: Optional[float] = None,
        system: Optional[str] = None
    ) -> None:
        self.orchestrator = orchestrator
        self.watcher = Watcher() if watcher is None else watcher
        self.timeout = timeout
        self.system = platform.system() if system is None else system
        self.exec_path: Optional[Path] = None

    def latest_open_jdk(self, major: str = "8") -> Optional[JdkDownload]:
        """Find the latest OpenJDK build of the given major version. Amazon Corretto is
        used on macOS, Adoptium otherwise.

        :return: The build or none if it can't be found.
        """
        if self.system == "Darwin":
            return self.latest_corretto(major)
        else:
            return self.latest_adoptium(major)

    def latest_corretto(self, major: str) -> Optional[JdkDownload]:

        url = CORRETTO_URL.format(major=major)

        try:
            res = http_request("HEAD", url, timeout=self.timeout)
        except HttpError as e:
            logger.error("Failed to find Corretto %s build: %s", major, e)
            return None

        length = {k.lower(): v for k, v in res.headers.items()}.get("content-length", "0")
        return JdkDownload(url, int(length) if length.isdigit() else 0, url[url.rindex("/") + 1:])

    def latest_adoptium(self, major: str) -> Optional[JdkDownload]:

        adoptium_os = {"Windows": "windows", "Darwin": "mac"}.get(self.system, self.system.lower())
        query = urllib.parse.urlencode({
            "os": adoptium_os,
            "architecture": "x64",
            "image_type": "jre"
        })
        url = f"{ADOPTIUM_URL.format(major=major)}?{query}"

        try:
            data = http_request("GET", url, accept="application/json", timeout=self.timeout).json()
        except (HttpError, ValueError) as e:
            logger.error("Failed to find Adoptium %s build: %s", major, e)
            return None

        try:
            package = data[0]["binary"]["package"]
            return JdkDownload(package["link"], int(package["size"]), package["name"])
        except (IndexError, KeyError, TypeError, ValueError):
            logger.error("No Adoptium %s build available for %s", major, adoptium_os)
            return None

    def enqueue(self, data_dir: Path) -> bool:
        """Enqueue the latest build into the `java` download queue of the orchestrator,
        the archive is extracted once downloaded.

        :return: True if a build has been found and enqueued.
        """

        jdk = self.latest_open_jdk("8")
        if jdk is None:
            return False

        runtime_dir = data_dir / "runtime" / "x64"
        queue = self.orchestrator.queue("java")
        queue.add(Asset(jdk.name, None, jdk.size, jdk.url, runtime_dir / jdk.name))
        queue.callback = lambda asset: self.extract(asset.dst, runtime_dir)
        return True

    def extract(self, archive: Path, runtime_dir: Path) -> Path:
        """Extract a downloaded archive into the runtime directory and delete it.

        :return: The java executable of the extracted runtime.
        """

        logger.info("Extracting %s", archive.name)

        try:
            if archive.name.endswith(".zip"):
                with ZipFile(archive) as zf:
                    top_level = zf.namelist()[0].split("/", 1)[0]
                    zf.extractall(runtime_dir)
            else:
                top_level = None
                # Decompression and extraction are streamed together.
                with tarfile.open(archive, "r|gz") as tf:
                    if hasattr(tarfile, "data_filter"):
                        tf.extraction_filter = tarfile.data_filter
                    for member in tf:
                        if top_level is None:
                            top_level = member.name.split("/", 1)[0]
                        tf.extract(member, runtime_dir)
                if top_level is None:
                    raise ProvisionError(ProvisionError.EXTRACT, archive.name)
        except (OSError, BadZipFile, tarfile.TarError, IndexError) as e:
            raise ProvisionError(ProvisionError.EXTRACT, str(e))

        try:
            archive.unlink()
        except OSError as e:
            logger.warning("Failed to delete %s: %s", archive, e)

        self.exec_path = java_exec_from_root(runtime_dir / top_level, self.system)
        self.watcher.handle(CompleteEvent("java", self.exec_path))
        return self.exec_path

    def provision(self, data_dir: Path) -> Path:
        """Provision a runtime: find, download and extract it.

        :return: The java executable of the provisioned runtime.
        :raises ProvisionError: If any step fails.
        """

        self.exec_path = None

        try:

            if not self.enqueue(data_dir):
                raise ProvisionError(ProvisionError.NO_BUILD, self.system)

            report, = self.orchestrator.process_queues([("java", 1)])
            if report.failures:
                error = report.outcomes[0].error
                if isinstance(error, ProvisionError):
                    raise error
                raise ProvisionError(ProvisionError.DOWNLOAD, str(error))

            if self.exec_path is None:
                raise ProvisionError(ProvisionError.EXTRACT, "no runtime extracted")

        except ProvisionError as e:
            self.watcher.handle(ErrorEvent("java", e))
            raise

        return self.exec_path


class ProvisionError(Exception):
    """Raised when a Java runtime can't be provisioned.
    """

    NO_BUILD = "no_build"
    DOWNLOAD = "download"
    EXTRACT = "extract"

    def __init__(self, code: str, detail: str) -> None:
        self.code = code
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.code}: {self.detail}"
