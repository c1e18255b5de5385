"""Loading of the version manifest describing the game: its asset index, libraries,
client jar, logging configuration and launch arguments. The manifest is fetched from
the distribution endpoint and cached under the common directory.
"""

from json import JSONDecodeError
from pathlib import Path
import logging
import json

from .http import http_request, HttpError

from typing import Optional, Any, List


logger = logging.getLogger(__name__)


class VersionManifest:
    """A parsed version manifest. Only the fields used by the launcher are extracted,
    the raw data is kept in `data`.
    """

    __slots__ = "data", "id", "type", "assets", "asset_index", "libraries", "downloads", \
        "logging", "main_class", "minecraft_arguments", "minimum_launcher_version"

    def __init__(self, data: dict) -> None:

        if not isinstance(data, dict):
            raise ValueError("/ must be an object")

        self.data = data

        self.id = data.get("id")
        if not isinstance(self.id, str):
            raise ValueError("/id must be a string")

        self.type: Optional[str] = _opt_type(data, "type", str)
        self.assets: Optional[str] = _opt_type(data, "assets", str)
        self.asset_index: Optional[dict] = _opt_type(data, "assetIndex", dict)
        self.libraries: List[Any] = _opt_type(data, "libraries", list) or []
        self.downloads: dict = _opt_type(data, "downloads", dict) or {}
        self.logging: dict = _opt_type(data, "logging", dict) or {}
        self.main_class: Optional[str] = _opt_type(data, "mainClass", str)
        self.minecraft_arguments: Optional[str] = _opt_type(data, "minecraftArguments", str)
        self.minimum_launcher_version: Optional[int] = _opt_type(data, "minimumLauncherVersion", int)

        if self.asset_index is not None:
            if not isinstance(self.asset_index.get("id"), str):
                raise ValueError("/assetIndex/id must be a string")
            if not isinstance(self.asset_index.get("url"), str):
                raise ValueError("/assetIndex/url must be a string")

    def __repr__(self) -> str:
        return f"<VersionManifest {self.id}>"


def _opt_type(data: dict, key: str, typ: type) -> Any:
    value = data.get(key)
    if value is not None and not isinstance(value, typ):
        raise ValueError(f"/{key} must be of type {typ.__name__}")
    return value


class ManifestLoader:
    """Load version manifests. A manifest is read from the cached file
    `versions/<id>/<id>.json` of the common directory unless missing or forced, in which
    case it's fetched from the distribution URL and the received bytes are written
    verbatim to the cache before being parsed.
    """

    def __init__(self, common_dir: Path, url: str, *, timeout: Optional[float] = None) -> None:
        self.common_dir = common_dir
        self.url = url
        self.timeout = timeout

    def manifest_file(self, version: str) -> Path:
        return self.common_dir / "versions" / version / f"{version}.json"

    def load(self, version: str, force: bool = False) -> VersionManifest:
        """Load the manifest of the given version.

        :param version: The version id, used for the cache location.
        :param force: Always fetch the manifest, even if a cached copy exists.
        :raises ManifestError: If the manifest can't be fetched, stored or parsed.
        """

        file = self.manifest_file(version)

        if force or not file.is_file():

            logger.info("Fetching manifest of version %s from %s", version, self.url)

            try:
                res = http_request("GET", self.url, accept="application/json", timeout=self.timeout)
            except HttpError as e:
                raise ManifestError(version, ManifestError.FETCH, e)

            try:
                file.parent.mkdir(parents=True, exist_ok=True)
                file.write_bytes(res.data)
            except OSError as e:
                raise ManifestError(version, ManifestError.IO, e)

            raw = res.data

        else:
            try:
                raw = file.read_bytes()
            except OSError as e:
                raise ManifestError(version, ManifestError.IO, e)

        try:
            return VersionManifest(json.loads(raw))
        except (JSONDecodeError, UnicodeDecodeError, ValueError) as e:
            raise ManifestError(version, ManifestError.INVALID, e)


class ManifestError(Exception):
    """Raised when the manifest of a version, or a file it refers to like the asset
    index, can't be loaded. The code indicates the failing step.
    """

    FETCH = "fetch"
    IO = "io"
    INVALID = "invalid"

    def __init__(self, version: str, code: str, origin: Exception) -> None:
        self.version = version
        self.code = code
        self.origin = origin

    def __str__(self) -> str:
        return f"{self.code} error for version {self.version}: {self.origin}"
