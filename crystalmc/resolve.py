"""Resolvers turning a version manifest into artifacts: the asset index objects, the
libraries and the miscellaneous files (client jar and logging configuration). Every
artifact that isn't valid locally is added to the download queue of its category.
"""

from json import JSONDecodeError
from pathlib import Path
import logging
import json

from .artifact import Asset, Library, CategoryQueue, validate_rules, native_classifier
from .manifest import VersionManifest, ManifestError
from .event import Watcher, ProgressEvent
from .http import http_request, HttpError
from .util import LibrarySpecifier, parallel_map

from typing import Optional, List, Any


logger = logging.getLogger(__name__)


RESOURCES_URL = "https://resources.download.minecraft.net/"
LIBRARIES_URL = "https://libraries.minecraft.net/"

ASSETS_VALIDATION_WORKERS = 10
LIBRARIES_VALIDATION_WORKERS = 5


def _validate_asset(asset: Asset) -> bool:
    return asset.validate_local()


class AssetResolver:
    """Resolve the objects of the asset index referenced by a manifest.
    """

    def __init__(self, common_dir: Path, queue: CategoryQueue, *,
        watcher: Optional[Watcher] = None,
        timeout: Optional[float] = None
    ) -> None:
        self.assets_dir = common_dir / "assets"
        self.queue = queue
        self.watcher = Watcher() if watcher is None else watcher
        self.timeout = timeout

    def index_file(self, index_id: str) -> Path:
        return self.assets_dir / "indexes" / f"{index_id}.json"

    def load_index(self, manifest: VersionManifest, force: bool = False) -> dict:
        """Load the asset index of the manifest, from its cached file if present and not
        forced, or fetched and cached otherwise.

        :raises ManifestError: If the index can't be fetched, stored or parsed.
        """

        if manifest.asset_index is None:
            raise ManifestError(manifest.id, ManifestError.INVALID, ValueError("/assetIndex is missing"))

        index_id = manifest.asset_index["id"]
        index_file = self.index_file(index_id)

        try:
            if force or not index_file.is_file():
                logger.info("Downloading %s asset index.", manifest.id)
                res = http_request("GET", manifest.asset_index["url"], accept="application/json", timeout=self.timeout)
                index_file.parent.mkdir(parents=True, exist_ok=True)
                index_file.write_bytes(res.data)
                index = json.loads(res.data)
            else:
                with index_file.open("rb") as fp:
                    index = json.load(fp)
        except HttpError as e:
            raise ManifestError(manifest.id, ManifestError.FETCH, e)
        except OSError as e:
            raise ManifestError(manifest.id, ManifestError.IO, e)
        except (JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestError(manifest.id, ManifestError.INVALID, e)

        if not isinstance(index, dict) or not isinstance(index.get("objects"), dict):
            raise ManifestError(manifest.id, ManifestError.INVALID, ValueError("/objects must be an object"))

        return index

    def resolve(self, manifest: VersionManifest, force: bool = False) -> List[Asset]:
        """Resolve all assets of the manifest's index, the invalid ones are enqueued.

        :return: All the assets of the index.
        """

        index = self.load_index(manifest, force)
        objects_dir = self.assets_dir / "objects"

        assets = []
        for asset_id, asset_obj in index["objects"].items():

            if not isinstance(asset_obj, dict):
                raise ValueError(f"/objects/{asset_id} must be an object")

            asset_hash = asset_obj.get("hash")
            if not isinstance(asset_hash, str):
                raise ValueError(f"/objects/{asset_id}/hash must be a string")

            asset_size = asset_obj.get("size")
            if not isinstance(asset_size, int):
                raise ValueError(f"/objects/{asset_id}/size must be an integer")

            prefix = asset_hash[:2]
            assets.append(Asset(asset_id, asset_hash, asset_size,
                f"{RESOURCES_URL}{prefix}/{asset_hash}",
                objects_dir / prefix / asset_hash))

        total = len(assets)
        count = 0

        for asset, valid in parallel_map(_validate_asset, assets, ASSETS_VALIDATION_WORKERS):
            count += 1
            self.watcher.handle(ProgressEvent("assets", count, total))
            if not valid:
                self.queue.add(asset)

        logger.debug("Resolved %d assets, %d to download", total, len(self.queue))
        return assets


class LibraryResolver:
    """Resolve the libraries of a manifest that apply to the running OS.
    """

    def __init__(self, common_dir: Path, queue: CategoryQueue) -> None:
        self.libraries_dir = common_dir / "libraries"
        self.queue = queue

    def resolve(self, manifest: VersionManifest) -> List[Library]:
        """Resolve the libraries, the invalid ones are enqueued.

        :return: Every included library, in the order of the manifest. These are used
        for the class path and extraction of natives.
        """

        libraries = []
        for library_idx, library in enumerate(manifest.libraries):
            lib = self.parse_library(library, f"/libraries/{library_idx}")
            if lib is not None:
                libraries.append(lib)

        for lib, valid in parallel_map(_validate_asset, libraries, LIBRARIES_VALIDATION_WORKERS):
            if not valid:
                self.queue.add(lib)

        logger.debug("Resolved %d libraries, %d to download", len(libraries), len(self.queue))
        return libraries

    def parse_library(self, library: Any, path: str) -> Optional[Library]:
        """Parse a library descriptor, returning none if it doesn't apply to this OS.
        """

        if not isinstance(library, dict):
            raise ValueError(f"{path} must be an object")

        name = library.get("name")
        if not isinstance(name, str):
            raise ValueError(f"{path}/name must be a string")

        rules = library.get("rules")
        if rules is not None and not isinstance(rules, list):
            raise ValueError(f"{path}/rules must be a list")

        natives = library.get("natives")
        if natives is not None and not isinstance(natives, dict):
            raise ValueError(f"{path}/natives must be an object")

        if not validate_rules(rules, natives):
            return None

        spec = LibrarySpecifier.from_str(name)
        if natives is not None:
            # The classifier associated to the OS overrides the specifier's one.
            spec.classifier = native_classifier(natives)

        exclude = None
        extract = library.get("extract")
        if isinstance(extract, dict) and isinstance(extract.get("exclude"), list):
            exclude = extract["exclude"]

        dl_meta = None
        downloads = library.get("downloads")
        if downloads is not None:
            if not isinstance(downloads, dict):
                raise ValueError(f"{path}/downloads must be an object")
            if natives is not None:
                classifiers = downloads.get("classifiers")
                dl_meta = None if classifiers is None else classifiers.get(spec.classifier)
            else:
                dl_meta = downloads.get("artifact")

        if dl_meta is not None:

            if not isinstance(dl_meta, dict):
                raise ValueError(f"{path}/downloads/artifact must be an object")

            url = dl_meta.get("url")
            if not isinstance(url, str):
                raise ValueError(f"{path}/downloads/artifact/url must be a string")

            lib_path = dl_meta.get("path")
            if not isinstance(lib_path, str):
                lib_path = spec.file_path()

            size = dl_meta.get("size") or 0
            sha1 = dl_meta.get("sha1")

        else:
            # No download descriptor, try the maven repository of the library.
            repo_url = library.get("url", LIBRARIES_URL)
            if not isinstance(repo_url, str):
                raise ValueError(f"{path}/url must be a string")
            if repo_url[-1:] != "/":
                repo_url += "/"
            lib_path = spec.file_path()
            url = f"{repo_url}{lib_path}"
            size = 0
            sha1 = None

        return Library(name, sha1, size, url, self.libraries_dir / lib_path,
            rules=rules,
            natives=natives,
            exclude=exclude)


class MiscResolver:
    """Resolve the client jar and the logging configuration of a manifest, both are
    optional.
    """

    def __init__(self, common_dir: Path, queue: CategoryQueue) -> None:
        self.common_dir = common_dir
        self.queue = queue

    def resolve(self, manifest: VersionManifest) -> List[Asset]:

        files = []

        client = manifest.downloads.get("client")
        if client is not None:
            version_dir = self.common_dir / "versions" / manifest.id
            files.append(_parse_file(client, f"{manifest.id} client", version_dir / f"{manifest.id}.jar", "/downloads/client"))

        log_client = manifest.logging.get("client")
        if isinstance(log_client, dict) and log_client.get("file") is not None:
            log_file = log_client["file"]
            if not isinstance(log_file, dict) or not isinstance(log_file.get("id"), str):
                raise ValueError("/logging/client/file/id must be a string")
            log_dst = self.common_dir / "assets" / "log_configs" / log_file["id"]
            files.append(_parse_file(log_file, log_file["id"], log_dst, "/logging/client/file"))

        for asset in files:
            if not asset.validate_local():
                self.queue.add(asset)

        return files


def _parse_file(value: Any, id: str, dst: Path, path: str) -> Asset:
    """Common function to parse a file descriptor of the manifest.
    """

    if not isinstance(value, dict):
        raise ValueError(f"{path} must an object")

    url = value.get("url")
    if not isinstance(url, str):
        raise ValueError(f"{path}/url must be a string")

    size = value.get("size")
    if size is not None and not isinstance(size, int):
        raise ValueError(f"{path}/size must be an integer")

    sha1 = value.get("sha1")
    if sha1 is not None and not isinstance(sha1, str):
        raise ValueError(f"{path}/sha1 must be a string")

    return Asset(id, sha1, size or 0, url, dst)
