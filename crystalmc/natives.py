"""Extraction of native libraries archives into the temporary directory given to the
JVM as library path.
"""

from zipfile import ZipFile, BadZipFile
from pathlib import Path
import logging
import shutil

from .artifact import Library, DEFAULT_NATIVE_EXCLUDE

from typing import Optional, Iterable, List


logger = logging.getLogger(__name__)


def extract_natives(archive: Path, dst_dir: Path, exclude: Optional[List[str]] = None) -> int:
    """Extract all files of a natives archive into the destination directory, except
    directories and entries whose name contains any of the exclusion substrings.
    Failures are logged but never raised.

    :return: The number of extracted entries.
    """

    exclude = DEFAULT_NATIVE_EXCLUDE if exclude is None else exclude
    root = dst_dir.resolve()
    count = 0

    try:
        with ZipFile(archive) as zf:
            for info in zf.infolist():

                if info.is_dir():
                    continue
                if any(exclusion in info.filename for exclusion in exclude):
                    continue

                dst_file = (root / info.filename).resolve()
                if root not in dst_file.parents:
                    logger.warning("Skipping native entry %s of %s outside of the natives directory", info.filename, archive)
                    continue

                try:
                    dst_file.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src_fp, dst_file.open("wb") as dst_fp:
                        shutil.copyfileobj(src_fp, dst_fp)
                    count += 1
                except OSError as e:
                    logger.error("Error while extracting native library %s from %s: %s", info.filename, archive, e)

    except (OSError, BadZipFile) as e:
        logger.error("Error while opening native library %s: %s", archive, e)

    return count


def extract_all(libraries: Iterable[Library], dst_dir: Path) -> int:
    """Extract the natives of every native library into the destination directory,
    which is created if needed.

    :return: The total number of extracted entries.
    """

    dst_dir.mkdir(parents=True, exist_ok=True)
    count = 0
    for lib in libraries:
        if lib.native:
            count += extract_natives(lib.dst, dst_dir, lib.exclude)
    return count
