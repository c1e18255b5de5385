"""Global utilities used internally. The functions can be used externally but upward
compatibility is not guaranteed unless explicitly specified.
"""

from threading import Thread
from pathlib import Path
from queue import Queue
import platform
import hashlib

from typing import Optional, Callable, Iterable, Iterator, Tuple, TypeVar, Any


T = TypeVar("T")
R = TypeVar("R")


jvm_bin_filename = "javaw.exe" if platform.system() == "Windows" else "java"


def calc_input_hash(input_stream, algo: str = "sha1", *, buffer_len: int = 8192) -> str:
    """Internal function to calculate the hash of an input stream.

    :param input_stream: The input stream that supports `readinto`.
    :param algo: The hashlib algorithm name, defaults to sha1.
    :param buffer_len: Internal buffer length, defaults to 8192
    :return: The hex digest string.
    """
    h = hashlib.new(algo)
    b = bytearray(buffer_len)
    mv = memoryview(b)
    for n in iter(lambda: input_stream.readinto(mv), 0):
        h.update(mv[:n])
    return h.hexdigest()


def calc_input_sha1(input_stream, *, buffer_len: int = 8192) -> str:
    """Shortcut for `calc_input_hash` with sha1 algorithm.
    """
    return calc_input_hash(input_stream, "sha1", buffer_len=buffer_len)


def validate_local(file: Path, expected_hash: Optional[str], algo: str = "sha1") -> bool:
    """Validate that a file exists and matches the given hash. If no hash is given, the
    file is trusted as soon as it exists.

    :param file: The path of the file to validate.
    :param expected_hash: The expected hex digest, case insensitive.
    :param algo: The hash algorithm to check against.
    :return: True if the file exists and its hash matches (or no hash is provided).
    """
    if not file.is_file():
        return False
    if expected_hash is None:
        return True
    try:
        with file.open("rb") as fp:
            return calc_input_hash(fp, algo) == expected_hash.lower()
    except OSError:
        return False


_SENTINEL = object()


def parallel_map(func: Callable[[T], R], items: Iterable[T], workers: int) -> Iterator[Tuple[T, R]]:
    """Apply a function to every item using a bounded number of threads. Results are
    yielded in completion order to the calling thread, which is the only one that should
    consume them, so any shared state updated from results is never concurrently
    mutated.

    :param func: The function to apply, it's called from worker threads.
    :param items: The items to process.
    :param workers: Maximum number of worker threads, never more than items.
    :return: An iterator of (item, result) tuples.
    :raises Exception: The first exception raised by `func` is re-raised here.
    """

    items = list(items)
    if not len(items):
        return

    workers = max(1, min(workers, len(items)))

    items_queue: Queue = Queue()
    result_queue: Queue = Queue()

    for item in items:
        items_queue.put(item)

    # One sentinel per thread, each one should be consumed ONCE.
    for _ in range(workers):
        items_queue.put(_SENTINEL)

    for th_id in range(workers):
        th = Thread(target=_parallel_thread,
                    args=(func, items_queue, result_queue),
                    daemon=True,
                    name=f"Parallel Thread {th_id}")
        th.start()

    for _ in range(len(items)):
        item, result, error = result_queue.get()
        if error is not None:
            raise error
        yield item, result


def _parallel_thread(func: Callable[[Any], Any], items_queue: Queue, result_queue: Queue) -> None:
    while True:
        item = items_queue.get()
        if item is _SENTINEL:
            break
        try:
            result_queue.put((item, func(item), None))
        except Exception as e:
            result_queue.put((item, None, e))


class LibrarySpecifier:
    """A maven-style library specifier.
    """

    __slots__ = "group", "artifact", "version", "classifier", "extension"

    def __init__(self, group: str, artifact: str, version: str, classifier: Optional[str] = None, extension: str = "jar"):
        self.group = group
        self.artifact = artifact
        self.version = version
        self.classifier = classifier
        self.extension = extension

    @classmethod
    def from_str(cls, s: str) -> "LibrarySpecifier":
        """Parse a library specifier string 'group:artifact:version[:classifier]'.
        """

        ext_split = s.rsplit("@", maxsplit=1)
        ext = "jar" if len(ext_split) == 1 else ext_split[1]

        if not len(ext):
            raise ValueError("invalid library specifier: empty extension")

        parts = ext_split[0].split(":", 3)

        if len(parts) < 3:
            raise ValueError("invalid library specifier: too few parts")
        else:
            return LibrarySpecifier(parts[0], parts[1], parts[2], parts[3] if len(parts) == 4 else None, ext)

    def __str__(self) -> str:
        return f"{self.group}:{self.artifact}:{self.version}" + \
            ("" if self.classifier is None else f":{self.classifier}") + \
            ("" if self.extension == "jar" else f"@{self.extension}")

    def __eq__(self, other) -> bool:
        return isinstance(other, LibrarySpecifier) and \
            (self.group, self.artifact, self.version, self.classifier, self.extension) == \
            (other.group, other.artifact, other.version, other.classifier, other.extension)

    def __repr__(self) -> str:
        return f"<LibrarySpecifier {self}>"

    def __hash__(self) -> int:
        return hash((self.group, self.artifact, self.version, self.classifier, self.extension))

    def file_path(self) -> str:
        """Return the standard path to store the file of this specifier.

        The path separator will always be forward slashes '/', because it's compatible
        with linux/mac/windows and URL paths.

        Specifier `com.foo.bar:artifact:version@zip` gives
        `com/foo/bar/artifact/version/artifact-version.zip`.
        """

        file_name = f"{self.artifact}-{self.version}" + \
            ("" if self.classifier is None else f"-{self.classifier}") + \
            f".{self.extension}"

        return "/".join([*self.group.split("."), self.artifact, self.version, file_name])


def get_os_name() -> str:
    """Return the name of the running OS as used by Mojang's metadata rules.
    """
    return {
        "Linux": "linux",
        "Windows": "windows",
        "Darwin": "osx",
    }.get(platform.system(), "unknown_os")


def get_arch_bits() -> str:
    """Return the pointer width of the running interpreter, used to substitute the
    `${arch}` token of native classifiers.
    """
    return {
        "64bit": "64",
        "32bit": "32"
    }.get(platform.architecture()[0], "64")
