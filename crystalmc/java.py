"""Discovery and validation of Java runtimes installed on the system. The launcher
requires a 64 bits Java 8 runtime, newer than update 52.
"""

from subprocess import run, PIPE, STDOUT, SubprocessError
from pathlib import Path
import platform
import logging
import re
import os

from typing import Optional, Callable, List, Set, Tuple


logger = logging.getLogger(__name__)


PROBE_TIMEOUT = 10

_LEGACY_VERSION_PATTERN = re.compile(r"^1\.(\d+)\.\d+(?:_(\d+))?")
_LEGACY_BUILD_PATTERN = re.compile(r"-b(\d+)")
_MODERN_VERSION_PATTERN = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?[^+]*(?:\+(\d+))?")


class JavaVersion:
    """A Java runtime version, either with the legacy format `1.8.0_152-b16`
    (major 8, update 152, build 16) or the modern one `10.0.2+13` (major 10, minor 0,
    revision 2, build 13).
    """

    __slots__ = "major", "minor", "revision", "update", "build", "legacy"

    def __init__(self, major: int, *,
        minor: int = 0,
        revision: int = 0,
        update: int = 0,
        build: int = 0,
        legacy: bool = False
    ) -> None:
        self.major = major
        self.minor = minor
        self.revision = revision
        self.update = update
        self.build = build
        self.legacy = legacy

    @classmethod
    def parse(cls, s: str) -> "JavaVersion":
        """Parse a full runtime version string, the format is detected from the first
        component.

        :raises ValueError: If the string isn't a valid version.
        """

        s = s.strip()
        if s.split(".", 1)[0] == "1":
            match = _LEGACY_VERSION_PATTERN.match(s)
            if match is None:
                raise ValueError(f"invalid java version: {s}")
            build_match = _LEGACY_BUILD_PATTERN.search(s)
            return cls(int(match[1]),
                update=int(match[2] or 0),
                build=0 if build_match is None else int(build_match[1]),
                legacy=True)
        else:
            match = _MODERN_VERSION_PATTERN.match(s)
            if match is None:
                raise ValueError(f"invalid java version: {s}")
            return cls(int(match[1]),
                minor=int(match[2] or 0),
                revision=int(match[3] or 0),
                build=int(match[4] or 0))

    def sort_key(self) -> Tuple[int, int, int, int, int]:
        return self.major, self.minor, self.revision, self.update, self.build

    def __eq__(self, other) -> bool:
        return isinstance(other, JavaVersion) and self.sort_key() == other.sort_key()

    def __lt__(self, other: "JavaVersion") -> bool:
        return self.sort_key() < other.sort_key()

    def __hash__(self) -> int:
        return hash(self.sort_key())

    def __str__(self) -> str:
        if self.legacy:
            return f"1.{self.major}.0_{self.update}-b{self.build}"
        return f"{self.major}.{self.minor}.{self.revision}+{self.build}"

    def __repr__(self) -> str:
        return f"<JavaVersion {self}>"


class JavaCandidate:
    """A Java runtime found on the system, with the properties read from its executable.
    It's valid only if the runtime is 64 bits and version 8 newer than update 52.
    """

    __slots__ = "exec_path", "version", "arch", "vendor", "valid"

    def __init__(self, exec_path: Path) -> None:
        self.exec_path = exec_path
        self.version: Optional[JavaVersion] = None
        self.arch: Optional[int] = None
        self.vendor: Optional[str] = None
        self.valid = False

    @property
    def jdk(self) -> bool:
        return "jdk" in str(self.exec_path).lower()

    def sort_key(self) -> tuple:
        """Sort key placing best candidates first: higher versions, then runtimes before
        development kits, then by path to stay deterministic.
        """
        version_key = (0,) * 5 if self.version is None else self.version.sort_key()
        return tuple(-n for n in version_key), self.jdk, str(self.exec_path)

    def __repr__(self) -> str:
        return f"<JavaCandidate {self.exec_path} version: {self.version}, arch: {self.arch}, valid: {self.valid}>"


def sort_candidates(candidates: List[JavaCandidate]) -> List[JavaCandidate]:
    return sorted(candidates, key=JavaCandidate.sort_key)


def java_exec_from_root(root: Path, system: Optional[str] = None) -> Path:
    """Return the path of the executable of a Java installation given its root
    directory.
    """
    system = platform.system() if system is None else system
    if system == "Windows":
        return root / "bin" / "javaw.exe"
    elif system == "Darwin":
        return root / "Contents" / "Home" / "bin" / "java"
    elif system == "Linux":
        return root / "bin" / "java"
    return root


def is_java_exec_path(path: Path, system: Optional[str] = None) -> bool:
    """Check if the path points to a java executable given its name.
    """
    system = platform.system() if system is None else system
    if system == "Windows":
        return path.name == "javaw.exe" and path.parent.name == "bin"
    elif system in ("Darwin", "Linux"):
        return path.name == "java" and path.parent.name == "bin"
    return False


def validate_jvm_properties(output: str, candidate: JavaCandidate) -> JavaCandidate:
    """Fill the candidate with the properties printed by `-XshowSettings:properties`.

    :raises ValueError: If a property can't be parsed.
    """

    checks = 0
    for line in output.splitlines():
        if "sun.arch.data.model" in line:
            arch = int(line.split("=", 1)[1].strip())
            candidate.arch = arch
            if arch == 64:
                checks += 1
        elif "java.runtime.version" in line:
            version = JavaVersion.parse(line.split("=", 1)[1])
            candidate.version = version
            if version.major == 8 and version.update > 52:
                checks += 1
        elif "java.vendor " in line:
            # Space included so we get only the vendor.
            candidate.vendor = line.split("=", 1)[1].strip()

    candidate.valid = checks == 2
    return candidate


def validate_java_binary(exec_path: Path) -> JavaCandidate:
    """Validate a java executable by running it and reading its properties. This never
    raises, any error gives an invalid candidate.
    """

    candidate = JavaCandidate(exec_path)

    if not is_java_exec_path(exec_path) or not exec_path.is_file():
        return candidate

    # The windowed executable doesn't print anything.
    probe_path = exec_path.with_name("java.exe") if exec_path.name == "javaw.exe" else exec_path

    try:
        completed = run([str(probe_path), "-XshowSettings:properties", "-version"],
            stdout=PIPE, stderr=STDOUT, timeout=PROBE_TIMEOUT,
            universal_newlines=True, encoding="utf-8", errors="replace")
        validate_jvm_properties(completed.stdout, candidate)
    except (OSError, SubprocessError, ValueError, IndexError) as e:
        logger.debug("Failed to validate java binary %s: %s", exec_path, e)
        candidate.valid = False

    logger.debug("Validated %r", candidate)
    return candidate


class JavaDiscovery:
    """Base class of the discovery of Java installations, one subclass exists for each
    platform family, see `get_java_discovery`.

    :param validator: Function validating a java executable, mostly for testing purpose.
    """

    system: str

    def __init__(self, validator: Callable[[Path], JavaCandidate] = validate_java_binary) -> None:
        self.validator = validator

    def roots(self, data_dir: Path) -> Set[Path]:
        """Return the root directories of the possible Java installations.
        """
        raise NotImplementedError

    def exec_from_root(self, root: Path) -> Path:
        return java_exec_from_root(root, self.system)

    def candidates(self, data_dir: Path) -> List[JavaCandidate]:
        """Return all valid candidates, best first.
        """
        valid = []
        for root in self.roots(data_dir):
            candidate = self.validator(self.exec_from_root(root))
            if candidate.valid:
                valid.append(candidate)
        return sort_candidates(valid)

    def discover(self, data_dir: Path) -> Optional[Path]:
        """Return the executable of the best valid Java installation, or none.
        """
        candidates = self.candidates(data_dir)
        if not len(candidates):
            logger.info("No valid java installation found")
            return None
        logger.info("Found java %s at %s", candidates[0].version, candidates[0].exec_path)
        return candidates[0].exec_path

    def discover_or_raise(self, data_dir: Path) -> Path:
        exec_path = self.discover(data_dir)
        if exec_path is None:
            raise DiscoveryError(self.system)
        return exec_path

    def scan_file_system(self, scan_dir: Path) -> Set[Path]:
        """Return every child directory of the scanned directory that contains a java
        executable.
        """
        res = set()
        try:
            for child in scan_dir.iterdir():
                if self.exec_from_root(child).is_file():
                    res.add(child)
        except OSError:
            pass
        return res

    @staticmethod
    def scan_java_home() -> Optional[Path]:
        java_home = os.environ.get("JAVA_HOME")
        if not java_home:
            return None
        try:
            path = Path(java_home)
            return path if path.exists() else None
        except (OSError, ValueError):
            return None


class WindowsJavaDiscovery(JavaDiscovery):

    system = "Windows"

    REGISTRY_KEYS = [
        "SOFTWARE\\JavaSoft\\Java Runtime Environment",
        "SOFTWARE\\JavaSoft\\Java Development Kit"
    ]

    PROGRAM_DIRS = [
        Path("C:\\Program Files\\Java"),
        Path("C:\\Program Files\\AdoptOpenJDK")
    ]

    def roots(self, data_dir: Path) -> Set[Path]:

        roots = self.scan_registry()
        if not len(roots):
            for program_dir in self.PROGRAM_DIRS:
                roots |= self.scan_file_system(program_dir)

        roots |= self.scan_file_system(data_dir / "runtime" / "x64")

        java_home = self.scan_java_home()
        if java_home is not None and "(x86)" not in str(java_home):
            roots.add(java_home)

        return roots

    def scan_registry(self) -> Set[Path]:
        """Scan the 64 bits view of the registry for Java 8 installations.
        """

        import winreg

        res = set()
        for key_path in self.REGISTRY_KEYS:

            try:
                key = winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_path, 0, winreg.KEY_READ | winreg.KEY_WOW64_64KEY)
            except OSError:
                continue

            with key:
                index = 0
                while True:
                    try:
                        sub_name = winreg.EnumKey(key, index)
                    except OSError:
                        break
                    index += 1
                    # Only Java 8 is supported.
                    if re.match(r"^1\.8(?!\d)", sub_name) is None:
                        continue
                    try:
                        with winreg.OpenKey(key, sub_name) as sub_key:
                            java_home, _ = winreg.QueryValueEx(sub_key, "JavaHome")
                    except OSError:
                        continue
                    if isinstance(java_home, str) and "(x86)" not in java_home:
                        res.add(Path(java_home))

        return res


class DarwinJavaDiscovery(JavaDiscovery):

    system = "Darwin"

    VIRTUAL_MACHINES_DIR = Path("/Library/Java/JavaVirtualMachines")
    INTERNET_PLUGIN_DIR = Path("/Library/Internet Plug-Ins/JavaAppletPlugin.plugin")

    def roots(self, data_dir: Path) -> Set[Path]:

        roots = self.scan_file_system(self.VIRTUAL_MACHINES_DIR)
        roots |= self.scan_file_system(data_dir / "runtime" / "x64")

        if self.exec_from_root(self.INTERNET_PLUGIN_DIR).is_file():
            roots.add(self.INTERNET_PLUGIN_DIR)

        java_home = self.scan_java_home()
        if java_home is not None:
            # Ensure we are at the absolute root.
            java_home_str = str(java_home)
            if "/Contents/Home" in java_home_str:
                java_home = Path(java_home_str[:java_home_str.index("/Contents/Home")])
            roots.add(java_home)

        return roots


class LinuxJavaDiscovery(JavaDiscovery):

    system = "Linux"

    JVM_DIR = Path("/usr/lib/jvm")

    def roots(self, data_dir: Path) -> Set[Path]:

        roots = self.scan_file_system(self.JVM_DIR)
        roots |= self.scan_file_system(data_dir / "runtime" / "x64")

        java_home = self.scan_java_home()
        if java_home is not None:
            roots.add(java_home)

        return roots


def get_java_discovery(system: Optional[str] = None) -> JavaDiscovery:
    """Return the discovery implementation for the running platform.

    :raises DiscoveryError: If the platform is not supported.
    """
    system = platform.system() if system is None else system
    discovery_type = {
        "Windows": WindowsJavaDiscovery,
        "Darwin": DarwinJavaDiscovery,
        "Linux": LinuxJavaDiscovery
    }.get(system)
    if discovery_type is None:
        raise DiscoveryError(system)
    return discovery_type()


class DiscoveryError(Exception):
    """Raised when no valid Java installation has been found.
    """

    def __init__(self, system: str) -> None:
        self.system = system

    def __str__(self) -> str:
        return f"no valid java installation found on {self.system}"
