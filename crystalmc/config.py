"""Launcher configuration, a nested settings dictionary persisted as a JSON file and
exposed through typed properties. The configuration is passed explicitly to every
component that needs it.
"""

from json import JSONDecodeError
from pathlib import Path
import platform
import logging
import copy
import json
import re
import os

from typing import Optional, List, Any


logger = logging.getLogger(__name__)


TEMP_NATIVE_FOLDER = "WCNatives"
DISTRIBUTION_URL = "https://libraries.crystaldev.co/CrystalClient.json"
DEFAULT_JVM_OPTIONS = [
    "-XX:+UseConcMarkSweepGC",
    "-XX:+CMSIncrementalMode",
    "-XX:-UseAdaptiveSizePolicy",
    "-Xmn128M"
]

_RAM_PATTERN = re.compile(r"^\d+[GM]$")


class Config:
    """The launcher configuration. Values live in the `settings` dictionary following
    the persisted layout (`java`, `game` and `launcher` sections).
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = get_launcher_dir() / "config.json" if path is None else path
        self.data = default_config()

    @property
    def settings(self) -> dict:
        return self.data["settings"]

    def load(self) -> None:
        """Load the configuration file. If the file doesn't exist, the default values are
        written to it. If it is corrupted, it's replaced by the default values. Otherwise
        missing or mistyped keys are reset to their default and the result saved back.
        """

        defaults = default_config()

        if not self.path.is_file():
            self.data = defaults
            self.save()
            return

        try:
            with self.path.open("rt", encoding="utf-8") as fp:
                data = json.load(fp)
        except (OSError, JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Configuration file contains malformed JSON or is corrupt: %s", e)
            logger.info("Generating a new configuration file.")
            self.data = defaults
            self.save()
            return

        self.data = validate_values(defaults, validate_key_set(defaults, data))
        self.save()
        logger.debug("Successfully loaded configuration from %s", self.path)

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("wt", encoding="utf-8") as fp:
            json.dump(self.data, fp, indent=4)

    def get(self, key: str) -> Any:
        """Get a setting from its dotted path, for example `java.maxRAM`.

        :raises KeyError: If the key doesn't exist.
        """
        value = self.settings
        for part in key.split("."):
            if not isinstance(value, dict):
                raise KeyError(key)
            value = value[part]
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a setting from its dotted path, the section must exist.
        """
        *sections, name = key.split(".")
        target = self.settings
        for part in sections:
            target = target[part]
        if name not in target:
            raise KeyError(key)
        target[name] = value

    # Java settings

    @property
    def min_ram(self) -> str:
        return self.settings["java"]["minRAM"]

    @min_ram.setter
    def min_ram(self, value: str) -> None:
        self.settings["java"]["minRAM"] = check_ram(value)

    @property
    def max_ram(self) -> str:
        return self.settings["java"]["maxRAM"]

    @max_ram.setter
    def max_ram(self, value: str) -> None:
        self.settings["java"]["maxRAM"] = check_ram(value)

    @property
    def java_executable(self) -> Optional[str]:
        return self.settings["java"]["executable"]

    @java_executable.setter
    def java_executable(self, value: Optional[str]) -> None:
        self.settings["java"]["executable"] = value

    @property
    def jvm_options(self) -> List[str]:
        return self.settings["java"]["jvmOptions"]

    @jvm_options.setter
    def jvm_options(self, value: List[str]) -> None:
        self.settings["java"]["jvmOptions"] = list(value)

    # Game settings

    @property
    def game_width(self) -> int:
        return self.settings["game"]["resWidth"]

    @game_width.setter
    def game_width(self, value: int) -> None:
        self.settings["game"]["resWidth"] = check_resolution(value)

    @property
    def game_height(self) -> int:
        return self.settings["game"]["resHeight"]

    @game_height.setter
    def game_height(self, value: int) -> None:
        self.settings["game"]["resHeight"] = check_resolution(value)

    @property
    def fullscreen(self) -> bool:
        return self.settings["game"]["fullscreen"]

    @fullscreen.setter
    def fullscreen(self, value: bool) -> None:
        self.settings["game"]["fullscreen"] = bool(value)

    @property
    def auto_connect(self) -> bool:
        return self.settings["game"]["autoConnect"]

    @auto_connect.setter
    def auto_connect(self, value: bool) -> None:
        self.settings["game"]["autoConnect"] = bool(value)

    @property
    def launch_detached(self) -> bool:
        return self.settings["game"]["launchDetached"]

    @launch_detached.setter
    def launch_detached(self, value: bool) -> None:
        self.settings["game"]["launchDetached"] = bool(value)

    @property
    def hide_launcher(self) -> bool:
        return self.settings["game"]["hideLauncher"]

    @hide_launcher.setter
    def hide_launcher(self, value: bool) -> None:
        self.settings["game"]["hideLauncher"] = bool(value)

    # Launcher settings

    @property
    def allow_prerelease(self) -> bool:
        return self.settings["launcher"]["allowPrerelease"]

    @allow_prerelease.setter
    def allow_prerelease(self, value: bool) -> None:
        self.settings["launcher"]["allowPrerelease"] = bool(value)

    @property
    def data_dir(self) -> Path:
        return Path(self.settings["launcher"]["dataDirectory"])

    @data_dir.setter
    def data_dir(self, value: Path) -> None:
        self.settings["launcher"]["dataDirectory"] = str(value)

    @property
    def common_dir(self) -> Path:
        """Directory of the files shared between instances: versions, assets and
        libraries.
        """
        return Path(self.settings["launcher"]["commonDirectory"])

    @common_dir.setter
    def common_dir(self, value: Path) -> None:
        self.settings["launcher"]["commonDirectory"] = str(value)

    @property
    def instance_dir(self) -> Path:
        """The game's working directory, it's the data directory itself.
        """
        return self.data_dir

    @property
    def extra_loader(self) -> Optional[str]:
        return self.settings["launcher"]["extraLoader"]

    @extra_loader.setter
    def extra_loader(self, value: Optional[str]) -> None:
        self.settings["launcher"]["extraLoader"] = value

    @property
    def distribution_url(self) -> str:
        return self.settings["launcher"]["distributionUrl"]

    @distribution_url.setter
    def distribution_url(self, value: str) -> None:
        self.settings["launcher"]["distributionUrl"] = value

    @property
    def temp_native_folder(self) -> str:
        return TEMP_NATIVE_FOLDER


def default_config() -> dict:
    """Build a fresh default configuration, the RAM values depend on the total physical
    memory of the machine.
    """
    max_ram = resolve_max_ram()
    return {
        "settings": {
            "java": {
                "minRAM": max_ram,
                "maxRAM": max_ram,
                "executable": None,
                "jvmOptions": list(DEFAULT_JVM_OPTIONS),
            },
            "game": {
                "resWidth": 1280,
                "resHeight": 720,
                "fullscreen": False,
                "autoConnect": True,
                "launchDetached": True,
                "hideLauncher": True
            },
            "launcher": {
                "allowPrerelease": False,
                "dataDirectory": str(get_data_dir()),
                "commonDirectory": str(Path.home() / ".crystalmc"),
                "extraLoader": None,
                "distributionUrl": DISTRIBUTION_URL
            }
        }
    }


def validate_key_set(src: dict, dst: Any) -> dict:
    """Return the destination dictionary validated against the source one. Keys missing
    from the destination take the source value, nested sections are validated
    recursively, values whose type differs from a non-null source value are reset and
    unknown keys are dropped.
    """

    if not isinstance(dst, dict):
        return copy.deepcopy(src)

    ret = {}
    for key, src_value in src.items():
        if key not in dst:
            ret[key] = copy.deepcopy(src_value)
            continue
        dst_value = dst[key]
        if isinstance(src_value, dict):
            ret[key] = validate_key_set(src_value, dst_value)
        elif src_value is None or _same_type(src_value, dst_value):
            ret[key] = dst_value
        else:
            logger.warning("Invalid configuration value for '%s', reset to default.", key)
            ret[key] = copy.deepcopy(src_value)
    return ret


def validate_values(src: dict, dst: dict) -> dict:
    """Reset the settings of a validated configuration whose value is invalid, for
    example a memory string that the JVM would reject.
    """
    checks = (
        ("java", "minRAM", check_ram),
        ("java", "maxRAM", check_ram),
        ("game", "resWidth", check_resolution),
        ("game", "resHeight", check_resolution),
    )

    for section, key, check in checks:
        dst_section = dst["settings"][section]
        try:
            check(dst_section[key])
        except ValueError as e:
            logger.warning("Invalid configuration value for '%s.%s', reset to default: %s", section, key, e)
            dst_section[key] = src["settings"][section][key]
    return dst


def _same_type(expected: Any, value: Any) -> bool:
    # Booleans are integers in Python, they should not be mixed.
    if isinstance(expected, bool) or isinstance(value, bool):
        return isinstance(expected, bool) and isinstance(value, bool)
    return isinstance(value, type(expected))


def check_ram(value: str) -> str:
    """Validate a memory string such as `4G` or `1024M`.

    :raises ValueError: If the value is not valid.
    """
    if not isinstance(value, str) or _RAM_PATTERN.match(value) is None:
        raise ValueError(f"invalid memory value: {value!r}")
    return value


def check_resolution(value: Any) -> int:
    try:
        res = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"invalid resolution: {value!r}")
    if res < 0:
        raise ValueError(f"invalid resolution: {value!r}")
    return res


def resolve_max_ram() -> str:
    """Default maximum memory given the total physical memory.
    """
    mem = get_total_memory()
    if mem is None:
        return "2G"
    return "4G" if mem >= 8000000000 else ("3G" if mem >= 6000000000 else "2G")


def get_total_memory() -> Optional[int]:
    """Return the total physical memory in bytes, or none if it can't be known.
    """

    if platform.system() == "Windows":
        import ctypes

        class MemoryStatus(ctypes.Structure):
            _fields_ = [
                ("dwLength", ctypes.c_ulong),
                ("dwMemoryLoad", ctypes.c_ulong),
                ("ullTotalPhys", ctypes.c_ulonglong),
                ("ullAvailPhys", ctypes.c_ulonglong),
                ("ullTotalPageFile", ctypes.c_ulonglong),
                ("ullAvailPageFile", ctypes.c_ulonglong),
                ("ullTotalVirtual", ctypes.c_ulonglong),
                ("ullAvailVirtual", ctypes.c_ulonglong),
                ("ullAvailExtendedVirtual", ctypes.c_ulonglong),
            ]

        status = MemoryStatus()
        status.dwLength = ctypes.sizeof(MemoryStatus)
        if not ctypes.windll.kernel32.GlobalMemoryStatusEx(ctypes.byref(status)):
            return None
        return status.ullTotalPhys

    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, ValueError, OSError):
        return None


def get_data_dir() -> Path:
    """Default directory where the game is installed and run from.
    """
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata) / ".minecraft"
    home = Path.home()
    if platform.system() == "Darwin":
        return home / "Library" / "Application Support" / "minecraft"
    return home / "minecraft"


def get_launcher_dir() -> Path:
    """Directory of the launcher's own files, including its configuration file.
    """
    home = Path.home()
    return {
        "Windows": Path(os.environ.get("APPDATA", home / "AppData" / "Roaming")) / "crystalmc",
        "Darwin": home / "Library" / "Application Support" / "crystalmc",
    }.get(platform.system(), home / ".config" / "crystalmc")
