"""Composition of the game's command line from the resolved artifacts, and the running
game process whose output is watched for crashes.
"""

from subprocess import Popen, PIPE, STDOUT
from pathlib import Path
import tempfile
import platform
import logging
import secrets
import shutil
import re
import os

from .artifact import Library
from .auth import AuthSession
from .config import Config
from .event import Watcher, ProcessOutputEvent
from .manifest import VersionManifest
from .natives import extract_all
from . import LAUNCHER_DISPLAY_NAME

from typing import Optional, List, Dict, Tuple


logger = logging.getLogger(__name__)
game_logger = logging.getLogger("crystalmc.game")


DEFAULT_GAME_ARGUMENTS = "--username ${auth_player_name} --version ${version_name} " \
    "--gameDir ${game_directory} --assetsDir ${assets_root} --assetIndex ${assets_index_name} " \
    "--uuid ${auth_uuid} --accessToken ${auth_access_token} --userProperties ${user_properties} " \
    "--userType ${user_type}"

CRASH_MARKER = "#@!@# Game crashed! Crash report saved to: #@!@#"
MISSING_MAIN_CLASS_MARKER = "Could not find or load main class"
STOP_PATTERN = re.compile(r"^.+ \[Client thread/INFO\]: Stopping!$")

_ARG_PATTERN = re.compile(r"^\$\{(.*)\}$")


class LaunchComposer:
    """Compose the game's process from a resolved manifest and its libraries.

    :param libraries: The included libraries of the manifest, natives are extracted and
    the other ones are put in the class path.
    :param server_libraries: Libraries declared by the server or modpack, they override
    the manifest's libraries with the same version independent id.
    :param server: Optional server (host, port) to connect to on startup.
    :param template: Explicit game arguments template, replacing the manifest's one.
    """

    def __init__(self,
        config: Config,
        manifest: VersionManifest,
        libraries: List[Library], *,
        session: Optional[AuthSession] = None,
        server_libraries: Optional[List[Library]] = None,
        server: Optional[Tuple[str, int]] = None,
        template: Optional[str] = None,
        java_exec: Optional[str] = None,
        icon: Optional[Path] = None,
        watcher: Optional[Watcher] = None,
        system: Optional[str] = None
    ) -> None:
        self.config = config
        self.manifest = manifest
        self.libraries = libraries
        self.session = session
        self.server_libraries = [] if server_libraries is None else server_libraries
        self.server = server
        self.template = template
        self.java_exec = java_exec
        self.icon = icon
        self.watcher = Watcher() if watcher is None else watcher
        self.system = platform.system() if system is None else system

    def classpath(self) -> List[str]:
        """Class path of the game: version jar, optional extra loader, then the merged
        libraries.
        """

        version_id = self.manifest.id
        cp = [str(self.config.common_dir / "versions" / version_id / f"{version_id}.jar")]

        if self.config.extra_loader is not None:
            cp.append(self.config.extra_loader)

        # Insertion ordering is guaranteed on dictionaries, an overriding library keeps
        # the position of the one it overrides.
        libs: Dict[str, str] = {}
        for lib in self.libraries:
            if not lib.native:
                libs[lib.version_independent_id] = str(lib.dst)
        for lib in self.server_libraries:
            libs[lib.version_independent_id] = str(lib.dst)

        cp.extend(libs.values())
        return [trim_jar_path(entry) for entry in cp]

    def jvm_args(self, native_dir: Path) -> List[str]:
        """Full arguments given to the java executable, game arguments included.

        :raises LaunchError: If the manifest has no main class.
        """

        args = ["-cp", os.pathsep.join(self.classpath())]

        if self.system == "Darwin":
            args.append(f"-Xdock:name={LAUNCHER_DISPLAY_NAME}")
            if self.icon is not None:
                args.append(f"-Xdock:icon={self.icon}")

        args.append(f"-Xmx{self.config.max_ram}")
        args.append(f"-Xms{self.config.min_ram}")
        args.extend(self.config.jvm_options)
        args.append(f"-Djava.library.path={native_dir}")

        if self.manifest.main_class is None:
            raise LaunchError(LaunchError.NO_MAIN_CLASS, self.manifest.id)

        args.append(self.manifest.main_class)
        args.extend(self.game_args())
        return args

    def args_replacements(self) -> Dict[str, str]:

        replacements = {
            "version_name": LAUNCHER_DISPLAY_NAME,
            "game_directory": str(self.config.instance_dir),
            "assets_root": str(self.config.common_dir / "assets"),
            "user_properties": "{}",
        }

        if self.manifest.assets is not None:
            replacements["assets_index_name"] = self.manifest.assets
        if self.manifest.type is not None:
            replacements["version_type"] = self.manifest.type
        if self.session is not None:
            replacements.update(self.session.args_replacements())

        return replacements

    def game_args(self) -> List[str]:
        """Game arguments from the template, with the known placeholders replaced,
        followed by the resolution and the server to connect to.
        """

        template = self.template
        if template is None:
            template = self.manifest.minecraft_arguments
        if template is None:
            template = DEFAULT_GAME_ARGUMENTS

        replacements = self.args_replacements()

        args = []
        for token in template.split():
            match = _ARG_PATTERN.match(token)
            if match is not None:
                args.append(replacements.get(match[1], token))
            else:
                args.append(token)

        if self.config.fullscreen:
            args.extend(("--fullscreen", "true"))
        else:
            args.extend(("--width", str(self.config.game_width), "--height", str(self.config.game_height)))

        if self.config.auto_connect and self.server is not None:
            host, port = self.server
            args.extend(("--server", host, "--port", str(port)))

        return args

    def gen_native_dir(self) -> Path:
        """Generate a random named directory for the natives in the system's temporary
        directory. The directory isn't created by this method.
        """
        return Path(tempfile.gettempdir()) / self.config.temp_native_folder / secrets.token_hex(16)

    def build(self) -> "GameProcess":
        """Extract the natives and spawn the game's process.

        :raises LaunchError: If the process can't be started.
        """

        java_exec = self.java_exec or self.config.java_executable
        if java_exec is None:
            raise LaunchError(LaunchError.NO_JAVA, self.manifest.id)

        game_dir = self.config.instance_dir
        game_dir.mkdir(parents=True, exist_ok=True)

        native_dir = self.gen_native_dir()
        try:
            extract_all(self.libraries, native_dir)
            args = self.jvm_args(native_dir)
        except Exception:
            shutil.rmtree(native_dir, ignore_errors=True)
            raise

        logger.info("Launch Arguments: %s", args)

        try:
            process = Popen([java_exec, *args],
                cwd=game_dir,
                stdout=PIPE,
                stderr=STDOUT,
                bufsize=1,
                universal_newlines=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=self.config.launch_detached)
        except OSError as e:
            shutil.rmtree(native_dir, ignore_errors=True)
            raise LaunchError(LaunchError.SPAWN, str(e))

        return GameProcess(process, native_dir, watcher=self.watcher)


class GameProcess:
    """A running game process. Its output is streamed when waiting for it, crash and
    stop markers are detected along the way.
    """

    def __init__(self, process: Popen, native_dir: Path, *, watcher: Optional[Watcher] = None) -> None:
        self.process = process
        self.native_dir = native_dir
        self.watcher = Watcher() if watcher is None else watcher
        self.crashed = False
        self.crash_report: Optional[str] = None
        self.stopped = False
        self.missing_main_class = False

    def feed(self, line: str) -> None:
        """Handle a line of the game's output.
        """

        game_logger.info(line)
        self.watcher.handle(ProcessOutputEvent(line))

        marker_idx = line.find(CRASH_MARKER)
        if marker_idx != -1:
            self.crashed = True
            self.crash_report = line[marker_idx + len(CRASH_MARKER):].strip() or None
            logger.error("Game crashed, crash report saved to: %s", self.crash_report)
        elif STOP_PATTERN.match(line) is not None:
            self.stopped = True
        elif MISSING_MAIN_CLASS_MARKER in line:
            self.missing_main_class = True
            logger.error("Game main class could not be found")

    def wait(self) -> int:
        """Stream the game's output until it exits, then delete the natives directory.
        A keyboard interrupt kills the game.

        :return: The exit code of the game.
        """

        stdout = self.process.stdout
        try:
            if stdout is not None:
                for line in iter(stdout.readline, ""):
                    self.feed(line.rstrip("\r\n"))
        except KeyboardInterrupt:
            self.process.kill()
            raise
        finally:
            code = self.process.wait()
            logger.info("Exited with code %d", code)
            self.cleanup()

        return code

    def cleanup(self) -> None:
        try:
            shutil.rmtree(self.native_dir)
            logger.debug("Temp dir deleted successfully.")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Error while deleting temp dir %s: %s", self.native_dir, e)


def trim_jar_path(entry: str) -> str:
    """Trim a class path entry to end exactly at its `.jar` extension.
    """
    idx = entry.find(".jar")
    if idx != -1 and idx != len(entry) - 4:
        return entry[:idx + 4]
    return entry


class LaunchError(Exception):
    """Raised when the game can't be launched.
    """

    NO_JAVA = "no_java"
    NO_MAIN_CLASS = "no_main_class"
    SPAWN = "spawn"

    def __init__(self, code: str, detail: str) -> None:
        self.code = code
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.code}: {self.detail}"
