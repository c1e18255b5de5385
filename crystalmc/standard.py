"""Standard provisioning and launch sequence. The installer validates everything
the game needs and downloads what is missing, the launcher runs the whole launch state
machine from the Java check to the game's exit.
"""

from pathlib import Path
import logging

from .download import DownloadOrchestrator, CategoryReport
from .resolve import AssetResolver, LibraryResolver, MiscResolver
from .manifest import ManifestLoader, ManifestError, VersionManifest
from .event import Watcher, WatcherGroup, SimpleWatcher, ProgressEvent, ValidateEvent, StateEvent
from .java import JavaDiscovery, get_java_discovery, validate_java_binary
from .provision import JavaProvisioner, ProvisionError
from .launch import LaunchComposer, GameProcess
from .auth import AuthSession, OfflineAuthSession
from .artifact import Asset, Library
from .config import Config

from typing import Optional, List, Tuple


logger = logging.getLogger(__name__)


DEFAULT_VERSION = "1.8.9"


class ValidationResult:
    """Result of the validation of everything, the manifest is none if it couldn't be
    loaded, in such case the error is set.
    """

    __slots__ = "manifest", "libraries", "reports", "error"

    def __init__(self,
        manifest: Optional[VersionManifest],
        libraries: List[Library],
        reports: List[CategoryReport],
        error: Optional[Exception] = None
    ) -> None:
        self.manifest = manifest
        self.libraries = libraries
        self.reports = reports
        self.error = error

    @property
    def failures(self) -> int:
        return sum(report.failures for report in self.reports)


class Installer:
    """Validate the version manifest, the assets, libraries and miscellaneous files of a
    version, then download everything that is invalid.
    """

    def __init__(self, config: Config, *,
        orchestrator: Optional[DownloadOrchestrator] = None,
        watcher: Optional[Watcher] = None,
        timeout: Optional[float] = None
    ) -> None:
        self.config = config
        self.watcher = Watcher() if watcher is None else watcher
        self.orchestrator = DownloadOrchestrator(watcher=self.watcher) if orchestrator is None else orchestrator
        self.manifest_loader = ManifestLoader(config.common_dir, config.distribution_url, timeout=timeout)
        self.asset_resolver = AssetResolver(config.common_dir, self.orchestrator.queue("assets"), watcher=self.watcher, timeout=timeout)
        self.library_resolver = LibraryResolver(config.common_dir, self.orchestrator.queue("libraries"))
        self.misc_resolver = MiscResolver(config.common_dir, self.orchestrator.queue("files"))

    def validate_version(self, version: str, force: bool = False) -> VersionManifest:
        manifest = self.manifest_loader.load(version, force)
        self.watcher.handle(ValidateEvent("version"))
        return manifest

    def validate_assets(self, manifest: VersionManifest, force: bool = False) -> List[Asset]:
        assets = self.asset_resolver.resolve(manifest, force)
        self.watcher.handle(ValidateEvent("assets"))
        return assets

    def validate_libraries(self, manifest: VersionManifest) -> List[Library]:
        libraries = self.library_resolver.resolve(manifest)
        self.watcher.handle(ValidateEvent("libraries"))
        return libraries

    def validate_files(self, manifest: VersionManifest) -> List[Asset]:
        files = self.misc_resolver.resolve(manifest)
        self.watcher.handle(ValidateEvent("files"))
        return files

    def download(self) -> List[CategoryReport]:
        return self.orchestrator.process_queues()

    def validate_everything(self, version: str = DEFAULT_VERSION, force: bool = True) -> ValidationResult:
        """Validate everything and download what's missing or invalid. A manifest error
        doesn't raise but gives a result without manifest.
        """

        try:
            manifest = self.validate_version(version, force)
            self.validate_assets(manifest)
            libraries = self.validate_libraries(manifest)
            self.validate_files(manifest)
        except ManifestError as e:
            logger.error("Failed to validate version %s: %s", version, e)
            return ValidationResult(None, [], [], e)

        reports = self.download()
        return ValidationResult(manifest, libraries, reports)


class LaunchAttempt:
    """State machine of a launch attempt. Every transition is checked and emits a
    `StateEvent`.
    """

    INIT = "init"
    JAVA_CHECK = "java_check"
    JAVA_READY = "java_ready"
    JAVA_PROVISIONING = "java_provisioning"
    JAVA_FAILED = "java_failed"
    VALIDATE_VERSION = "validate_version"
    VALIDATE_ASSETS = "validate_assets"
    VALIDATE_LIBRARIES = "validate_libraries"
    VALIDATE_FILES = "validate_files"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    LAUNCHING = "launching"
    RUNNING = "running"
    EXITED = "exited"
    CRASHED = "crashed"

    TRANSITIONS = {
        INIT: (JAVA_CHECK,),
        JAVA_CHECK: (JAVA_READY, JAVA_PROVISIONING),
        JAVA_PROVISIONING: (JAVA_READY, JAVA_FAILED),
        JAVA_READY: (VALIDATE_VERSION,),
        VALIDATE_VERSION: (VALIDATE_ASSETS,),
        VALIDATE_ASSETS: (VALIDATE_LIBRARIES,),
        VALIDATE_LIBRARIES: (VALIDATE_FILES,),
        VALIDATE_FILES: (DOWNLOADING,),
        DOWNLOADING: (EXTRACTING, LAUNCHING),
        EXTRACTING: (LAUNCHING,),
        LAUNCHING: (RUNNING,),
        RUNNING: (EXITED, CRASHED),
    }

    def __init__(self, watcher: Optional[Watcher] = None) -> None:
        self.watcher = Watcher() if watcher is None else watcher
        self.state = LaunchAttempt.INIT
        self.history = [LaunchAttempt.INIT]
        self.java_exec: Optional[Path] = None
        self.manifest: Optional[VersionManifest] = None
        self.reports: List[CategoryReport] = []
        self.args: Optional[List[str]] = None
        self.process: Optional[GameProcess] = None
        self.exit_code: Optional[int] = None

    def transition(self, state: str) -> None:
        """Move to the given state.

        :raises ValueError: If the transition isn't allowed from the current state.
        """
        if state not in LaunchAttempt.TRANSITIONS.get(self.state, ()):
            raise ValueError(f"illegal transition from {self.state} to {state}")
        previous = self.state
        self.state = state
        self.history.append(state)
        logger.debug("Launch state %s -> %s", previous, state)
        self.watcher.handle(StateEvent(previous, state))

    @property
    def terminal(self) -> bool:
        return self.state not in LaunchAttempt.TRANSITIONS

    def __repr__(self) -> str:
        return f"<LaunchAttempt {self.state}>"


class Launcher:
    """Run the full launch sequence of a version: check java, provisioning it if needed,
    validate and download everything, then run the game and wait for it.
    """

    def __init__(self, config: Config, *,
        session: Optional[AuthSession] = None,
        watcher: Optional[Watcher] = None,
        timeout: Optional[float] = None,
        discovery: Optional[JavaDiscovery] = None,
        server_libraries: Optional[List[Library]] = None,
        template: Optional[str] = None,
        extract_tool: Optional[Path] = None
    ) -> None:
        self.config = config
        self.session = OfflineAuthSession() if session is None else session
        self.watcher = Watcher() if watcher is None else watcher
        self.timeout = timeout
        self.discovery = discovery
        self.server_libraries = server_libraries
        self.template = template
        self.extract_tool = extract_tool

    def ensure_java(self, attempt: LaunchAttempt, provisioner: JavaProvisioner) -> Path:
        """Find a valid java executable: the configured one, else the best discovered
        one, else a provisioned one. The result is saved to the configuration.

        :raises ProvisionError: If no runtime is installed and none can be provisioned.
        """

        attempt.transition(LaunchAttempt.JAVA_CHECK)

        java_exec = None
        if self.config.java_executable is not None:
            configured = Path(self.config.java_executable)
            if validate_java_binary(configured).valid:
                java_exec = configured
            else:
                logger.warning("Configured java executable %s is not valid", configured)

        if java_exec is None:
            discovery = get_java_discovery() if self.discovery is None else self.discovery
            java_exec = discovery.discover(self.config.data_dir)

        if java_exec is None:
            attempt.transition(LaunchAttempt.JAVA_PROVISIONING)
            try:
                java_exec = provisioner.provision(self.config.data_dir)
            except ProvisionError:
                attempt.transition(LaunchAttempt.JAVA_FAILED)
                raise

        self.config.java_executable = str(java_exec)
        self.config.save()

        attempt.java_exec = java_exec
        attempt.transition(LaunchAttempt.JAVA_READY)
        return java_exec

    def launch(self, version: str = DEFAULT_VERSION, server: Optional[Tuple[str, int]] = None, *,
        dry: bool = False
    ) -> LaunchAttempt:
        """Launch the given version and wait for the game to exit.

        :param server: Optional server (host, port) to connect to on startup.
        :param dry: Stop before spawning the game, the arguments are available in the
        returned attempt.
        :return: The final attempt, its state tells how the game ended.
        """

        watcher = WatcherGroup()
        watcher.add(self.watcher)
        attempt = LaunchAttempt(watcher)

        def on_progress(event: ProgressEvent) -> None:
            if event.data == "extract" and attempt.state == LaunchAttempt.DOWNLOADING:
                attempt.transition(LaunchAttempt.EXTRACTING)

        watcher.add(SimpleWatcher({ProgressEvent: on_progress}))

        orchestrator = DownloadOrchestrator(watcher=watcher, extract_tool=self.extract_tool)
        installer = Installer(self.config, orchestrator=orchestrator, watcher=watcher, timeout=self.timeout)
        provisioner = JavaProvisioner(orchestrator, watcher=watcher, timeout=self.timeout)

        java_exec = self.ensure_java(attempt, provisioner)
        orchestrator.java_exec = str(java_exec)

        attempt.transition(LaunchAttempt.VALIDATE_VERSION)
        manifest = attempt.manifest = installer.validate_version(version, True)
        attempt.transition(LaunchAttempt.VALIDATE_ASSETS)
        installer.validate_assets(manifest)
        attempt.transition(LaunchAttempt.VALIDATE_LIBRARIES)
        libraries = installer.validate_libraries(manifest)
        attempt.transition(LaunchAttempt.VALIDATE_FILES)
        installer.validate_files(manifest)

        attempt.transition(LaunchAttempt.DOWNLOADING)
        attempt.reports = installer.download()

        attempt.transition(LaunchAttempt.LAUNCHING)
        composer = LaunchComposer(self.config, manifest, libraries,
            session=self.session,
            server_libraries=self.server_libraries,
            server=server,
            template=self.template,
            java_exec=str(java_exec),
            watcher=watcher)

        if dry:
            attempt.args = composer.jvm_args(composer.gen_native_dir())
            return attempt

        process = attempt.process = composer.build()
        attempt.args = process.process.args[1:]
        attempt.transition(LaunchAttempt.RUNNING)
        attempt.exit_code = process.wait()

        if process.crashed:
            attempt.transition(LaunchAttempt.CRASHED)
        else:
            attempt.transition(LaunchAttempt.EXITED)

        return attempt
