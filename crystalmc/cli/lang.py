"""Messages of the CLI, formatted with keyword arguments.
"""

from ..util import jvm_bin_filename

from typing import Optional


def get_raw(key: str, kwargs: Optional[dict]) -> str:
    """Get a message formatted with the given keyword arguments, the key itself is
    returned if the message doesn't exist.
    """
    try:
        return lang[key].format_map(kwargs or {})
    except KeyError:
        return key


def get(key: str, **kwargs) -> str:
    return get_raw(key, kwargs)


lang = {
    # Args root
    "args": "CrystalMC provisions and launches the CrystalClient game: the version, its "
        "assets and libraries are validated and downloaded, a Java runtime is found or "
        "installed and the game is started.",
    "args.data_dir": "Set the data directory where the game runs and where runtimes are "
        "installed, it is saved in the configuration.",
    "args.config": "Set the configuration file to use instead of the launcher's one.",
    "args.timeout": "Set a global timeout (in decimal seconds) for network requests.",
    "args.output": "Set the output format of the launcher, defaults to human-color.",
    "args.verbose": "Enable verbose logging, -v for information and -vv for debugging.",
    # Args start
    "args.start": "Start the game.",
    "args.start.version": "Version identifier, defaults to {default}.",
    "args.start.dry": "Prepare everything but don't start the game.",
    "args.start.username": "Set the offline username.",
    "args.start.uuid": "Set the offline UUID.",
    "args.start.server": "Connect to a server on startup (<host>[:<port>]).",
    "args.start.server.invalid": "invalid server '{given}', expected <host>[:<port>]",
    # Args validate
    "args.validate": "Validate a version and download what's missing or corrupted.",
    "args.validate.version": "Version identifier, defaults to {default}.",
    "args.validate.force": "Fetch the version manifest even if it's cached.",
    # Args java
    "args.java": "Find or install a Java runtime.",
    "args.java.search": "List the valid Java installations, best first.",
    "args.java.install": "Install the latest OpenJDK 8 runtime in the data directory.",
    # Args show
    "args.show": "Show and debug various data.",
    "args.show.about": "Display authors, version and license of CrystalMC.",
    "args.show.config": "Display the current configuration.",
    # Common
    "echo": "{echo}",
    "cancelled": "Cancelled.",
    "keyboard_interrupt": "Interrupted.",
    "error.os": "Operating system error, see the trace below.",
    "error.socket": "This operation requires an operational network, but a socket error happened.",
    "error.cert": "Certificate verification failed, you can try installing 'certifi' certificates.",
    "error.manifest": "Failed to load version {version} ({code}): {origin}",
    "error.discovery": "No Java installation found and the platform {system} isn't supported.",
    "error.provision.no_build": "No Java build available for {detail}.",
    "error.provision.download": "Failed to download the Java runtime: {detail}",
    "error.provision.extract": "Failed to extract the Java runtime: {detail}",
    "error.launch.no_java": "No Java executable to start {detail}.",
    "error.launch.no_main_class": "Version {detail} has no main class.",
    "error.launch.spawn": "Failed to start the game: {detail}",
    # Start
    "start.state.java_check": "Checking Java runtime...",
    "start.state.java_provisioning": "Installing a Java runtime...",
    "start.state.java_ready": "Java runtime ready.",
    "start.state.java_failed": "No Java runtime available.",
    "start.state.validate_version": "Loading version...",
    "start.state.validate_assets": "Validating assets...",
    "start.state.validate_libraries": "Validating libraries...",
    "start.state.validate_files": "Validating files...",
    "start.state.downloading": "Downloading...",
    "start.state.extracting": "Extracting archives...",
    "start.state.launching": "Launching...",
    "start.state.running": "Game is running.",
    "start.dry": "Dry run, stopping before the game starts.",
    "start.args": "Arguments: {args}",
    "start.exited": "Game exited with code {code}.",
    "start.stopped": "Game stopped, exited with code {code}.",
    "start.crashed": "Game crashed, exit code {code}.",
    "start.crash_report": "Crash report: {path}",
    "start.missing_main_class": "The game's main class could not be loaded, the installation may be corrupted.",
    # Validate
    "validate.version": "Version loaded.",
    "validate.assets": "Assets validated.",
    "validate.libraries": "Libraries validated.",
    "validate.files": "Files validated.",
    "validate.failures": "{count} file(s) failed to download.",
    "validate.done": "Everything is valid.",
    # Progress
    "progress.download": "Downloading {value}/{total} bytes ({percent}%)",
    "progress.assets": "Validating assets {value}/{total} ({percent}%)",
    "progress.extract": "Extracting archives",
    # Download
    "download.complete": "Downloads processed.",
    "download.error": "{error}",
    # Java
    "java.installed": "Java runtime installed at {path}.",
    "java.configured": "Java executable set to {path}.",
    "java.not_found": f"No valid '{jvm_bin_filename}' installation found.",
    "java.searching": "Searching Java installations...",
    "java.version": "Version",
    "java.arch": "Arch",
    "java.vendor": "Vendor",
    "java.path": "Path",
}
