"""Main module of the CrystalMC command line interface.
"""

import logging
import socket
import sys

from .parse import register_arguments, RootNs, StartNs, ValidateNs
from .output import Output, HumanOutput, MachineOutput
from .lang import get as _

from ..event import SimpleWatcher, ProgressEvent, CompleteEvent, ErrorEvent, ValidateEvent, \
    StateEvent, ProcessOutputEvent
from ..standard import Installer, Launcher, LaunchAttempt
from ..download import DownloadOrchestrator
from ..provision import JavaProvisioner, ProvisionError
from ..java import get_java_discovery, DiscoveryError
from ..manifest import ManifestError
from ..launch import LaunchError
from ..auth import OfflineAuthSession
from ..config import Config

from typing import cast, Optional, List, Union, Dict, Callable, Any


EXIT_OK = 0
EXIT_FAILURE = 1

LOG_FORMAT = "[%(asctime)s] [%(threadName)s/%(levelname)s] [%(name)s]: %(message)s"

CommandHandler = Callable[[Any], Any]
CommandTree = Dict[str, Union[CommandHandler, "CommandTree"]]


def main(args: Optional[List[str]] = None):
    """Main entry point of the CLI. This function parses the input arguments and try to
    find a command handler to dispatch to. These command handlers are specified by the
    `get_command_handlers` function.
    """

    parser = register_arguments()
    ns: RootNs = cast(RootNs, parser.parse_args(args or sys.argv[1:]))

    logging.basicConfig(level=get_log_level(ns.verbose), format=LOG_FORMAT)

    # Setup common objects in the namespace.
    ns.out = get_output(ns.out_kind)
    ns.config = Config(ns.config_file)
    socket.setdefaulttimeout(ns.timeout)

    # Find the command handler and run it.
    command_handlers = get_command_handlers()
    command_attr = "subcommand"
    while True:
        command = getattr(ns, command_attr)
        handler = command_handlers.get(command)
        if handler is None:
            parser.print_help()
            sys.exit(EXIT_FAILURE)
        elif callable(handler):
            cmd(handler, ns)
        elif isinstance(handler, dict):
            command_attr = f"{command}_{command_attr}"
            command_handlers = handler
            continue
        sys.exit(EXIT_OK)


def get_output(kind: str) -> Output:
    """Internal function that construct the output depending on its kind.
    The kind is constrained by choices set to the arguments parser.
    """

    if kind == "human-color":
        return HumanOutput(True)
    elif kind == "human":
        return HumanOutput(False)
    elif kind == "machine":
        return MachineOutput()
    else:
        raise ValueError()


def get_log_level(verbose: int) -> int:
    if verbose >= 2:
        return logging.DEBUG
    elif verbose == 1:
        return logging.INFO
    else:
        return logging.WARNING


def get_command_handlers() -> CommandTree:
    """Internal function returns the tree of command handlers for each subcommand
    of the CLI argument parser.
    """

    return {
        "start": cmd_start,
        "validate": cmd_validate,
        "java": {
            "search": cmd_java_search,
            "install": cmd_java_install,
        },
        "show": {
            "about": cmd_show_about,
            "config": cmd_show_config,
        },
    }


def cmd(handler: CommandHandler, ns: RootNs):
    """Generic command handler that loads the configuration and launch the given handler
    with the given namespace, it handles error in order to pretty print them.
    """

    try:

        ns.config.load()
        if ns.data_dir is not None:
            ns.config.data_dir = ns.data_dir.absolute()
            ns.config.save()

        handler(ns)
        sys.exit(EXIT_OK)

    except ManifestError as error:
        ns.out.task("FAILED", "error.manifest", version=error.version, code=error.code, origin=error.origin)
        ns.out.finish()

    except DiscoveryError as error:
        ns.out.task("FAILED", "error.discovery", system=error.system)
        ns.out.finish()

    except ProvisionError as error:
        ns.out.task("FAILED", f"error.provision.{error.code}", detail=error.detail)
        ns.out.finish()

    except LaunchError as error:
        ns.out.task("FAILED", f"error.launch.{error.code}", detail=error.detail)
        ns.out.finish()

    except ValueError as error:
        ns.out.task("FAILED", None)
        ns.out.finish()
        for arg in error.args:
            ns.out.task(None, "echo", echo=arg)
            ns.out.finish()

    except KeyboardInterrupt:
        ns.out.finish()
        ns.out.task("HALT", "keyboard_interrupt")
        ns.out.finish()

    except OSError as error:

        from urllib.error import URLError
        from ssl import SSLCertVerificationError

        key = "error.os"
        if isinstance(error, URLError) and isinstance(error.reason, SSLCertVerificationError):
            key = "error.cert"
        elif isinstance(error, (URLError, socket.gaierror, socket.timeout)):
            key = "error.socket"

        ns.out.task("FAILED", None)
        ns.out.finish()
        ns.out.task(None, key)
        ns.out.finish()

        import traceback
        traceback.print_exc()

    sys.exit(EXIT_FAILURE)


def cmd_start(ns: StartNs):

    launcher = Launcher(ns.config,
        session=OfflineAuthSession(ns.username, ns.uuid),
        watcher=CliWatcher(ns),
        timeout=ns.timeout)

    attempt = launcher.launch(ns.version, ns.server, dry=ns.dry)

    if ns.dry:
        ns.out.task("INFO", "start.dry")
        ns.out.finish()
        if ns.verbose >= 1:
            ns.out.task(None, "start.args", args=" ".join(attempt.args or []))
            ns.out.finish()
        sys.exit(EXIT_OK)

    process = attempt.process
    if attempt.state == LaunchAttempt.CRASHED:
        ns.out.task("FAILED", "start.crashed", code=attempt.exit_code)
        ns.out.finish()
        if process is not None and process.crash_report is not None:
            ns.out.task(None, "start.crash_report", path=process.crash_report)
            ns.out.finish()
        sys.exit(EXIT_FAILURE)

    if process is not None and process.missing_main_class:
        ns.out.task("FAILED", "start.missing_main_class")
        ns.out.finish()
        sys.exit(EXIT_FAILURE)

    # The game logged its own shutdown before exiting.
    stopped = process is not None and process.stopped
    ns.out.task("OK", "start.stopped" if stopped else "start.exited", code=attempt.exit_code)
    ns.out.finish()
    sys.exit(EXIT_OK if attempt.exit_code == 0 else EXIT_FAILURE)


def cmd_validate(ns: ValidateNs):

    installer = Installer(ns.config, watcher=CliWatcher(ns), timeout=ns.timeout)
    result = installer.validate_everything(ns.version, ns.force)

    if result.error is not None:
        raise result.error

    if result.failures:
        ns.out.task("WARN", "validate.failures", count=result.failures)
        ns.out.finish()
        sys.exit(EXIT_FAILURE)

    ns.out.task("OK", "validate.done")
    ns.out.finish()


def cmd_java_search(ns: RootNs):

    discovery = get_java_discovery()

    ns.out.task("..", "java.searching")
    candidates = discovery.candidates(ns.config.data_dir)
    ns.out.finish()

    if not len(candidates):
        ns.out.task("WARN", "java.not_found")
        ns.out.finish()
        sys.exit(EXIT_FAILURE)

    table = ns.out.table()
    table.add(_("java.version"), _("java.arch"), _("java.vendor"), _("java.path"))
    table.separator()
    for candidate in candidates:
        table.add(candidate.version, candidate.arch, candidate.vendor or "", candidate.exec_path)
    table.print()


def cmd_java_install(ns: RootNs):

    watcher = CliWatcher(ns)
    orchestrator = DownloadOrchestrator(watcher=watcher)
    provisioner = JavaProvisioner(orchestrator, watcher=watcher, timeout=ns.timeout)

    exec_path = provisioner.provision(ns.config.data_dir)
    ns.config.java_executable = str(exec_path)
    ns.config.save()

    ns.out.task("OK", "java.configured", path=exec_path)
    ns.out.finish()


def cmd_show_about(ns: RootNs):

    from .. import LAUNCHER_VERSION, LAUNCHER_AUTHORS, LAUNCHER_URL, LAUNCHER_COPYRIGHT

    print(f"Version: {LAUNCHER_VERSION}")
    print(f"Authors: {', '.join(LAUNCHER_AUTHORS)}")
    print(f"Website: {LAUNCHER_URL}")
    print(f"License: {LAUNCHER_COPYRIGHT}")
    print( "         This program comes with ABSOLUTELY NO WARRANTY. This is free software,")
    print( "         and you are welcome to redistribute it under certain conditions.")
    print( "         See <https://www.gnu.org/licenses/gpl-3.0.html>.")


def cmd_show_config(ns: RootNs):

    table = ns.out.table()
    table.add("Key", "Value")
    table.separator()

    for section, values in ns.config.settings.items():
        for key, value in values.items():
            table.add(f"{section}.{key}", value)

    table.add("file", ns.config.path)
    table.print()


class CliWatcher(SimpleWatcher):
    """Watcher printing the progress of the provisioning and launch to the output.
    """

    def __init__(self, ns: RootNs) -> None:

        def state(e: StateEvent) -> None:
            if e.state in (LaunchAttempt.JAVA_READY, LaunchAttempt.RUNNING):
                ns.out.task("OK", f"start.state.{e.state}")
                ns.out.finish()
            elif e.state == LaunchAttempt.JAVA_FAILED:
                ns.out.task("FAILED", f"start.state.{e.state}")
                ns.out.finish()
            elif e.state not in (LaunchAttempt.EXITED, LaunchAttempt.CRASHED):
                ns.out.task("..", f"start.state.{e.state}")

        def progress(e: ProgressEvent) -> None:
            ns.out.task("..", f"progress.{e.data}", value=e.value, total=e.total, percent=e.percent)

        def validate(e: ValidateEvent) -> None:
            ns.out.task("OK", f"validate.{e.phase}")
            ns.out.finish()

        def complete(e: CompleteEvent) -> None:
            if e.data == "download":
                ns.out.task("OK", "download.complete")
                ns.out.finish()
            elif e.data == "java":
                ns.out.task("OK", "java.installed", path=e.value)
                ns.out.finish()

        def error(e: ErrorEvent) -> None:
            if e.data == "download":
                ns.out.task("WARN", "download.error", error=e.error)
                ns.out.finish()

        def output(e: ProcessOutputEvent) -> None:
            ns.out.print(f"{e.line}\n")

        super().__init__({
            StateEvent: state,
            ProgressEvent: progress,
            ValidateEvent: validate,
            CompleteEvent: complete,
            ErrorEvent: error,
            ProcessOutputEvent: output,
        })
