from argparse import ArgumentParser, ArgumentTypeError
from pathlib import Path

from ..standard import DEFAULT_VERSION
from ..config import Config

from .output import Output
from .lang import get as _

from typing import Optional, List, Tuple


DEFAULT_SERVER_PORT = 25565


# The following classes are only used for type checking and represent a typed namespace
# as produced by the arguments registered to the argument parser.

class RootNs:
    data_dir: Optional[Path]
    config_file: Optional[Path]
    timeout: Optional[float]
    out_kind: str
    verbose: int
    # Initialized by main function after argument parsing.
    out: Output
    config: Config

class StartNs(RootNs):
    dry: bool
    username: Optional[str]
    uuid: Optional[str]
    server: Optional[Tuple[str, int]]
    version: str

class ValidateNs(RootNs):
    force: bool
    version: str


def register_arguments() -> ArgumentParser:
    parser = ArgumentParser(allow_abbrev=False, prog="crystalmc", description=_("args"))
    parser.add_argument("--data-dir", help=_("args.data_dir"), type=Path)
    parser.add_argument("--config", help=_("args.config"), dest="config_file", type=Path)
    parser.add_argument("--timeout", help=_("args.timeout"), type=float)
    parser.add_argument("--output", help=_("args.output"), dest="out_kind", choices=get_outputs(), default="human-color")
    parser.add_argument("-v", dest="verbose", help=_("args.verbose"), action="count", default=0)
    register_subcommands(parser.add_subparsers(title="subcommands", dest="subcommand"))
    return parser


def register_subcommands(subparsers):
    register_start_arguments(subparsers.add_parser("start", help=_("args.start")))
    register_validate_arguments(subparsers.add_parser("validate", help=_("args.validate")))
    register_java_arguments(subparsers.add_parser("java", help=_("args.java")))
    register_show_arguments(subparsers.add_parser("show", help=_("args.show")))


def register_start_arguments(parser: ArgumentParser):
    parser.add_argument("--dry", help=_("args.start.dry"), action="store_true")
    parser.add_argument("-u", "--username", help=_("args.start.username"), metavar="NAME")
    parser.add_argument("-i", "--uuid", help=_("args.start.uuid"))
    parser.add_argument("-s", "--server", help=_("args.start.server"), type=server_from_str, metavar="HOST[:PORT]")
    parser.add_argument("version", nargs="?", default=DEFAULT_VERSION, help=_("args.start.version", default=DEFAULT_VERSION))


def register_validate_arguments(parser: ArgumentParser):
    parser.add_argument("--force", help=_("args.validate.force"), action="store_true")
    parser.add_argument("version", nargs="?", default=DEFAULT_VERSION, help=_("args.validate.version", default=DEFAULT_VERSION))


def register_java_arguments(parser: ArgumentParser):
    subparsers = parser.add_subparsers(title="subcommands", dest="java_subcommand")
    subparsers.required = True
    subparsers.add_parser("search", help=_("args.java.search"))
    subparsers.add_parser("install", help=_("args.java.install"))


def register_show_arguments(parser: ArgumentParser):
    subparsers = parser.add_subparsers(title="subcommands", dest="show_subcommand")
    subparsers.required = True
    subparsers.add_parser("about", help=_("args.show.about"))
    subparsers.add_parser("config", help=_("args.show.config"))


def get_outputs() -> List[str]:
    return ["human-color", "human", "machine"]


def server_from_str(s: str) -> Tuple[str, int]:
    host, sep, port = s.rpartition(":")
    if not sep:
        host, port = s, str(DEFAULT_SERVER_PORT)
    if not len(host) or not port.isdigit():
        raise ArgumentTypeError(_("args.start.server.invalid", given=s))
    return (host, int(port))
