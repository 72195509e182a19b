"""
pool-info command line entry point.

Usage:
    pool-info [--host HOST] [--user USER] pool.info [--dc DC] [--json] POOL...
"""

import sys
import getpass
import logging
import argparse
from typing import Callable, Dict, List, Optional

from pool_info import __version__
from pool_info.config import settings
from pool_info.errors import PoolInfoError, UsageError
from pool_info.info import PoolInfoCommand

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2

COMMANDS: Dict[str, Callable[[], object]] = {
    PoolInfoCommand.name: PoolInfoCommand,
}


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def build_parser(commands: Dict[str, Callable[[], object]]):
    parser = argparse.ArgumentParser(prog="pool-info", description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--host", default=settings.vcenter_host, help="vCenter hostname or IP")
    parser.add_argument("--user", default=settings.vcenter_user, help="vCenter username")
    parser.add_argument("--port", type=int, default=settings.vcenter_port, help="vCenter port")
    parser.add_argument("--insecure", action="store_true",
                        help="Skip SSL certificate verification [POOL_INFO_VERIFY_SSL=false]")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    instances = {}
    for name, factory in commands.items():
        command = factory()
        sub = subparsers.add_parser(
            name,
            usage=f"pool-info {name} [OPTIONS] {command.usage}",
            description=command.description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        command.register(sub)
        instances[name] = (command, sub)

    return parser, instances


def vsphere_connector(args) -> Callable[[], object]:
    """Return a callable that opens the vSphere session on first use."""

    def connect():
        from pool_info.vsphere import VSphereSession, connect_vcenter

        password = settings.vcenter_password or getpass.getpass(f"vCenter Password for {args.user}: ")
        si = connect_vcenter(
            host=args.host,
            username=args.user,
            password=password,
            port=args.port,
            verify_ssl=settings.verify_ssl and not args.insecure,
        )
        return VSphereSession(
            si,
            datacenter=settings.datacenter,
            resolve_workers=settings.resolve_workers,
            page_size=settings.page_size,
        )

    return connect


def dispatch(argv: Optional[List[str]], commands: Dict[str, Callable[[], object]],
             connector: Callable = vsphere_connector, sink=None) -> int:
    """Parse argv, run the selected command and map errors to exit codes."""
    parser, instances = build_parser(commands)
    args = parser.parse_args(argv)
    configure_logging(args.debug)

    command, sub = instances[args.command]
    try:
        command.run(args, connector(args), sink or sys.stdout)
    except UsageError as e:
        sub.print_usage(sys.stderr)
        print(f"{args.command}: {e.message}", file=sys.stderr)
        return EXIT_USAGE
    except PoolInfoError as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"{args.command}: {e.message}", file=sys.stderr)
        return EXIT_ERROR

    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    return dispatch(argv, COMMANDS)


if __name__ == "__main__":
    sys.exit(main())
