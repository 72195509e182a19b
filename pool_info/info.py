"""
pool.info: resolve -> fetch -> render pipeline
"""

import enum
import logging
from typing import Optional, Sequence, TextIO

from pool_info.errors import UsageError
from pool_info.property_collector import PropertyFetcher, paths_for_output
from pool_info.report import render_structured, render_table
from pool_info.resolver import ReferenceResolver

logger = logging.getLogger(__name__)

POOL_NAME_HELP = """
POOL may be an absolute or relative path to a resource pool or a (clustered)
compute host. If it resolves to a compute host, the associated root resource
pool is returned. If a relative path is specified, it is resolved with respect
to the current datacenter's "host" folder (i.e. /ha-datacenter/host).

Paths to nested resource pools must traverse through the root resource pool of
the selected compute host, i.e. "compute-host/Resources".

Shell-style globbing applies to every path component. For example, POOL may be
specified as "*/Resources/*" to expand to all resource pools that are nested
one level under the root resource pool, on all (clustered) compute hosts in the
current datacenter.
"""


class OutputMode(enum.Enum):
    TABULAR = "tabular"
    STRUCTURED = "structured"


def run_report(
    patterns: Sequence[str],
    output_mode: OutputMode,
    *,
    resolver: ReferenceResolver,
    fetcher: PropertyFetcher,
    sink: TextIO,
    scope: Optional[str] = None,
) -> None:
    """
    Resolve patterns, fetch pool properties and write the report to sink.

    Raises UsageError, ResolutionError or RetrievalError; nothing is written
    to sink unless every stage succeeds.
    """
    if not patterns:
        raise UsageError()

    refs = resolver.resolve_all(scope, patterns)

    structured = output_mode is OutputMode.STRUCTURED
    records = fetcher.fetch(refs, paths_for_output(structured))

    if structured:
        report = render_structured(records)
    else:
        report = render_table(records)

    sink.write(report)


class PoolInfoCommand:
    """Retrieve information about one or more resource POOLs."""

    name = "pool.info"
    usage = "POOL..."
    description = "Retrieve information about one or more resource POOLs.\n" + POOL_NAME_HELP

    def register(self, parser) -> None:
        parser.add_argument("--dc", dest="datacenter", default=None,
                            help="Datacenter name [POOL_INFO_DATACENTER]")
        parser.add_argument("--json", action="store_true",
                            help="Write full property set as JSON")
        parser.add_argument("pools", nargs="*", metavar="POOL")

    def run(self, args, connect, sink: TextIO) -> None:
        """
        Args:
            args: parsed argparse namespace
            connect: callable returning a session exposing inventory,
                retriever, datacenter and resolve_workers
            sink: output stream
        """
        # Reject before a session is opened
        if not args.pools:
            raise UsageError()

        session = connect()
        resolver = ReferenceResolver(session.inventory, max_workers=session.resolve_workers)
        fetcher = PropertyFetcher(session.retriever)
        mode = OutputMode.STRUCTURED if args.json else OutputMode.TABULAR
        logger.debug(f"Running {self.name} for {len(args.pools)} pattern(s), output={mode.value}")

        run_report(
            args.pools,
            mode,
            resolver=resolver,
            fetcher=fetcher,
            sink=sink,
            scope=args.datacenter or session.datacenter,
        )
