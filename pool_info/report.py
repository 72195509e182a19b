"""
Resource pool report rendering.

Tabular output follows the govc pool.info layout; structured output is a
plain JSON dump of the fetched records.
"""

import json
from typing import Dict, List, Sequence

from pool_info.models import AllocationInfo, CustomShares, ResourcePoolRecord, UsageSnapshot


class TabWriter:
    """
    Elastic tabstop aligner for tab-separated lines.

    A cell is text terminated by a tab; the trailing text of a line is not
    part of any column. The width of a column is taken across every run of
    consecutive lines that have a cell in that column, so a run spans lines
    of different shapes as long as the column exists in each of them.
    """

    def __init__(self, minwidth: int = 2, padding: int = 2, padchar: str = " "):
        self.minwidth = minwidth
        self.padding = padding
        self.padchar = padchar
        self._lines: List[str] = []

    def write(self, line: str) -> None:
        self._lines.append(line)

    def _column_widths(self, rows: List[List[str]], start: int, end: int, col: int,
                       widths: List[Dict[int, int]]) -> None:
        i = start
        while i < end:
            if len(rows[i]) - 1 <= col:
                i += 1
                continue

            j = i
            while j < end and len(rows[j]) - 1 > col:
                j += 1

            width = max(len(rows[k][col]) for k in range(i, j)) + self.padding
            width = max(width, self.minwidth)
            for k in range(i, j):
                widths[k][col] = width

            self._column_widths(rows, i, j, col + 1, widths)
            i = j

    def getvalue(self) -> str:
        rows = [line.split("\t") for line in self._lines]
        widths: List[Dict[int, int]] = [{} for _ in rows]
        self._column_widths(rows, 0, len(rows), 0, widths)

        out = []
        for row, row_widths in zip(rows, widths):
            cells = [cell.ljust(row_widths[col], self.padchar) for col, cell in enumerate(row[:-1])]
            cells.append(row[-1])
            out.append("".join(cells) + "\n")
        return "".join(out)


def format_usage(usage: UsageSnapshot, units: str) -> str:
    return f"{usage.overall_usage}{units} ({usage.utilization:.1f}%)"


def format_shares(allocation: AllocationInfo) -> str:
    shares = allocation.shares
    if isinstance(shares, CustomShares):
        return f"{shares.label} ({shares.shares})"
    return shares.label


def format_reservation(allocation: AllocationInfo, units: str) -> str:
    expandable = "true" if allocation.expandable else "false"
    return f"{allocation.reservation}{units} (expandable={expandable})"


def format_limit(allocation: AllocationInfo, units: str) -> str:
    if allocation.unlimited:
        return "unlimited"
    return f"{allocation.limit}{units}"


def _write_dimension(tw: TabWriter, name: str, units: str,
                     usage: UsageSnapshot, allocation: AllocationInfo) -> None:
    tw.write(f"  {name} Usage:\t{format_usage(usage, units)}")
    tw.write(f"  {name} Shares:\t{format_shares(allocation)}")
    tw.write(f"  {name} Reservation:\t{format_reservation(allocation, units)}")
    tw.write(f"  {name} Limit:\t{format_limit(allocation, units)}")


def render_table(records: Sequence[ResourcePoolRecord]) -> str:
    """Render one Name/CPU/Mem block per record, in record order."""
    # govc's tabwriter (minwidth 2, padding 2): every line shares one column,
    # so "Name:" is padded to the width of "  CPU Reservation:"
    tw = TabWriter()

    for pool in records:
        tw.write(f"Name:\t{pool.name}")
        _write_dimension(tw, "CPU", "MHz", pool.cpu_usage, pool.cpu_allocation)
        _write_dimension(tw, "Mem", "MB", pool.memory_usage, pool.memory_allocation)

    return tw.getvalue()


def render_structured(records: Sequence[ResourcePoolRecord]) -> str:
    """Serialize records as a JSON document, without derived fields."""
    document = {
        "resource_pools": [record.model_dump(mode="json") for record in records],
    }
    return json.dumps(document, indent=2) + "\n"
