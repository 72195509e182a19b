"""
PropertyCollector-based resource pool retrieval

Fetches the properties of every resolved resource pool in a single batched
retrieval and decodes the untyped property sets into ResourcePoolRecord
models. Property paths are mapped to record fields through PROPERTY_FIELDS,
which is validated at import time.

Two path modes are supported:
    NARROW_PATHS: the five properties needed by the tabular report
    FULL_PATHS:   empty list, the server returns every property of the object
"""

import time
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Protocol, Sequence, Tuple

from pydantic import ValidationError

from pool_info.errors import RetrievalError, describe_fault
from pool_info.models import (
    AllocationInfo,
    CustomShares,
    LevelShares,
    ObjectReference,
    ResourcePoolRecord,
    UsageSnapshot,
)

logger = logging.getLogger(__name__)

ObjectContent = Tuple[ObjectReference, Dict[str, Any]]


class PropertyRetriever(Protocol):
    def retrieve(self, refs: List[ObjectReference], paths: List[str]) -> List[ObjectContent]:
        ...


# =============================================================================
# Property Specifications
# =============================================================================

NARROW_PATHS: List[str] = [
    "name",
    "config.cpuAllocation",
    "config.memoryAllocation",
    "runtime.cpu",
    "runtime.memory",
]

FULL_PATHS: List[str] = []


def paths_for_output(structured: bool) -> List[str]:
    """Full property set for structured output, the report subset otherwise."""
    return list(FULL_PATHS if structured else NARROW_PATHS)


# =============================================================================
# Decoders
# =============================================================================

def _attr(value: Any, name: str) -> Any:
    """Read a field from a vmodl data object or a plain dict."""
    if isinstance(value, dict):
        return value.get(name)
    return getattr(value, name, None)


def _decode_name(raw: Any) -> str:
    return str(raw)


def _decode_shares(raw: Any):
    level = _attr(raw, "level")
    if level is None:
        return LevelShares()

    level = str(level)
    # SharesInfo.shares is only meaningful for the custom level
    if level == "custom":
        return CustomShares(shares=_attr(raw, "shares"))
    return LevelShares(level=level)


def _decode_allocation(raw: Any) -> AllocationInfo:
    fields: Dict[str, Any] = {}

    shares = _attr(raw, "shares")
    if shares is not None:
        fields["shares"] = _decode_shares(shares)

    for attr, field in (
        ("reservation", "reservation"),
        ("limit", "limit"),
        ("expandableReservation", "expandable_reservation"),
    ):
        value = _attr(raw, attr)
        if value is not None:
            fields[field] = value

    return AllocationInfo(**fields)


def _decode_usage(raw: Any) -> UsageSnapshot:
    fields: Dict[str, Any] = {}
    for attr, field in (("overallUsage", "overall_usage"), ("maxUsage", "max_usage")):
        value = _attr(raw, attr)
        if value is not None:
            fields[field] = value
    return UsageSnapshot(**fields)


# PropertyPath -> (ResourcePoolRecord field, decoder)
PROPERTY_FIELDS: Dict[str, Tuple[str, Callable[[Any], Any]]] = {
    "name": ("name", _decode_name),
    "config.cpuAllocation": ("cpu_allocation", _decode_allocation),
    "config.memoryAllocation": ("memory_allocation", _decode_allocation),
    "runtime.cpu": ("cpu_usage", _decode_usage),
    "runtime.memory": ("memory_usage", _decode_usage),
}


def _validate_property_table() -> None:
    for path, (field, _) in PROPERTY_FIELDS.items():
        if field not in ResourcePoolRecord.model_fields:
            raise RuntimeError(f"Property path '{path}' maps to unknown record field '{field}'")

    unmapped = [path for path in NARROW_PATHS if path not in PROPERTY_FIELDS]
    if unmapped:
        raise RuntimeError(f"Report property paths without a record field: {unmapped}")


_validate_property_table()


def validate_paths(paths: Sequence[str]) -> None:
    """Raise ValueError for any path the record decoder does not know about."""
    unknown = [path for path in paths if path not in PROPERTY_FIELDS]
    if unknown:
        raise ValueError(f"Unsupported property path(s): {', '.join(unknown)}")


def _lookup(props: Dict[str, Any], path: str) -> Any:
    """
    Resolve a dotted path against a fetched property set.

    Narrow fetches return the path itself as property name
    ('config.cpuAllocation'); full fetches return top-level properties only
    ('config'), so the remainder is walked attribute by attribute.
    """
    if path in props:
        return props[path]

    parts = path.split(".")
    for i in range(len(parts) - 1, 0, -1):
        prefix = ".".join(parts[:i])
        if prefix not in props:
            continue
        value = props[prefix]
        for part in parts[i:]:
            if value is None:
                return None
            value = _attr(value, part)
        return value

    return None


def _to_plain(value: Any) -> Any:
    """Convert vmodl data objects and references into JSON-safe values."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return str(value)  # vmodl enums are str subclasses
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, ObjectReference):
        return value.model_dump()
    if hasattr(value, "_moId"):
        return {"type": getattr(value, "_wsdlName", type(value).__name__), "value": value._moId}
    if isinstance(value, dict):
        return {str(k): _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_plain(v) for v in value]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if hasattr(value, "_GetPropertyList"):
        plain = {}
        for prop in value._GetPropertyList():
            item = getattr(value, prop.name, None)
            if item is not None:
                plain[prop.name] = _to_plain(item)
        return plain
    if hasattr(value, "__dict__"):
        return {k: _to_plain(v) for k, v in vars(value).items() if not k.startswith("_")}
    return str(value)


# =============================================================================
# Fetcher
# =============================================================================

class PropertyFetcher:
    """Batched property retrieval producing one record per input reference."""

    def __init__(self, retriever: PropertyRetriever):
        self.retriever = retriever

    def fetch(self, refs: Sequence[ObjectReference], paths: Sequence[str]) -> List[ResourcePoolRecord]:
        """
        Fetch and decode properties for every reference.

        Args:
            refs: resolved references, duplicates allowed
            paths: NARROW_PATHS, FULL_PATHS or any subset of PROPERTY_FIELDS

        Returns:
            Records in the order of refs, one per entry

        Raises:
            ValueError: unknown property path
            RetrievalError: remote failure or undecodable property set
        """
        paths = list(paths)
        validate_paths(paths)

        if not refs:
            logger.debug("No resource pools to fetch")
            return []

        start_time = time.time()
        try:
            contents = self.retriever.retrieve(list(refs), paths)
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(f"Property retrieval failed: {describe_fault(e)}") from e

        props_by_ref: Dict[ObjectReference, Dict[str, Any]] = {}
        for ref, props in contents:
            props_by_ref[ref] = props

        decoded: Dict[ObjectReference, ResourcePoolRecord] = {}
        records = []
        for ref in refs:
            if ref not in decoded:
                props = props_by_ref.get(ref)
                if props is None:
                    raise RetrievalError(f"No properties returned for {ref}")
                decoded[ref] = self._build_record(ref, props, paths)
            records.append(decoded[ref])

        fetch_time_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Fetched {len(decoded)} resource pool(s) in {fetch_time_ms}ms")
        return records

    def _build_record(self, ref: ObjectReference, props: Dict[str, Any],
                      paths: List[str]) -> ResourcePoolRecord:
        fields: Dict[str, Any] = {"reference": ref}

        try:
            for path, (field, decode) in PROPERTY_FIELDS.items():
                if paths and path not in paths:
                    continue
                value = _lookup(props, path)
                if value is None:
                    logger.debug(f"{ref}: '{path}' not set")
                    continue
                fields[field] = decode(value)

            if not paths:
                fields["properties"] = {name: _to_plain(value) for name, value in sorted(props.items())}

            return ResourcePoolRecord(**fields)
        except (ValidationError, TypeError, ValueError) as e:
            raise RetrievalError(f"Malformed properties for {ref}: {e}") from e

