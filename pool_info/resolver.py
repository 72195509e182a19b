"""
Reference resolution: resource pool name patterns -> object references.

The inventory collaborator owns the pattern semantics (see
pool_info.vsphere.VSphereInventory); this module only orders, concatenates
and error-wraps its results.
"""

import logging
import concurrent.futures
from typing import List, Optional, Protocol, Sequence

from pool_info.errors import ResolutionError, describe_fault
from pool_info.models import ObjectReference

logger = logging.getLogger(__name__)


class Inventory(Protocol):
    def resolve_objects(self, scope: Optional[str], pattern: str) -> List[ObjectReference]:
        ...


class ReferenceResolver:
    """Resolve name patterns to object references, preserving argument order."""

    def __init__(self, inventory: Inventory, max_workers: int = 1):
        self.inventory = inventory
        self.max_workers = max(1, max_workers)

    def resolve(self, scope: Optional[str], pattern: str) -> List[ObjectReference]:
        """
        Resolve a single pattern.

        Zero matches is not an error. Any failure of the inventory lookup is
        raised as ResolutionError.
        """
        try:
            refs = list(self.inventory.resolve_objects(scope, pattern))
        except ResolutionError:
            raise
        except Exception as e:
            raise ResolutionError(f"Failed to resolve '{pattern}': {describe_fault(e)}", pattern=pattern) from e

        logger.debug(f"Pattern '{pattern}' resolved to {len(refs)} object(s)")
        return refs

    def resolve_all(self, scope: Optional[str], patterns: Sequence[str]) -> List[ObjectReference]:
        """Resolve every pattern and concatenate the results in argument order (no dedup)."""
        if self.max_workers == 1 or len(patterns) < 2:
            results = [self.resolve(scope, pattern) for pattern in patterns]
        else:
            workers = min(self.max_workers, len(patterns))
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(self.resolve, scope, pattern) for pattern in patterns]
                # Collect in submission order so the first failing pattern wins
                results = [future.result() for future in futures]

        refs: List[ObjectReference] = []
        for matched in results:
            refs.extend(matched)

        logger.info(f"Resolved {len(patterns)} pattern(s) to {len(refs)} resource pool(s)")
        return refs
