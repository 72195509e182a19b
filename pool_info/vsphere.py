"""
vSphere collaborators for pool-info (pyVmomi)

Provides:
- connect_vcenter(): SmartConnect session setup
- VSphereInventory: resource pool path resolution over the inventory tree
- VSpherePropertyRetriever: batched RetrievePropertiesEx for object references
"""

import ssl
import atexit
import logging
import threading
from fnmatch import fnmatchcase
from typing import Any, Dict, List, NamedTuple, Optional

from pyVim.connect import SmartConnect, Disconnect
from pyVmomi import vim

from pool_info.errors import ConnectionFailedError, ResolutionError, describe_fault
from pool_info.models import ObjectReference

logger = logging.getLogger(__name__)

# Reference kinds the property retriever can address
MANAGED_TYPES = {
    "ResourcePool": vim.ResourcePool,
    "VirtualApp": vim.VirtualApp,
}

COMPUTE_RESOURCE_KINDS = ("ComputeResource", "ClusterComputeResource")
RESOURCE_POOL_KINDS = ("ResourcePool", "VirtualApp")


def connect_vcenter(host: str, username: str, password: str,
                    port: int = 443, verify_ssl: bool = False):
    """
    Connect to vCenter using pyVmomi.

    Returns:
        ServiceInstance, disconnected at interpreter exit

    Raises:
        ConnectionFailedError
    """
    ssl_context = ssl.create_default_context()
    if not verify_ssl:
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE

    try:
        si = SmartConnect(
            host=host,
            user=username,
            pwd=password,
            port=port,
            sslContext=ssl_context,
            disableSslCertValidation=not verify_ssl
        )
    except Exception as e:
        raise ConnectionFailedError(host, describe_fault(e)) from e

    atexit.register(Disconnect, si)
    logger.info(f"Connected to vCenter: {host}")
    return si


def _retrieve_contents(pc, filter_spec, page_size: int) -> List[Any]:
    """RetrievePropertiesEx with continuation token handling."""
    options = vim.PropertyCollector.RetrieveOptions(maxObjects=page_size)

    result = pc.RetrievePropertiesEx(specSet=[filter_spec], options=options)
    if result is None:
        return []

    objects = list(result.objects or [])
    token = result.token

    while token:
        result = pc.ContinueRetrievePropertiesEx(token)
        objects.extend(result.objects or [])
        token = result.token

    return objects


def _reference(obj) -> ObjectReference:
    return ObjectReference(type=obj._wsdlName, value=obj._moId)


def _parse_object_content(oc):
    """Parse ObjectContent into (ObjectReference, {property_name: value})."""
    ref = _reference(oc.obj)
    props = {p.name: p.val for p in (oc.propSet or [])}

    for missing in (oc.missingSet or []):
        logger.warning(f"{ref}: property '{missing.path}' unavailable: {describe_fault(missing.fault)}")

    return ref, props


# =============================================================================
# Inventory
# =============================================================================

class InventoryNode(NamedTuple):
    kind: str
    name: str
    parent: Optional[str]
    root_pool: Optional[str] = None


def match_path(pattern: str, path: str) -> bool:
    """Component-wise shell glob match of an inventory path."""
    pattern_parts = pattern.strip("/").split("/")
    path_parts = path.strip("/").split("/")
    if len(pattern_parts) != len(path_parts):
        return False
    return all(fnmatchcase(name, pat) for name, pat in zip(path_parts, pattern_parts))


class InventoryTree:
    """Snapshot of datacenters, folders, compute resources and pools keyed by moId."""

    def __init__(self, nodes: Dict[str, InventoryNode]):
        self.nodes = nodes
        self._paths: Dict[str, str] = {}

    def path(self, moid: str) -> str:
        if moid not in self._paths:
            parts = []
            seen = set()
            current = moid
            # Walk up until the root folder, which is not part of the snapshot
            while current in self.nodes and current not in seen:
                seen.add(current)
                node = self.nodes[current]
                parts.append(node.name)
                current = node.parent
            self._paths[moid] = "/" + "/".join(reversed(parts))
        return self._paths[moid]

    def datacenter(self, scope: Optional[str]) -> str:
        """Return the moId of the datacenter selected by scope (name or path)."""
        datacenters = [moid for moid, node in self.nodes.items() if node.kind == "Datacenter"]

        if scope:
            if scope.startswith("/"):
                matches = [moid for moid in datacenters if self.path(moid) == scope.rstrip("/")]
            else:
                matches = [moid for moid in datacenters if self.nodes[moid].name == scope]
            if not matches:
                raise ResolutionError(f"datacenter '{scope}' not found")
            if len(matches) > 1:
                raise ResolutionError(f"datacenter '{scope}' resolves to multiple instances, please specify a path")
            return matches[0]

        if not datacenters:
            raise ResolutionError("no datacenter found")
        if len(datacenters) > 1:
            raise ResolutionError("default datacenter resolves to multiple instances, please specify")
        return datacenters[0]

    def find_pools(self, full_pattern: str) -> List[ObjectReference]:
        """Resource pools matching an absolute glob pattern, in inventory path order."""
        candidates = [
            moid for moid, node in self.nodes.items()
            if node.kind in RESOURCE_POOL_KINDS or node.kind in COMPUTE_RESOURCE_KINDS
        ]

        refs = []
        for moid in sorted(candidates, key=self.path):
            if not match_path(full_pattern, self.path(moid)):
                continue

            node = self.nodes[moid]
            if node.kind in COMPUTE_RESOURCE_KINDS:
                # A compute host or cluster stands for its root resource pool
                if not node.root_pool:
                    continue
                root = self.nodes.get(node.root_pool)
                kind = root.kind if root else "ResourcePool"
                refs.append(ObjectReference(type=kind, value=node.root_pool))
            else:
                refs.append(ObjectReference(type=node.kind, value=moid))

        return refs


class VSphereInventory:
    """Resolves resource pool path patterns against the vCenter inventory."""

    def __init__(self, si, page_size: int = 1000):
        self.si = si
        self.page_size = page_size
        self._tree: Optional[InventoryTree] = None
        self._lock = threading.Lock()

    def _build_filter_spec(self, view_ref):
        traversal_spec = vim.PropertyCollector.TraversalSpec(
            name="viewTraversal",
            type=vim.view.ContainerView,
            path="view",
            skip=False
        )
        obj_spec = vim.PropertyCollector.ObjectSpec(
            obj=view_ref,
            selectSet=[traversal_spec],
            skip=False
        )
        prop_specs = [
            vim.PropertyCollector.PropertySpec(type=vim.Datacenter, pathSet=["name", "parent"], all=False),
            vim.PropertyCollector.PropertySpec(type=vim.Folder, pathSet=["name", "parent"], all=False),
            vim.PropertyCollector.PropertySpec(
                type=vim.ComputeResource, pathSet=["name", "parent", "resourcePool"], all=False
            ),
            vim.PropertyCollector.PropertySpec(type=vim.ResourcePool, pathSet=["name", "parent"], all=False),
        ]
        return vim.PropertyCollector.FilterSpec(objectSet=[obj_spec], propSet=prop_specs)

    def _load_tree(self) -> InventoryTree:
        content = self.si.RetrieveContent()
        view_ref = None

        try:
            view_ref = content.viewManager.CreateContainerView(
                container=content.rootFolder,
                type=[vim.Datacenter, vim.Folder, vim.ComputeResource, vim.ResourcePool],
                recursive=True
            )
            objects = _retrieve_contents(
                content.propertyCollector, self._build_filter_spec(view_ref), self.page_size
            )
        finally:
            if view_ref:
                try:
                    view_ref.Destroy()
                except Exception as e:
                    logger.debug(f"ContainerView cleanup failed: {e}")

        nodes: Dict[str, InventoryNode] = {}
        for oc in objects:
            ref, props = _parse_object_content(oc)
            parent = props.get("parent")
            root_pool = props.get("resourcePool")
            nodes[ref.value] = InventoryNode(
                kind=ref.type,
                name=props.get("name", ref.value),
                parent=parent._moId if parent is not None else None,
                root_pool=root_pool._moId if root_pool is not None else None,
            )

        logger.info(f"Inventory snapshot holds {len(nodes)} object(s)")
        return InventoryTree(nodes)

    def tree(self) -> InventoryTree:
        with self._lock:
            if self._tree is None:
                self._tree = self._load_tree()
            return self._tree

    def resolve_objects(self, scope: Optional[str], pattern: str) -> List[ObjectReference]:
        tree = self.tree()

        if pattern.startswith("/"):
            full_pattern = pattern
        else:
            dc_path = tree.path(tree.datacenter(scope))
            full_pattern = f"{dc_path}/host/{pattern}"

        refs = tree.find_pools(full_pattern)
        if not refs:
            logger.warning(f"No resource pool matches '{pattern}'")
        return refs


# =============================================================================
# Property retrieval
# =============================================================================

class VSpherePropertyRetriever:
    """Single RetrievePropertiesEx call for a list of references."""

    def __init__(self, si, page_size: int = 1000):
        self.si = si
        self.page_size = page_size

    def _managed_object(self, ref: ObjectReference):
        managed_type = MANAGED_TYPES.get(ref.type)
        if managed_type is None:
            raise ValueError(f"Unsupported managed object type: {ref.type}")
        return managed_type(ref.value, self.si._stub)

    def build_filter_spec(self, refs: List[ObjectReference], paths: List[str]):
        unique_refs = list(dict.fromkeys(refs))

        obj_specs = [
            vim.PropertyCollector.ObjectSpec(obj=self._managed_object(ref), skip=False)
            for ref in unique_refs
        ]

        prop_specs = []
        for kind in dict.fromkeys(ref.type for ref in unique_refs):
            if paths:
                spec = vim.PropertyCollector.PropertySpec(type=MANAGED_TYPES[kind], pathSet=list(paths), all=False)
            else:
                spec = vim.PropertyCollector.PropertySpec(type=MANAGED_TYPES[kind], all=True)
            prop_specs.append(spec)

        return vim.PropertyCollector.FilterSpec(objectSet=obj_specs, propSet=prop_specs)

    def retrieve(self, refs: List[ObjectReference], paths: List[str]):
        filter_spec = self.build_filter_spec(refs, paths)
        pc = self.si.RetrieveContent().propertyCollector

        objects = _retrieve_contents(pc, filter_spec, self.page_size)
        logger.info(f"PropertyCollector fetched {len(objects)} objects")

        return [_parse_object_content(oc) for oc in objects]


class VSphereSession:
    """Connected collaborators for one pool.info invocation."""

    def __init__(self, si, datacenter: Optional[str] = None, resolve_workers: int = 1,
                 page_size: int = 1000):
        self.si = si
        self.inventory = VSphereInventory(si, page_size=page_size)
        self.retriever = VSpherePropertyRetriever(si, page_size=page_size)
        self.datacenter = datacenter
        self.resolve_workers = resolve_workers
