import json
import unittest
from datetime import datetime, timezone
from types import SimpleNamespace

from pyVmomi import vim

from pool_info.errors import RetrievalError
from pool_info.models import CustomShares, LevelShares
from pool_info.property_collector import (
    FULL_PATHS,
    NARROW_PATHS,
    PropertyFetcher,
    _lookup,
    _to_plain,
    paths_for_output,
)
from pool_info.report import render_structured
from pool_info.tests.fakes import FakeRetriever, allocation, narrow_props, pool_ref, usage


class GuardedShares:
    """SharesInfo whose count must not be read."""

    level = "high"

    @property
    def shares(self):
        raise AssertionError("shares count read for a non-custom level")


class PathSelectionTests(unittest.TestCase):
    def test_tabular_output_uses_narrow_paths(self):
        self.assertEqual(paths_for_output(structured=False), NARROW_PATHS)

    def test_structured_output_uses_full_property_set(self):
        self.assertEqual(paths_for_output(structured=True), [])
        self.assertEqual(FULL_PATHS, [])


class PropertyFetcherTests(unittest.TestCase):
    def test_empty_reference_set_makes_no_call(self):
        retriever = FakeRetriever({})
        records = PropertyFetcher(retriever).fetch([], NARROW_PATHS)

        self.assertEqual(records, [])
        self.assertEqual(retriever.calls, [])

    def test_single_batched_call_with_all_refs_and_paths(self):
        refs = [pool_ref("resgroup-1"), pool_ref("resgroup-2")]
        retriever = FakeRetriever({ref: narrow_props(name=ref.value) for ref in refs})

        PropertyFetcher(retriever).fetch(refs, NARROW_PATHS)

        self.assertEqual(retriever.calls, [(refs, NARROW_PATHS)])

    def test_records_follow_input_order_with_duplicates(self):
        a, b = pool_ref("resgroup-1"), pool_ref("resgroup-2")
        retriever = FakeRetriever({a: narrow_props(name="a"), b: narrow_props(name="b")})

        records = PropertyFetcher(retriever).fetch([a, b, a], NARROW_PATHS)

        self.assertEqual([r.name for r in records], ["a", "b", "a"])
        self.assertEqual([r.reference for r in records], [a, b, a])

    def test_narrow_decoding(self):
        ref = pool_ref("resgroup-8")
        props = narrow_props(
            cpu_alloc=allocation(level="custom", shares=2000, reservation=0, limit=-1, expandable=True),
            mem_alloc=allocation(level="low", shares=1, reservation=1024, limit=4096, expandable=False),
            cpu=usage(100, 1000),
            mem=usage(0, 0),
        )
        record = PropertyFetcher(FakeRetriever({ref: props})).fetch([ref], NARROW_PATHS)[0]

        self.assertEqual(record.name, "Resources")
        self.assertEqual(record.cpu_allocation.shares, CustomShares(shares=2000))
        self.assertTrue(record.cpu_allocation.unlimited)
        self.assertTrue(record.cpu_allocation.expandable)
        self.assertEqual(record.memory_allocation.shares, LevelShares(level="low"))
        self.assertEqual(record.memory_allocation.reservation, 1024)
        self.assertEqual(record.memory_allocation.limit, 4096)
        self.assertFalse(record.memory_allocation.expandable)
        self.assertEqual(record.cpu_usage.overall_usage, 100)
        self.assertEqual(record.cpu_usage.max_usage, 1000)
        self.assertIsNone(record.properties)

    def test_non_custom_shares_count_is_not_read(self):
        ref = pool_ref("resgroup-8")
        cpu_alloc = SimpleNamespace(shares=GuardedShares(), reservation=0, limit=-1, expandableReservation=True)
        props = narrow_props(cpu_alloc=cpu_alloc)

        record = PropertyFetcher(FakeRetriever({ref: props})).fetch([ref], NARROW_PATHS)[0]

        self.assertEqual(record.cpu_allocation.shares, LevelShares(level="high"))

    def test_absent_optional_fields_keep_defaults(self):
        ref = pool_ref("resgroup-8")
        props = {
            "name": "sparse",
            "config.cpuAllocation": {"shares": {"level": "normal"}, "reservation": 10},
        }
        record = PropertyFetcher(FakeRetriever({ref: props})).fetch([ref], NARROW_PATHS)[0]

        self.assertEqual(record.cpu_allocation.reservation, 10)
        self.assertTrue(record.cpu_allocation.unlimited)
        self.assertIsNone(record.cpu_allocation.expandable_reservation)
        self.assertEqual(record.memory_usage.max_usage, 0)

    def test_full_mode_walks_top_level_properties(self):
        ref = pool_ref("resgroup-8")
        props = {
            "name": "Resources",
            "config": SimpleNamespace(
                cpuAllocation=allocation(level="custom", shares=2000),
                memoryAllocation=allocation(),
            ),
            "runtime": SimpleNamespace(cpu=usage(100, 1000), memory=usage(1, 2), overallStatus="green"),
            "owner": SimpleNamespace(_moId="domain-c7", _wsdlName="ClusterComputeResource"),
        }
        record = PropertyFetcher(FakeRetriever({ref: props})).fetch([ref], FULL_PATHS)[0]

        self.assertEqual(record.cpu_allocation.shares, CustomShares(shares=2000))
        self.assertEqual(record.memory_usage.max_usage, 2)
        self.assertEqual(record.properties["owner"], {"type": "ClusterComputeResource", "value": "domain-c7"})
        self.assertEqual(record.properties["runtime"]["overallStatus"], "green")

    def test_unknown_path_fails_before_remote_call(self):
        retriever = FakeRetriever({})
        with self.assertRaises(ValueError):
            PropertyFetcher(retriever).fetch([pool_ref("resgroup-1")], ["summary.quickStats"])
        self.assertEqual(retriever.calls, [])

    def test_remote_failure_is_retrieval_error(self):
        retriever = FakeRetriever({}, error=RuntimeError("connection reset"))
        with self.assertRaises(RetrievalError) as ctx:
            PropertyFetcher(retriever).fetch([pool_ref("resgroup-1")], NARROW_PATHS)
        self.assertIn("connection reset", ctx.exception.message)

    def test_missing_object_is_retrieval_error(self):
        a, b = pool_ref("resgroup-1"), pool_ref("resgroup-2")
        retriever = FakeRetriever({a: narrow_props()})
        with self.assertRaises(RetrievalError):
            PropertyFetcher(retriever).fetch([a, b], NARROW_PATHS)

    def test_malformed_custom_shares_is_retrieval_error(self):
        ref = pool_ref("resgroup-1")
        props = narrow_props(cpu_alloc=allocation(level="custom", shares=None))
        with self.assertRaises(RetrievalError):
            PropertyFetcher(FakeRetriever({ref: props})).fetch([ref], NARROW_PATHS)


class LookupTests(unittest.TestCase):
    def test_exact_path_wins(self):
        self.assertEqual(_lookup({"runtime.cpu": 1, "runtime": {"cpu": 2}}, "runtime.cpu"), 1)

    def test_prefix_walk(self):
        self.assertEqual(_lookup({"runtime": {"cpu": 2}}, "runtime.cpu"), 2)

    def test_missing(self):
        self.assertIsNone(_lookup({"name": "x"}, "config.cpuAllocation"))
        self.assertIsNone(_lookup({"config": None}, "config.cpuAllocation"))


class ToPlainTests(unittest.TestCase):
    def test_nested_values(self):
        value = {"refs": [SimpleNamespace(_moId="vm-1", _wsdlName="VirtualMachine")], "n": 3}
        self.assertEqual(_to_plain(value), {"refs": [{"type": "VirtualMachine", "value": "vm-1"}], "n": 3})


class VmodlPropertyTests(unittest.TestCase):
    """Full property set as pyVmomi returns it, not plain namespaces."""

    def setUp(self):
        self.ref = pool_ref("resgroup-8")
        config = vim.ResourceConfigSpec(
            lastModified=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            cpuAllocation=vim.ResourceAllocationInfo(
                reservation=0,
                expandableReservation=True,
                limit=-1,
                shares=vim.SharesInfo(shares=2000, level=vim.SharesInfo.Level.custom),
            ),
            memoryAllocation=vim.ResourceAllocationInfo(
                reservation=512,
                expandableReservation=False,
                limit=4096,
                shares=vim.SharesInfo(shares=163840, level=vim.SharesInfo.Level.high),
            ),
        )
        runtime = vim.ResourcePool.RuntimeInfo(
            cpu=vim.ResourcePool.ResourceUsage(overallUsage=100, maxUsage=1000),
            memory=vim.ResourcePool.ResourceUsage(overallUsage=512, maxUsage=2048),
            overallStatus=vim.ManagedEntity.Status.green,
        )
        self.props = {
            "name": "Resources",
            "config": config,
            "runtime": runtime,
            "owner": vim.ClusterComputeResource("domain-c7"),
            "vm": [vim.VirtualMachine("vm-1")],
        }

    def fetch(self):
        return PropertyFetcher(FakeRetriever({self.ref: self.props})).fetch([self.ref], FULL_PATHS)[0]

    def test_typed_fields_decoded_from_data_objects(self):
        record = self.fetch()

        self.assertEqual(record.cpu_allocation.shares, CustomShares(shares=2000))
        self.assertEqual(record.memory_allocation.shares, LevelShares(level="high"))
        self.assertEqual(record.memory_allocation.limit, 4096)
        self.assertFalse(record.memory_allocation.expandable)
        self.assertEqual(record.cpu_usage.overall_usage, 100)
        self.assertEqual(record.memory_usage.max_usage, 2048)

    def test_properties_dump(self):
        properties = self.fetch().properties

        self.assertEqual(properties["name"], "Resources")
        self.assertEqual(properties["owner"], {"type": "ClusterComputeResource", "value": "domain-c7"})
        self.assertEqual(properties["vm"], [{"type": "VirtualMachine", "value": "vm-1"}])
        self.assertEqual(properties["runtime"]["overallStatus"], "green")
        self.assertEqual(properties["runtime"]["cpu"]["maxUsage"], 1000)
        self.assertEqual(properties["config"]["lastModified"], "2024-01-02T03:04:05+00:00")

        shares = properties["config"]["cpuAllocation"]["shares"]
        self.assertEqual((shares["shares"], shares["level"]), (2000, "custom"))
        self.assertIs(type(shares["level"]), str)

    def test_structured_output_is_json(self):
        document = json.loads(render_structured([self.fetch()]))

        pool = document["resource_pools"][0]
        self.assertEqual(pool["properties"]["runtime"]["overallStatus"], "green")
        self.assertEqual(pool["cpu_allocation"]["shares"], {"level": "custom", "shares": 2000})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
