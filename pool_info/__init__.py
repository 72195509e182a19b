"""
pool-info - vSphere resource pool reporting.

Resolves resource pool name patterns against a vCenter inventory,
retrieves their allocation and usage properties in a single
PropertyCollector call and renders a tabular or JSON report.
"""

__version__ = "1.0.0"
