"""Ghost Workflow Node Package.

This package adapts the Ghost request/upload engine to a workflow host: the
host passes a HostContext and a batch of items, the node returns one output
entry per result in input order.

Exported:
    GhostNode: Executes a node configuration over a batch of items
    HostContext: Credentials, logger and settings supplied by the host
    NodeItem: One input item (JSON fields plus binaries)
"""
from .context import HostContext, ItemBinaryReader, NodeItem
from .node import GhostNode

__all__ = ["GhostNode", "HostContext", "ItemBinaryReader", "NodeItem"]
