"""Authority and V2Ray helpers used by the provisioning pipeline."""

from __future__ import annotations

from .node_locator import NodeAssignment, NodeLocator, parse_node_response
from .v2ray_client_config import ConnectionProfile, remove_profile, render_profile, synthesize
from .v2ray_engine import V2RayEngine

__all__ = [
    "ConnectionProfile",
    "NodeAssignment",
    "NodeLocator",
    "V2RayEngine",
    "parse_node_response",
    "remove_profile",
    "render_profile",
    "synthesize",
]
