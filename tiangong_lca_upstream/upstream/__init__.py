"""Upstream exploration workflow built on the LangGraph engine."""

from .service import UpstreamExplorer, build_upstream_graph, is_elementary_flow
from .state import UpstreamState

__all__ = ["UpstreamExplorer", "UpstreamState", "build_upstream_graph", "is_elementary_flow"]
