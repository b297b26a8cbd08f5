"""
Tiangong LCA upstream exploration package.

The package exposes modular building blocks for:
- a LangGraph-backed workflow engine with fan-out, joins and routers,
- tabular data sources for candidate process records,
- oracle access for structured judgements,
- consensus, relevance merging and tournament selection,
- a recursion controller that expands requirements upstream.
"""

from .core.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
