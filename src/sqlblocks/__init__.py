"""Transpile PL/pgSQL and SQL sources into visual-block workspaces."""

__version__ = "0.1.0"

from .adapters import get_adapter  # noqa: E402
from .fallback import to_workspace_from_source  # noqa: E402
from .transformer import to_workspace, to_workspace_for_view  # noqa: E402

__all__ = [
    "__version__",
    "get_adapter",
    "to_workspace",
    "to_workspace_for_view",
    "to_workspace_from_source",
]
