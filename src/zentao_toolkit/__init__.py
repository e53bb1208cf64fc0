"""ZenTao toolkit.

Command-line helpers around a ZenTao project-tracking instance:
- monthly effort report aggregated per user from finished tasks
- bulk task creation from a spreadsheet export, safe to re-run
"""

__version__ = "0.1.0"

from zentao_toolkit.config import ToolkitSettings

__all__ = ["__version__", "ToolkitSettings"]
