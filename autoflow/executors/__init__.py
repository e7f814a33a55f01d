"""Queue handlers for each kind of step."""

from .action import ActionExecutor
from .ai import AIExecutor
from .document import DocumentExecutor, extract_text

__all__ = ["ActionExecutor", "AIExecutor", "DocumentExecutor", "extract_text"]
