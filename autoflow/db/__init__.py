from .models import AIOutputRow, LogRow, RunRow, WorkflowRow

__all__ = [
    "WorkflowRow",
    "RunRow",
    "LogRow",
    "AIOutputRow",
]
