"""Step graph index for a loaded workflow."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .errors import ValidationError
from .models import Step, Workflow


class StepGraph:
    """Ordered steps plus an id index, built once per workflow load.

    Successor links are plain step ids resolved through the index, so a link
    can only ever point at a step of the same workflow.
    """

    def __init__(self, steps: Iterable[Step]) -> None:
        self._steps: List[Step] = list(steps)
        self._index: Dict[str, Step] = {step.id: step for step in self._steps}

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> "StepGraph":
        return cls(workflow.steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._index

    @property
    def first(self) -> Optional[Step]:
        return self._steps[0] if self._steps else None

    def get(self, step_id: Optional[str]) -> Optional[Step]:
        if step_id is None:
            return None
        return self._index.get(step_id)

    def next_of(self, step: Step) -> Optional[Step]:
        """Successor on success, if the link resolves."""
        return self.get(step.next_step_id)

    def error_handler_of(self, step: Step) -> Optional[Step]:
        """Successor on failure, if the link resolves."""
        return self.get(step.on_error_step_id)


def validate_links(steps: List[Step]) -> None:
    """Reject duplicate step ids and links to steps outside the workflow."""
    if not steps:
        raise ValidationError("At least one step is required")

    seen: set[str] = set()
    for step in steps:
        if step.id in seen:
            raise ValidationError(f"Duplicate step id: {step.id}")
        seen.add(step.id)

    problems = []
    for step in steps:
        for field, target in (
            ("nextStepId", step.next_step_id),
            ("onErrorStepId", step.on_error_step_id),
        ):
            if target is not None and target not in seen:
                problems.append(f"{step.name}.{field} -> {target}")
    if problems:
        raise ValidationError(
            "Step links reference unknown steps", details=problems
        )
