from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base error for cascading derivations. Always aborts the unit of work."""


class CascadeTargetMissing(WorkflowError):
    def __init__(self, rule: str, target_type: str, target_id: Any) -> None:
        self.rule = rule
        self.target_type = target_type
        self.target_id = str(target_id) if target_id is not None else None
        super().__init__(f"Workflow rule '{rule}' could not find {target_type} '{self.target_id}'")
