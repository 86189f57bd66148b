# dept_scheduler/services/weights.py
"""
Project weighting and progress rollup.

Every task of a project carries a share of the project's 100 points.
Tasks with an explicit ``weight`` keep it; tasks with ``weight=None`` split
whatever is left evenly, with the remainder handed out one point at a time
in input order. Both functions are pure and recomputed on every read.
"""

import math
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Optional, Sequence

from dept_scheduler.exceptions import ConflictError, ValidationError
from dept_scheduler.models.task import AssignmentStatus, TaskStatus

TOTAL_WEIGHT = 100


def _field(item: Any, name: str, default=None):
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def _is_explicit(weight) -> bool:
    return weight is not None and not isinstance(weight, bool) and isinstance(weight, int)


def effective_weights(tasks: Sequence[Any]) -> Dict[Any, int]:
    """Map task id -> effective weight for a set of sibling tasks.

    ``tasks`` may be ORM rows or dicts with ``id`` and ``weight``. If the
    explicit weights already exceed 100 the auto tasks get 0 and the explicit
    ones are returned unchanged.
    """
    explicit = [t for t in tasks if _is_explicit(_field(t, "weight"))]
    auto = [t for t in tasks if not _is_explicit(_field(t, "weight"))]

    used_weight = sum(_field(t, "weight") for t in explicit)
    remaining = max(0, TOTAL_WEIGHT - used_weight)

    result: Dict[Any, int] = {}
    for t in explicit:
        result[_field(t, "id")] = _field(t, "weight")

    if auto:
        base, extra = divmod(remaining, len(auto))
        for index, t in enumerate(auto):
            result[_field(t, "id")] = base + (1 if index < extra else 0)

    return result


def normalize_weight(weight) -> Optional[int]:
    """Validate a user supplied weight; ``None`` or ``""`` means auto."""
    if weight is None or weight == "":
        return None
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        raise ValidationError("Weight must be a number between 0 and 100", details={"weight": weight})
    if weight < 0 or weight > TOTAL_WEIGHT:
        raise ValidationError("Weight out of range", details={"weight": weight})
    return round_half_up(weight)


def check_weight_budget(sibling_weights: Iterable[Optional[int]], new_weight: Optional[int]) -> None:
    """Reject a write that would push the explicit weights of a project past 100.

    ``sibling_weights`` must not include the task being written.
    """
    if new_weight is None:
        return
    used_weight = sum(w for w in sibling_weights if _is_explicit(w))
    total_weight = used_weight + new_weight
    if total_weight > TOTAL_WEIGHT:
        remaining = TOTAL_WEIGHT - used_weight
        raise ConflictError(
            f"Project weight would exceed 100%. Remaining weight: {remaining}%",
            details={
                "used_weight": used_weight,
                "remaining": remaining,
                "requested_weight": new_weight,
                "total_weight": total_weight,
            },
        )


def task_progress_fraction(task: Any) -> Fraction:
    """Task completion in [0, 1].

    Mean progress of the non-rejected assignments. A task whose assignments
    were all rejected counts as 0; a task that never had any assignment
    falls back to its own completion flag.
    """
    assignments = _field(task, "assignments") or []
    if assignments:
        relevant = [a for a in assignments if _status_value(_field(a, "status")) != AssignmentStatus.REJECTED.value]
        if not relevant:
            return Fraction(0)
        total = sum(_field(a, "progress") or 0 for a in relevant)
        return Fraction(total) / (len(relevant) * 100)
    return Fraction(1) if _status_value(_field(task, "status")) == TaskStatus.COMPLETED.value else Fraction(0)


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero for non-negative input.

    Floats go through their shortest repr so 64.5 stays 64.5; fractions are
    rounded exactly.
    """
    if isinstance(value, float):
        value = Fraction(str(value))
    return math.floor(Fraction(value) + Fraction(1, 2))


def project_progress(tasks: Sequence[Any], weights: Optional[Dict[Any, int]] = None) -> int:
    """Weighted completion percentage (0-100) of a project's tasks.

    Computed exactly and rounded half up, so 64.5 reports as 65.
    """
    if weights is None:
        weights = effective_weights(tasks)

    used_weight = 0
    weighted_progress = Fraction(0)
    for t in tasks:
        weight = weights.get(_field(t, "id"), 0)
        used_weight += weight
        weighted_progress += weight * task_progress_fraction(t)

    if used_weight <= 0:
        return 0
    return round_half_up(weighted_progress / used_weight * 100)


def summarize_project(tasks: List[Any]) -> Dict[str, Any]:
    weights = effective_weights(tasks)
    return {
        "progress": project_progress(tasks, weights),
        "tasks_effective_weights": weights,
    }


def _status_value(status) -> Optional[str]:
    return getattr(status, "value", status)
