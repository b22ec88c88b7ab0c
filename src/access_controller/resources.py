"""Result types and plan comparison shared by every managed resource."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from .diagnostics import Diagnostics

T = TypeVar("T")


class PlanAction(str, Enum):
    """What apply will do for a declaration."""

    CREATE = "create"
    UPDATE = "update"
    NOOP = "noop"


@dataclass
class ResourceResult(Generic[T]):
    """Outcome of one resource operation.

    Attributes:
        state: Snapshot to persist. None when removed or never created.
        diagnostics: Non-fatal findings. Errors mean "not fully applied".
        removed: The entity no longer exists remotely.
        action: The plan action that produced this result, if any.
    """

    state: T | None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    removed: bool = False
    action: PlanAction | None = None


def matches_declared(declared: Any, observed: Any) -> bool:
    """True when every managed (non-None) declared value equals the observed one.

    Nested models are compared field by field with the same rule, so an
    unset sub-field never forces an update.
    """
    if isinstance(declared, BaseModel) and isinstance(observed, BaseModel):
        for name in type(declared).model_fields:
            value = getattr(declared, name)
            if value is None:
                continue
            if not matches_declared(value, getattr(observed, name, None)):
                return False
        return True
    return declared == observed
