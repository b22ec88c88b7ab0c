"""Declared-vs-observed set difference.

Used wherever membership is reconciled edge by edge: identity-store links
on a data source, owner assignees, who-item keys.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True)
class SetDiff(Generic[K]):
    """Operations needed to turn the observed set into the declared set.

    Attributes:
        to_add: Present in declared, missing remotely.
        to_remove: Present remotely, not declared.
    """

    to_add: frozenset[K] = field(default_factory=frozenset)
    to_remove: frozenset[K] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        """True when declared and observed already agree."""
        return not self.to_add and not self.to_remove


def diff(declared: Iterable[K], observed: Iterable[K]) -> SetDiff[K]:
    """Compute the add and remove sets between declared and observed.

    Pure and total. Iteration order of the inputs does not matter and the
    results carry no ordering.

    Args:
        declared: Keys the caller wants to exist.
        observed: Keys that currently exist remotely.

    Returns:
        SetDiff with ``declared - observed`` and ``observed - declared``.
    """
    declared_set = frozenset(declared)
    observed_set = frozenset(observed)
    return SetDiff(
        to_add=declared_set - observed_set,
        to_remove=observed_set - declared_set,
    )
