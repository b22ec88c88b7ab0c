"""Error taxonomy for the reconciliation engine.

Errors are split by what they say about the world:
- DeclarationValidationError: the declared state is malformed (fail fast,
  no remote call is issued)
- RemoteError / NotFoundError: a collaborator call failed or the entity is gone
- ConsistencyViolation: the remote state breaks an invariant the engine relies on
- PartialApplyError: some declared items could not be projected to remote ids
- SequenceError: a remote listing failed or timed out while being consumed

The engine never retries. Retry and backoff belong to the transport.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .diagnostics import Diagnostics


class ReconcileError(Exception):
    """Base class for every error raised by the reconciliation engine."""

    pass


class DeclarationValidationError(ReconcileError):
    """Raised when declared state is invalid.

    Carries every problem found so the caller can report them together
    instead of fixing one field per run.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("Declared state is invalid:\n  - " + "\n  - ".join(self.errors))


class RemoteError(ReconcileError):
    """Raised by collaborators when a remote call fails."""

    pass


class NotFoundError(RemoteError):
    """Raised by collaborators when the addressed entity does not exist.

    Read and delete paths treat this as absence, never as failure.
    """

    pass


class ConsistencyViolation(ReconcileError):
    """Raised when the remote state violates an invariant.

    Distinct from DeclarationValidationError: the input was fine, the
    remote data is not (e.g. two role assignments for a unique filter).
    """

    pass


class PartialApplyError(ReconcileError):
    """Raised when one or more declared items could not be resolved.

    Every item is attempted; the accumulated diagnostics are attached.
    The mutation that needed the projection is not issued.
    """

    def __init__(self, message: str, diagnostics: Diagnostics) -> None:
        self.diagnostics = diagnostics
        details = "; ".join(d.detail for d in diagnostics.errors())
        super().__init__(f"{message}: {details}" if details else message)


class SequenceError(ReconcileError):
    """Raised when a remote listing fails or exceeds its deadline mid-stream."""

    pass
