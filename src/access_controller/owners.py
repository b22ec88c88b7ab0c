"""Owners of governed resources, modelled as role assignees."""

from __future__ import annotations

import logging

from .diagnostics import Diagnostics
from .errors import RemoteError, SequenceError
from .remote import BeneficiaryType, GovernanceClient, RoleAssignmentFilter
from .set_diff import diff
from .streams import CancellableStream

logger = logging.getLogger(__name__)


class OwnerReconciler:
    """Reads and replaces the owner-role assignees of one resource.

    A declared owner set replaces the assignees wholesale. An undeclared
    (None) set is never written; it is only read back.
    """

    def __init__(
        self, client: GovernanceClient, owner_role: str, timeout_seconds: float
    ) -> None:
        self.client = client
        self.owner_role = owner_role
        self.timeout_seconds = timeout_seconds

    async def read(self, resource_id: str, diagnostics: Diagnostics) -> frozenset[str] | None:
        """Current owner ids, or None if the listing could not be read."""
        owners: set[str] = set()
        role_filter = RoleAssignmentFilter(role=self.owner_role, resource=resource_id)
        try:
            async with CancellableStream(
                self.client.list_role_assignments(role_filter),
                timeout_seconds=self.timeout_seconds,
                description=f"owners of {resource_id}",
            ) as stream:
                async for assignment in stream:
                    if assignment.to.type not in (BeneficiaryType.USER, BeneficiaryType.GROUP):
                        diagnostics.add_error(
                            "Unexpected owner type",
                            f"Expected user or group, got {assignment.to.type.value}",
                        )
                        return None
                    owners.add(assignment.to.id)
        except SequenceError as e:
            diagnostics.add_error("Failed to list owners", str(e))
            return None
        return frozenset(owners)

    async def apply(
        self,
        resource_id: str,
        declared: frozenset[str] | None,
        diagnostics: Diagnostics,
    ) -> frozenset[str] | None:
        """Converge the owners of a resource and return the resulting set."""
        observed = await self.read(resource_id, diagnostics)
        if declared is None or observed is None:
            return observed

        owner_diff = diff(declared, observed)
        if owner_diff.is_empty:
            return observed

        try:
            await self.client.update_role_assignees(
                resource_id, self.owner_role, sorted(declared)
            )
        except RemoteError as e:
            diagnostics.add_error("Failed to update owners", f"{resource_id}: {e}")
            return observed

        logger.info(
            "Updated owners",
            extra={
                "resource_id": resource_id,
                "added": sorted(owner_diff.to_add),
                "removed": sorted(owner_diff.to_remove),
            },
        )
        return declared
