"""Global role assignments, addressed by a composite ``<role>#<user>`` id."""

from __future__ import annotations

import logging

from . import identifiers
from .config import Config
from .diagnostics import Diagnostics
from .errors import ConsistencyViolation, DeclarationValidationError, NotFoundError
from .models import GlobalRoleAssignmentSpec
from .remote import BeneficiaryType, GovernanceClient, RoleAssignment, RoleAssignmentFilter
from .resources import PlanAction, ResourceResult
from .streams import CancellableStream

logger = logging.getLogger(__name__)


class GlobalRoleAssignmentResource:
    """Assign, read and unassign a global role for one user.

    The edge has no remote id and cannot be modified in place: a change of
    role or user is a delete followed by a create.
    """

    def __init__(self, client: GovernanceClient, config: Config) -> None:
        self.client = client
        self.config = config

    async def create(
        self, spec: GlobalRoleAssignmentSpec
    ) -> ResourceResult[GlobalRoleAssignmentSpec]:
        assignment_id = identifiers.encode(spec.role, spec.user)
        await self.client.assign_global_role(identifiers.role_id(spec.role), spec.user)
        logger.info(
            "Assigned global role",
            extra={"role": spec.role, "user": spec.user, "assignment_id": assignment_id},
        )
        return ResourceResult(state=spec.model_copy(update={"id": assignment_id}))

    async def read(
        self, spec: GlobalRoleAssignmentSpec
    ) -> ResourceResult[GlobalRoleAssignmentSpec]:
        """Rebuild the assignment from the remote listing.

        Raises:
            ConsistencyViolation: If more than one assignment matches.
        """
        if spec.id is None:
            raise DeclarationValidationError(["id is required to read a role assignment"])

        role, user = identifiers.decode(spec.id)
        role_filter = RoleAssignmentFilter(role=identifiers.role_id(role), user=user)

        found: list[RoleAssignment] = []
        async with CancellableStream(
            self.client.list_role_assignments(role_filter),
            timeout_seconds=self.config.listing_timeout_seconds,
            description=f"role assignments {spec.id}",
        ) as stream:
            async for assignment in stream:
                found.append(assignment)
                if len(found) > 1:
                    raise ConsistencyViolation(
                        f"Multiple role assignments found for role {role} and user {user}"
                    )

        if not found:
            logger.info("Role assignment not found", extra={"assignment_id": spec.id})
            return ResourceResult(state=None, removed=True)

        assignment = found[0]
        diagnostics = Diagnostics()
        if assignment.to.type != BeneficiaryType.USER:
            diagnostics.add_error(
                "Unexpected role assignment target",
                f"Expected a user, got {assignment.to.type.value}",
            )
            return ResourceResult(state=spec, diagnostics=diagnostics)

        state = spec.model_copy(
            update={"role": assignment.role_name, "user": assignment.to.id}
        )
        return ResourceResult(state=state, diagnostics=diagnostics)

    async def update(
        self, spec: GlobalRoleAssignmentSpec
    ) -> ResourceResult[GlobalRoleAssignmentSpec]:
        diagnostics = Diagnostics()
        diagnostics.add_error(
            "Not able to update role assignment",
            "Role assignments are replaced: delete and create instead",
        )
        return ResourceResult(state=spec, diagnostics=diagnostics)

    async def delete(
        self, spec: GlobalRoleAssignmentSpec
    ) -> ResourceResult[GlobalRoleAssignmentSpec]:
        try:
            await self.client.unassign_global_role(identifiers.role_id(spec.role), spec.user)
        except NotFoundError:
            logger.info("Role assignment already removed", extra={"assignment_id": spec.id})
        else:
            logger.info("Unassigned global role", extra={"role": spec.role, "user": spec.user})
        return ResourceResult(state=None, removed=True)

    async def apply(
        self, spec: GlobalRoleAssignmentSpec
    ) -> ResourceResult[GlobalRoleAssignmentSpec]:
        """Assign the role unless the same assignment already exists.

        A declaration whose role or user no longer matches its id replaces
        the old assignment.
        """
        expected_id = identifiers.encode(spec.role, spec.user)
        if spec.id is not None:
            observed = await self.read(spec)
            if observed.state is not None:
                if spec.id == expected_id:
                    observed.action = PlanAction.NOOP
                    return observed
                old_role, old_user = identifiers.decode(spec.id)
                await self.delete(spec.model_copy(update={"role": old_role, "user": old_user}))

        result = await self.create(spec.model_copy(update={"id": None}))
        result.action = PlanAction.CREATE
        return result
