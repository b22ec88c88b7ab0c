"""User accounts and their platform access.

Users are matched by email: creating a user whose email is already known
adopts the existing account instead of failing. Platform access (signing
in to the governance service) is switched with separate invite/remove
calls after the account itself is written.
"""

from __future__ import annotations

import logging

from .diagnostics import Diagnostics
from .errors import DeclarationValidationError, NotFoundError, RemoteError
from .models import UserSpec
from .remote import GovernanceClient, RemoteUser, UserInput
from .resources import PlanAction, ResourceResult, matches_declared

logger = logging.getLogger(__name__)


class UserResource:
    """Create/read/update/delete/apply for users."""

    def __init__(self, client: GovernanceClient) -> None:
        self.client = client

    @staticmethod
    def _to_input(spec: UserSpec) -> UserInput:
        return UserInput(name=spec.name, email=spec.email, type=spec.type)

    @staticmethod
    def _from_remote(spec: UserSpec, user: RemoteUser) -> UserSpec:
        update = {
            "id": user.id,
            "name": user.name,
            "type": user.type,
            "platform_user": user.is_platform_user,
        }
        if user.email is not None:
            update["email"] = user.email
        return spec.model_copy(update=update)

    async def _converge_platform_access(
        self, spec: UserSpec, user: RemoteUser, diagnostics: Diagnostics
    ) -> RemoteUser:
        if user.is_platform_user == spec.platform_user:
            return user

        try:
            if spec.platform_user:
                user = await self.client.invite_platform_user(user.id)
            else:
                user = await self.client.remove_platform_user(user.id)
        except RemoteError as e:
            summary = (
                "Failed to invite user as platform user"
                if spec.platform_user
                else "Failed to revoke platform access"
            )
            diagnostics.add_error(summary, f"{user.id}: {e}")
        else:
            logger.info(
                "Changed platform access",
                extra={"user_id": user.id, "platform_user": spec.platform_user},
            )
        return user

    async def _finish(self, spec: UserSpec, user: RemoteUser) -> ResourceResult[UserSpec]:
        diagnostics = Diagnostics()
        user = await self._converge_platform_access(spec, user, diagnostics)
        return ResourceResult(state=self._from_remote(spec, user), diagnostics=diagnostics)

    async def create(self, spec: UserSpec) -> ResourceResult[UserSpec]:
        """Create the user, or adopt the account that already has this email."""
        try:
            existing = await self.client.get_user_by_email(spec.email)
        except NotFoundError:
            existing = None

        if existing is None:
            user = await self.client.create_user(self._to_input(spec))
            logger.info("Created user", extra={"user_id": user.id, "email": spec.email})
        else:
            user = await self.client.update_user(existing.id, self._to_input(spec))
            logger.info("Adopted existing user", extra={"user_id": user.id, "email": spec.email})
        return await self._finish(spec, user)

    async def read(self, spec: UserSpec) -> ResourceResult[UserSpec]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to read a user"])

        try:
            user = await self.client.get_user(spec.id)
        except NotFoundError:
            logger.info("User not found", extra={"user_id": spec.id})
            return ResourceResult(state=None, removed=True)
        return ResourceResult(state=self._from_remote(spec, user))

    async def update(self, spec: UserSpec) -> ResourceResult[UserSpec]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to update a user"])

        user = await self.client.update_user(spec.id, self._to_input(spec))
        logger.info("Updated user", extra={"user_id": user.id})
        return await self._finish(spec, user)

    async def delete(self, spec: UserSpec) -> ResourceResult[UserSpec]:
        """Revoke platform access first, then delete the account."""
        if spec.id is None:
            raise DeclarationValidationError(["id is required to delete a user"])

        try:
            if spec.platform_user:
                await self.client.remove_platform_user(spec.id)
            await self.client.delete_user(spec.id)
        except NotFoundError:
            logger.info("User already deleted", extra={"user_id": spec.id})
        else:
            logger.info("Deleted user", extra={"user_id": spec.id})
        return ResourceResult(state=None, removed=True)

    async def apply(self, spec: UserSpec) -> ResourceResult[UserSpec]:
        if spec.id is not None:
            observed = await self.read(spec)
            if observed.state is not None:
                if matches_declared(spec, observed.state):
                    observed.action = PlanAction.NOOP
                    return observed
                result = await self.update(spec)
                result.action = PlanAction.UPDATE
                return result

        result = await self.create(spec.model_copy(update={"id": None}))
        result.action = PlanAction.CREATE
        return result
