"""Identity stores: fields, master flag and owners."""

from __future__ import annotations

import logging

from .config import Config
from .diagnostics import Diagnostics
from .errors import DeclarationValidationError, NotFoundError, RemoteError
from .models import IdentityStoreSpec
from .owners import OwnerReconciler
from .remote import GovernanceClient, IdentityStoreInput, RemoteIdentityStore
from .resources import PlanAction, ResourceResult, matches_declared

logger = logging.getLogger(__name__)


class IdentityStoreResource:
    """Create/read/update/delete/apply for identity stores.

    The master flag cannot be written by create or update; it is set with
    a separate call afterwards, only when it differs.
    """

    def __init__(self, client: GovernanceClient, config: Config) -> None:
        self.client = client
        self.config = config
        self.owners = OwnerReconciler(client, config.owner_role, config.listing_timeout_seconds)

    async def _finish(
        self, spec: IdentityStoreSpec, store: RemoteIdentityStore
    ) -> ResourceResult[IdentityStoreSpec]:
        diagnostics = Diagnostics()
        spec = spec.model_copy(update={"id": store.id})

        if store.master != spec.master:
            try:
                store = await self.client.set_identity_store_master(store.id, spec.master)
            except RemoteError as e:
                diagnostics.add_error(
                    "Failed to update identity store master flag", f"{store.id}: {e}"
                )
            else:
                logger.info(
                    "Changed identity store master flag",
                    extra={"is_id": store.id, "master": spec.master},
                )

        await self.owners.apply(store.id, spec.owners, diagnostics)
        return ResourceResult(
            state=await self._read_state(spec, store, diagnostics), diagnostics=diagnostics
        )

    async def create(self, spec: IdentityStoreSpec) -> ResourceResult[IdentityStoreSpec]:
        store = await self.client.create_identity_store(
            IdentityStoreInput(name=spec.name, description=spec.description)
        )
        logger.info("Created identity store", extra={"is_id": store.id, "is_name": store.name})
        return await self._finish(spec, store)

    async def update(self, spec: IdentityStoreSpec) -> ResourceResult[IdentityStoreSpec]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to update an identity store"])
        store = await self.client.update_identity_store(
            spec.id, IdentityStoreInput(name=spec.name, description=spec.description)
        )
        logger.info("Updated identity store", extra={"is_id": store.id})
        return await self._finish(spec, store)

    async def _read_state(
        self, spec: IdentityStoreSpec, store: RemoteIdentityStore, diagnostics: Diagnostics
    ) -> IdentityStoreSpec:
        update = {
            "id": store.id,
            "name": store.name,
            "description": store.description,
            "master": store.master,
        }
        owners = await self.owners.read(store.id, diagnostics)
        if owners is not None:
            update["owners"] = owners
        return spec.model_copy(update=update)

    async def read(self, spec: IdentityStoreSpec) -> ResourceResult[IdentityStoreSpec]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to read an identity store"])

        diagnostics = Diagnostics()
        try:
            store = await self.client.get_identity_store(spec.id)
        except NotFoundError:
            logger.info("Identity store not found", extra={"is_id": spec.id})
            return ResourceResult(state=None, diagnostics=diagnostics, removed=True)

        return ResourceResult(
            state=await self._read_state(spec, store, diagnostics), diagnostics=diagnostics
        )

    async def delete(self, spec: IdentityStoreSpec) -> ResourceResult[IdentityStoreSpec]:
        """Hand ownership to the API user, then delete."""
        if spec.id is None:
            raise DeclarationValidationError(["id is required to delete an identity store"])

        try:
            current_user = await self.client.get_current_user_id()
            await self.client.update_role_assignees(
                spec.id, self.config.owner_role, [current_user]
            )
            await self.client.delete_identity_store(spec.id)
        except NotFoundError:
            logger.info("Identity store already deleted", extra={"is_id": spec.id})
        else:
            logger.info("Deleted identity store", extra={"is_id": spec.id})
        return ResourceResult(state=None, removed=True)

    async def apply(self, spec: IdentityStoreSpec) -> ResourceResult[IdentityStoreSpec]:
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
