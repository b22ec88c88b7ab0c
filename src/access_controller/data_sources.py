"""Data sources and their identity-store links.

Links are reconciled edge by edge with the set differ. The native identity
store of a data source is created by the governance service itself; it is
reported as ``native_identity_store`` and never linked or unlinked. The
master identity store is likewise left out of the diff.
"""

from __future__ import annotations

import logging

from .config import Config
from .diagnostics import Diagnostics
from .errors import DeclarationValidationError, NotFoundError, RemoteError
from .models import DataSourceSpec
from .owners import OwnerReconciler
from .remote import DataSourceInput, GovernanceClient, IdentityStoreLink, RemoteDataSource
from .resources import PlanAction, ResourceResult, matches_declared
from .set_diff import diff

logger = logging.getLogger(__name__)


def split_links(links: list[IdentityStoreLink]) -> tuple[str | None, frozenset[str]]:
    """Separate the native link from the reconcilable ones.

    Returns:
        (native identity store id or None, ids of linked non-native non-master stores)
    """
    native: str | None = None
    linked: set[str] = set()
    for link in links:
        if link.native:
            native = link.id
        elif not link.master:
            linked.add(link.id)
    return native, frozenset(linked)


class DataSourceResource:
    """Create/read/update/delete/apply for data sources."""

    def __init__(self, client: GovernanceClient, config: Config) -> None:
        self.client = client
        self.config = config
        self.owners = OwnerReconciler(client, config.owner_role, config.listing_timeout_seconds)

    @staticmethod
    def _to_input(spec: DataSourceSpec) -> DataSourceInput:
        return DataSourceInput(
            name=spec.name,
            description=spec.description,
            sync_method=spec.sync_method,
            parent=spec.parent,
        )

    async def reconcile_links(
        self, ds_id: str, declared: frozenset[str] | None, diagnostics: Diagnostics
    ) -> None:
        """Link missing and unlink surplus identity stores.

        Every operation is attempted; failures are reported as diagnostics.
        """
        if declared is None:
            return

        try:
            links = await self.client.list_identity_store_links(ds_id)
        except RemoteError as e:
            diagnostics.add_error("Failed to list identity stores", f"{ds_id}: {e}")
            return

        native, linked = split_links(links)
        link_diff = diff(declared - {native} if native else declared, linked)

        for is_id in sorted(link_diff.to_add):
            try:
                await self.client.add_identity_store_link(ds_id, is_id)
            except RemoteError as e:
                diagnostics.add_error("Failed to add identity store to data source", f"{is_id}: {e}")
            else:
                logger.info("Linked identity store", extra={"ds_id": ds_id, "is_id": is_id})

        for is_id in sorted(link_diff.to_remove):
            try:
                await self.client.remove_identity_store_link(ds_id, is_id)
            except RemoteError as e:
                diagnostics.add_error(
                    "Failed to remove identity store from data source", f"{is_id}: {e}"
                )
            else:
                logger.info("Unlinked identity store", extra={"ds_id": ds_id, "is_id": is_id})

    async def _finish(
        self, spec: DataSourceSpec, ds: RemoteDataSource, diagnostics: Diagnostics
    ) -> ResourceResult[DataSourceSpec]:
        spec = spec.model_copy(update={"id": ds.id})
        await self.reconcile_links(ds.id, spec.identity_stores, diagnostics)
        await self.owners.apply(ds.id, spec.owners, diagnostics)

        try:
            state = await self._read_state(spec, ds, diagnostics)
        except RemoteError as e:
            diagnostics.add_error("Failed to read back data source", f"{ds.id}: {e}")
            state = spec
        return ResourceResult(state=state, diagnostics=diagnostics)

    async def create(self, spec: DataSourceSpec) -> ResourceResult[DataSourceSpec]:
        ds = await self.client.create_data_source(self._to_input(spec))
        logger.info("Created data source", extra={"ds_id": ds.id, "ds_name": ds.name})
        return await self._finish(spec, ds, Diagnostics())

    async def update(self, spec: DataSourceSpec) -> ResourceResult[DataSourceSpec]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to update a data source"])
        ds = await self.client.update_data_source(spec.id, self._to_input(spec))
        logger.info("Updated data source", extra={"ds_id": ds.id})
        return await self._finish(spec, ds, Diagnostics())

    async def _read_state(
        self, spec: DataSourceSpec, ds: RemoteDataSource, diagnostics: Diagnostics
    ) -> DataSourceSpec:
        native, linked = split_links(await self.client.list_identity_store_links(ds.id))
        update = {
            "id": ds.id,
            "name": ds.name,
            "description": ds.description,
            "sync_method": ds.sync_method,
            "parent": ds.parent_id,
            "native_identity_store": native,
            "identity_stores": linked,
        }
        owners = await self.owners.read(ds.id, diagnostics)
        if owners is not None:
            update["owners"] = owners
        return spec.model_copy(update=update)

    async def read(self, spec: DataSourceSpec) -> ResourceResult[DataSourceSpec]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to read a data source"])

        diagnostics = Diagnostics()
        try:
            ds = await self.client.get_data_source(spec.id)
        except NotFoundError:
            logger.info("Data source not found", extra={"ds_id": spec.id})
            return ResourceResult(state=None, diagnostics=diagnostics, removed=True)

        return ResourceResult(
            state=await self._read_state(spec, ds, diagnostics), diagnostics=diagnostics
        )

    async def delete(self, spec: DataSourceSpec) -> ResourceResult[DataSourceSpec]:
        """Hand ownership to the API user, then delete."""
        if spec.id is None:
            raise DeclarationValidationError(["id is required to delete a data source"])

        try:
            current_user = await self.client.get_current_user_id()
            await self.client.update_role_assignees(
                spec.id, self.config.owner_role, [current_user]
            )
            await self.client.delete_data_source(spec.id)
        except NotFoundError:
            logger.info("Data source already deleted", extra={"ds_id": spec.id})
        else:
            logger.info("Deleted data source", extra={"ds_id": spec.id})
        return ResourceResult(state=None, removed=True)

    async def apply(self, spec: DataSourceSpec) -> ResourceResult[DataSourceSpec]:
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
