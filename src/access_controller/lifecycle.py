"""Access provider lifecycle: create/update and activation are separate calls.

STATE MACHINE:
    UNMANAGED --create--> CREATED --converge--> ACTIVE | INACTIVE
    any       --read: NotFound or Deleted--> DELETED
    any       --delete--> DELETED

The governance service models activation as its own verb. A create or
update never changes the activation state; when the declared state
differs from what the service reports, a second call follows. The two
calls are not atomic: if the second one fails, the entity exists with
the wrong state and the next pass converges it.
"""

from __future__ import annotations

import logging
from enum import Enum

from .diagnostics import Diagnostics
from .errors import DeclarationValidationError, NotFoundError, RemoteError
from .remote import (
    AccessProviderInput,
    AccessProviderState,
    GovernanceClient,
    RemoteAccessProvider,
)

logger = logging.getLogger(__name__)

# States a declaration may ask for
DECLARABLE_STATES = (AccessProviderState.ACTIVE, AccessProviderState.INACTIVE)


class LifecycleState(str, Enum):
    """Local lifecycle of one managed access provider."""

    UNMANAGED = "unmanaged"
    CREATED = "created"
    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


_FROM_REMOTE = {
    AccessProviderState.ACTIVE: LifecycleState.ACTIVE,
    AccessProviderState.INACTIVE: LifecycleState.INACTIVE,
    AccessProviderState.DELETED: LifecycleState.DELETED,
}


def parse_state(value: str) -> AccessProviderState:
    """Validate a declared state string.

    Raises:
        DeclarationValidationError: If the value is not Active or Inactive.
    """
    for state in DECLARABLE_STATES:
        if value == state.value:
            return state
    raise DeclarationValidationError(
        [f"Invalid state: {value}. Expected one of {[s.value for s in DECLARABLE_STATES]}"]
    )


class LifecycleStateMachine:
    """Drives the primary mutation and the separate state call.

    One instance tracks one access provider through one reconciliation
    pass. Primary mutation failures raise RemoteError; a failing state
    call after a successful create/update only adds an error diagnostic.
    """

    def __init__(self, client: GovernanceClient) -> None:
        self.client = client
        self.state = LifecycleState.UNMANAGED

    def _transition(self, new_state: LifecycleState, ap_id: str | None) -> None:
        if new_state != self.state:
            logger.info(
                "Lifecycle transition",
                extra={"from": self.state.value, "to": new_state.value, "ap_id": ap_id},
            )
        self.state = new_state

    def _observe(self, ap: RemoteAccessProvider) -> None:
        self._transition(_FROM_REMOTE[ap.state], ap.id)

    async def create(self, ap_input: AccessProviderInput) -> RemoteAccessProvider:
        ap = await self.client.create_access_provider(ap_input)
        logger.info(
            "Created access provider",
            extra={"ap_id": ap.id, "action": ap.action.value, "type": ap.type},
        )
        self._transition(LifecycleState.CREATED, ap.id)
        return ap

    async def update(self, ap_id: str, ap_input: AccessProviderInput) -> RemoteAccessProvider:
        ap = await self.client.update_access_provider(ap_id, ap_input)
        logger.info("Updated access provider", extra={"ap_id": ap.id})
        self._observe(ap)
        return ap

    async def converge(
        self,
        ap: RemoteAccessProvider,
        declared: AccessProviderState,
        diagnostics: Diagnostics,
    ) -> RemoteAccessProvider:
        """Issue the activate/deactivate call when declared and remote differ.

        Returns the entity as reported by the last successful call.
        """
        if ap.state == declared:
            self._observe(ap)
            return ap

        try:
            updated = await self.client.set_access_provider_state(ap.id, declared)
        except RemoteError as e:
            diagnostics.add_error(
                f"Failed to set access provider state to {declared.value}",
                f"{ap.id} remains {ap.state.value}: {e}",
            )
            self._observe(ap)
            return ap

        logger.info(
            "Changed access provider state",
            extra={"ap_id": ap.id, "from": ap.state.value, "to": updated.state.value},
        )
        self._observe(updated)
        return updated

    async def read(self, ap_id: str) -> RemoteAccessProvider | None:
        """Fetch the entity. None means it is gone and must be removed locally."""
        try:
            ap = await self.client.get_access_provider(ap_id)
        except NotFoundError:
            logger.info("Access provider not found", extra={"ap_id": ap_id})
            self._transition(LifecycleState.DELETED, ap_id)
            return None

        self._observe(ap)
        if ap.state == AccessProviderState.DELETED:
            return None
        return ap

    async def delete(self, ap_id: str) -> None:
        try:
            await self.client.delete_access_provider(ap_id)
        except NotFoundError:
            logger.info("Access provider already deleted", extra={"ap_id": ap_id})
        else:
            logger.info("Deleted access provider", extra={"ap_id": ap_id})
        self._transition(LifecycleState.DELETED, ap_id)
