"""Who-item reconciliation: grants, promises and promoted promises.

A promise is a time-bounded who-item that the governance service turns
into a regular grant once the beneficiary requests access. From then on
the grant belongs to the promise mechanism, not to the declaration:

- READ hides remote grants whose key matches a declared promise, so the
  declared view does not flip-flop between "promise" and "grant"
- WRITE re-submits those grants explicitly, because the update call
  interprets a missing who-item as "revoke"

Keys are ``<beneficiaryType>:<beneficiaryId>``. Users are keyed by email
on both sides; the write payload uses the resolved user id.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, Iterable
from dataclasses import dataclass, field
from typing import NamedTuple

from .diagnostics import Diagnostics
from .errors import PartialApplyError, RemoteError
from .models import WhoItem
from .remote import (
    BeneficiaryType,
    GovernanceClient,
    RemoteWhoItem,
    WhoItemInput,
    WhoItemType,
)
from .set_diff import diff

logger = logging.getLogger(__name__)


class WhoKey(NamedTuple):
    """Kind-independent identity of a who-item."""

    beneficiary_type: BeneficiaryType
    beneficiary_id: str

    @property
    def promise_key(self) -> str:
        return f"{self.beneficiary_type.value}:{self.beneficiary_id}"


def declared_key(item: WhoItem) -> WhoKey:
    beneficiary_type, beneficiary_id = item.beneficiary
    return WhoKey(beneficiary_type, beneficiary_id)


def remote_key(item: RemoteWhoItem) -> WhoKey | None:
    """Key of a remote who-item, or None for a user without an email."""
    beneficiary = item.beneficiary
    if beneficiary.type == BeneficiaryType.USER:
        if beneficiary.email is None:
            return None
        return WhoKey(BeneficiaryType.USER, beneficiary.email)
    return WhoKey(beneficiary.type, beneficiary.id)


@dataclass(frozen=True)
class WhoPlan:
    """Key-level difference between declared and observed who-items.

    Attributes:
        to_add: Declared keys not present remotely.
        to_remove: Remote keys that are neither declared nor promoted promises.
        preserved: Remote grants kept alive because a declared promise owns them.
    """

    to_add: frozenset[WhoKey] = frozenset()
    to_remove: frozenset[WhoKey] = frozenset()
    preserved: frozenset[WhoKey] = frozenset()


@dataclass
class WhoReadResult:
    """Reconstructed who set plus what was hidden or reported on the way."""

    who: frozenset[WhoItem]
    hidden: list[RemoteWhoItem] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


def _to_declared(key: WhoKey, promise_duration: int | None) -> WhoItem:
    if key.beneficiary_type == BeneficiaryType.USER:
        return WhoItem(user=key.beneficiary_id, promise_duration=promise_duration)
    if key.beneficiary_type == BeneficiaryType.GROUP:
        return WhoItem(group=key.beneficiary_id, promise_duration=promise_duration)
    return WhoItem(access_control=key.beneficiary_id, promise_duration=promise_duration)


class WhoItemReconciler:
    """Merges the declared who set with the remote who listing.

    One instance serves one reconciliation pass of one access provider.
    """

    def __init__(self, declared: Iterable[WhoItem] | None) -> None:
        self.declared = frozenset(declared) if declared is not None else None
        self.declared_promise_keys = frozenset(
            declared_key(w).promise_key for w in self.declared or () if w.is_promise
        )

    def is_promoted(self, item: RemoteWhoItem) -> bool:
        """True for a remote grant that realizes a declared promise."""
        if item.type != WhoItemType.GRANT:
            return False
        key = remote_key(item)
        return key is not None and key.promise_key in self.declared_promise_keys

    async def reconstruct(self, stream: AsyncIterable[RemoteWhoItem]) -> WhoReadResult:
        """Rebuild the declared view of the who set from the remote listing.

        The stream is drained completely. Errors raised by the stream
        propagate; data-integrity problems become diagnostics.
        """
        items: set[WhoItem] = set()
        result = WhoReadResult(who=frozenset())

        async for item in stream:
            key = remote_key(item)
            if key is None:
                result.diagnostics.add_warning(
                    "Who-item without email skipped",
                    f"user {item.beneficiary.id} has no email and cannot be declared",
                )
                continue

            if item.type == WhoItemType.GRANT:
                if key.promise_key in self.declared_promise_keys:
                    result.hidden.append(item)
                    continue
            elif item.promise_duration is None:
                result.diagnostics.add_error(
                    "Invalid who-item detected.",
                    f"Promise duration not set on promise who-item {key.promise_key}",
                )

            items.add(_to_declared(key, item.promise_duration))

        result.who = frozenset(items)
        if result.hidden:
            logger.debug(
                "Promoted promises hidden from declared view",
                extra={"count": len(result.hidden)},
            )
        return result

    def resubmissions(self, observed: Iterable[RemoteWhoItem]) -> list[WhoItemInput]:
        """Explicit grant inputs for every promoted promise in a drained listing.

        The caller collects the full listing first and issues the write only
        after this returns.
        """
        inputs: list[WhoItemInput] = []
        for item in observed:
            if not self.is_promoted(item):
                continue

            beneficiary = item.beneficiary
            who_input = WhoItemInput(
                type=WhoItemType.GRANT,
                expires_after=item.expires_after,
                expires_at=item.expires_at,
            )
            if beneficiary.type == BeneficiaryType.USER:
                who_input.user = beneficiary.id
            elif beneficiary.type == BeneficiaryType.GROUP:
                who_input.group = beneficiary.id
            else:
                who_input.access_provider = beneficiary.id
            inputs.append(who_input)

        if inputs:
            logger.info("Re-submitting promoted promises", extra={"count": len(inputs)})
        return inputs

    def plan(self, observed: Iterable[RemoteWhoItem]) -> WhoPlan:
        """Compute the key-level who plan without touching the remote."""
        if self.declared is None:
            return WhoPlan()

        observed_keys: set[WhoKey] = set()
        preserved: set[WhoKey] = set()
        for item in observed:
            key = remote_key(item)
            if key is None:
                continue
            if self.is_promoted(item):
                preserved.add(key)
            else:
                observed_keys.add(key)

        declared_keys = {declared_key(w) for w in self.declared}
        key_diff = diff(declared_keys, observed_keys | preserved)
        return WhoPlan(
            to_add=key_diff.to_add,
            to_remove=key_diff.to_remove - preserved,
            preserved=frozenset(preserved),
        )

    async def to_inputs(self, client: GovernanceClient) -> list[WhoItemInput]:
        """Project the declared who set to payload entries.

        Every item is attempted. User emails that cannot be resolved are
        collected; if any failed, PartialApplyError is raised so the caller
        does not send a payload that would revoke the missing members.
        """
        diagnostics = Diagnostics()
        inputs: list[WhoItemInput] = []

        for item in sorted(self.declared or (), key=lambda w: declared_key(w)):
            who_input = WhoItemInput(
                type=WhoItemType.PROMISE if item.is_promise else WhoItemType.GRANT,
                promise_duration=item.promise_duration,
            )
            if item.user is not None:
                try:
                    who_input.user = await client.get_user_id_by_email(item.user)
                except RemoteError as e:
                    diagnostics.add_error("Failed to get user", f"{item.user}: {e}")
                    continue
            elif item.group is not None:
                who_input.group = item.group
            else:
                who_input.access_provider = item.access_control
            inputs.append(who_input)

        if diagnostics.has_error:
            raise PartialApplyError("Failed to resolve who-items", diagnostics)
        return inputs
