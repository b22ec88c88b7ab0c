"""Access provider orchestration: grants, masks, filters and purposes.

AccessProviderResource composes the reconciliation components for one
access provider kind:

    declared spec
        -> validate (no remote call on failure)
        -> plan modifier (kind-specific defaults)
        -> input projection (who via WhoItemReconciler, what via WhatItemProjector)
        -> primary mutation (LifecycleStateMachine)
        -> state convergence, owners
        -> full re-read (kind mapping + ordered read hooks)

Kinds plug in through AccessProviderKind. Everything that differs between
grant, mask, filter and purpose lives there; the resource itself is shared.

DIAGNOSTICS VS EXCEPTIONS:
- DeclarationValidationError, ConsistencyViolation and a failing primary
  mutation (RemoteError) propagate
- Unresolvable who/what items are returned as error diagnostics and the
  mutation is not issued
- Failures after a successful primary mutation are error diagnostics; the
  snapshot still carries the id so the caller can persist it and re-run
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any, ClassVar, Generic, TypeVar

from .config import Config
from .diagnostics import Diagnostics
from .errors import DeclarationValidationError, PartialApplyError, RemoteError, SequenceError
from .lifecycle import LifecycleStateMachine, parse_state
from .models import (
    AccessProviderSpec,
    FilterSpec,
    GrantSpec,
    MaskSpec,
    PurposeSpec,
)
from .owners import OwnerReconciler
from .remote import (
    AccessProviderAction,
    AccessProviderInput,
    GovernanceClient,
    LockKey,
    RemoteAccessProvider,
    WhatDataObjectInput,
    WhoAndWhatType,
)
from .resources import PlanAction, ResourceResult, matches_declared
from .streams import CancellableStream
from .what_items import WhatItemProjector
from .who_items import WhoItemReconciler

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=AccessProviderSpec)
T = TypeVar("T")

# Data object types an ABAC mask rule applies to
MASK_DO_TYPES = ("column",)

ReadHook = Callable[["AccessProviderResource[S]", S, Diagnostics], Awaitable[S]]


def _has_what_lock(ap: RemoteAccessProvider) -> bool:
    return LockKey.WHAT_LOCK in ap.locks


def _single_data_source(ap: RemoteAccessProvider, diagnostics: Diagnostics) -> str | None:
    if len(ap.sync_data) != 1:
        diagnostics.add_error(
            "Failed to get data source",
            f"Expected exactly one data source, got: {len(ap.sync_data)}.",
        )
        return None
    return ap.sync_data[0].data_source_id


# =============================================================================
# Kinds
# =============================================================================


class AccessProviderKind(Generic[S]):
    """Kind-specific behaviour plugged into AccessProviderResource."""

    name: ClassVar[str]
    action: ClassVar[AccessProviderAction]
    spec_class: ClassVar[type[AccessProviderSpec]]

    # Executed in order after the shared read; each may refine the snapshot
    read_hooks: Sequence[ReadHook[Any]] = ()

    def validate(self, spec: S) -> list[str]:
        return []

    def modify_plan(self, spec: S) -> S:
        return spec

    async def fill_input(
        self, resource: AccessProviderResource[S], spec: S, ap_input: AccessProviderInput
    ) -> None:
        """Add kind fields to the payload. May raise PartialApplyError."""
        return None

    async def from_remote(
        self,
        resource: AccessProviderResource[S],
        spec: S,
        ap: RemoteAccessProvider,
        diagnostics: Diagnostics,
    ) -> S:
        return spec


def _planned_what_lock(what_declared: bool, what_locked: bool | None) -> bool:
    """A declared what set is always locked; an unset lock means unlocked."""
    if what_declared:
        return True
    return bool(what_locked)


def _what_lock_errors(what_declared: bool, what_locked: bool | None, what: str) -> list[str]:
    if what_declared and what_locked is False:
        return [f"What lock should be true: {what} is set, so what_locked cannot be false"]
    return []


async def _read_grant_what_items(
    resource: AccessProviderResource[GrantSpec], spec: GrantSpec, diagnostics: Diagnostics
) -> GrantSpec:
    if spec.what_data_objects is None or spec.id is None:
        return spec
    async with resource.stream(resource.client.list_what_items(spec.id), "what-items") as stream:
        what = await WhatItemProjector.read_data_objects(stream, diagnostics)
    return spec.model_copy(update={"what_data_objects": what})


async def _read_mask_columns(
    resource: AccessProviderResource[MaskSpec], spec: MaskSpec, diagnostics: Diagnostics
) -> MaskSpec:
    if spec.columns is None or spec.id is None:
        return spec
    async with resource.stream(resource.client.list_what_items(spec.id), "columns") as stream:
        columns = await WhatItemProjector.read_columns(stream, diagnostics)
    return spec.model_copy(update={"columns": columns})


async def _read_filter_table(
    resource: AccessProviderResource[FilterSpec], spec: FilterSpec, diagnostics: Diagnostics
) -> FilterSpec:
    if spec.table is None or spec.id is None:
        return spec
    async with resource.stream(resource.client.list_what_items(spec.id), "table") as stream:
        table = await WhatItemProjector.read_single_table(stream)
    return spec.model_copy(update={"table": table})


class GrantKind(AccessProviderKind[GrantSpec]):
    name = "Grant"
    action = AccessProviderAction.GRANT
    spec_class = GrantSpec
    read_hooks = (_read_grant_what_items,)

    def validate(self, spec: GrantSpec) -> list[str]:
        errors: list[str] = []
        if spec.what_data_objects is not None and spec.what_abac_rule is not None:
            errors.append("Cannot set both what_data_objects and what_abac_rule")
        what_declared = spec.what_data_objects is not None or spec.what_abac_rule is not None
        errors.extend(
            _what_lock_errors(what_declared, spec.what_locked, "what_data_objects or what_abac_rule")
        )
        return errors

    def modify_plan(self, spec: GrantSpec) -> GrantSpec:
        what_declared = spec.what_data_objects is not None or spec.what_abac_rule is not None
        return spec.model_copy(
            update={"what_locked": _planned_what_lock(what_declared, spec.what_locked)}
        )

    async def fill_input(
        self,
        resource: AccessProviderResource[GrantSpec],
        spec: GrantSpec,
        ap_input: AccessProviderInput,
    ) -> None:
        ap_input.type = spec.type
        ap_input.data_source = spec.data_source
        ap_input.what_type = WhoAndWhatType.STATIC

        projector = WhatItemProjector(resource.client, spec.data_source)
        if spec.what_data_objects is not None:
            ap_input.what_data_objects = await projector.data_objects_to_inputs(
                spec.what_data_objects
            )
        elif spec.what_abac_rule is not None:
            ap_input.what_type = WhoAndWhatType.DYNAMIC
            ap_input.what_abac_rule = await projector.abac_rule_to_input(spec.what_abac_rule)

        if spec.what_locked:
            ap_input.locks.append(LockKey.WHAT_LOCK)

    async def from_remote(
        self,
        resource: AccessProviderResource[GrantSpec],
        spec: GrantSpec,
        ap: RemoteAccessProvider,
        diagnostics: Diagnostics,
    ) -> GrantSpec:
        data_source = _single_data_source(ap, diagnostics)
        if data_source is None:
            return spec

        update: dict[str, Any] = {
            "data_source": data_source,
            "type": ap.sync_data[0].type,
            "what_locked": _has_what_lock(ap),
        }
        if ap.what_type == WhoAndWhatType.DYNAMIC and ap.what_abac_rule is not None:
            async with resource.stream(
                resource.client.list_abac_what_scope(ap.id), "abac scope"
            ) as stream:
                update["what_abac_rule"] = await WhatItemProjector.read_abac_rule(
                    ap.what_abac_rule, stream
                )
        return spec.model_copy(update=update)


class MaskKind(AccessProviderKind[MaskSpec]):
    name = "Mask"
    action = AccessProviderAction.MASK
    spec_class = MaskSpec
    read_hooks = (_read_mask_columns,)

    def validate(self, spec: MaskSpec) -> list[str]:
        errors: list[str] = []
        if spec.columns is not None and spec.what_abac_rule is not None:
            errors.append("Cannot set both columns and what_abac_rule")
        what_declared = spec.columns is not None or spec.what_abac_rule is not None
        errors.extend(
            _what_lock_errors(what_declared, spec.what_locked, "columns or what_abac_rule")
        )
        return errors

    def modify_plan(self, spec: MaskSpec) -> MaskSpec:
        what_declared = spec.columns is not None or spec.what_abac_rule is not None
        return spec.model_copy(
            update={"what_locked": _planned_what_lock(what_declared, spec.what_locked)}
        )

    async def fill_input(
        self,
        resource: AccessProviderResource[MaskSpec],
        spec: MaskSpec,
        ap_input: AccessProviderInput,
    ) -> None:
        ap_input.type = spec.type
        ap_input.data_source = spec.data_source

        projector = WhatItemProjector(resource.client, spec.data_source)
        if spec.columns is not None:
            ap_input.what_data_objects = [
                WhatDataObjectInput(data_object_id=object_id)
                for object_id in await projector.resolve_all(spec.columns)
            ]
        elif spec.what_abac_rule is not None:
            ap_input.what_type = WhoAndWhatType.DYNAMIC
            ap_input.what_abac_rule = await projector.abac_rule_to_input(
                spec.what_abac_rule, fixed_do_types=MASK_DO_TYPES
            )

        if spec.what_locked:
            ap_input.locks.append(LockKey.WHAT_LOCK)

    async def from_remote(
        self,
        resource: AccessProviderResource[MaskSpec],
        spec: MaskSpec,
        ap: RemoteAccessProvider,
        diagnostics: Diagnostics,
    ) -> MaskSpec:
        data_source = _single_data_source(ap, diagnostics)
        if data_source is None:
            return spec

        mask_type = ap.sync_data[0].type
        if mask_type is None:
            try:
                mask_type = await resource.client.get_default_mask_type(data_source)
            except RemoteError as e:
                diagnostics.add_error("Failed to get default mask type", str(e))
                return spec

        update: dict[str, Any] = {
            "data_source": data_source,
            "type": mask_type,
            "what_locked": _has_what_lock(ap),
        }
        if ap.what_type == WhoAndWhatType.DYNAMIC and ap.what_abac_rule is not None:
            async with resource.stream(
                resource.client.list_abac_what_scope(ap.id), "abac scope"
            ) as stream:
                update["what_abac_rule"] = await WhatItemProjector.read_abac_rule(
                    ap.what_abac_rule, stream, include_do_types=False
                )
        return spec.model_copy(update=update)


class FilterKind(AccessProviderKind[FilterSpec]):
    name = "Filter"
    action = AccessProviderAction.FILTERED
    spec_class = FilterSpec
    read_hooks = (_read_filter_table,)

    def validate(self, spec: FilterSpec) -> list[str]:
        return _what_lock_errors(spec.table is not None, spec.what_locked, "table")

    def modify_plan(self, spec: FilterSpec) -> FilterSpec:
        return spec.model_copy(
            update={"what_locked": _planned_what_lock(spec.table is not None, spec.what_locked)}
        )

    async def fill_input(
        self,
        resource: AccessProviderResource[FilterSpec],
        spec: FilterSpec,
        ap_input: AccessProviderInput,
    ) -> None:
        ap_input.data_source = spec.data_source
        ap_input.policy_rule = spec.filter_policy

        if spec.table is not None:
            projector = WhatItemProjector(resource.client, spec.data_source)
            ap_input.what_data_objects = [
                WhatDataObjectInput(data_object_id=object_id)
                for object_id in await projector.resolve_all([spec.table])
            ]

        if spec.table is not None or spec.what_locked:
            ap_input.locks.append(LockKey.WHAT_LOCK)

    async def from_remote(
        self,
        resource: AccessProviderResource[FilterSpec],
        spec: FilterSpec,
        ap: RemoteAccessProvider,
        diagnostics: Diagnostics,
    ) -> FilterSpec:
        data_source = _single_data_source(ap, diagnostics)
        if data_source is None:
            return spec
        return spec.model_copy(
            update={
                "data_source": data_source,
                "filter_policy": ap.policy_rule,
                "what_locked": _has_what_lock(ap),
            }
        )


class PurposeKind(AccessProviderKind[PurposeSpec]):
    name = "Purpose"
    action = AccessProviderAction.PURPOSE
    spec_class = PurposeSpec

    async def fill_input(
        self,
        resource: AccessProviderResource[PurposeSpec],
        spec: PurposeSpec,
        ap_input: AccessProviderInput,
    ) -> None:
        ap_input.type = spec.type

    async def from_remote(
        self,
        resource: AccessProviderResource[PurposeSpec],
        spec: PurposeSpec,
        ap: RemoteAccessProvider,
        diagnostics: Diagnostics,
    ) -> PurposeSpec:
        return spec.model_copy(update={"type": ap.type})


KINDS: dict[str, AccessProviderKind[Any]] = {
    kind.name: kind for kind in (GrantKind(), MaskKind(), FilterKind(), PurposeKind())
}


# =============================================================================
# Orchestrator
# =============================================================================


class AccessProviderResource(Generic[S]):
    """Create/read/update/delete/plan/apply for one access provider kind.

    Usage:
        resource = AccessProviderResource(client, GrantKind(), config)
        result = await resource.apply(spec)
        if result.diagnostics.has_error:
            ...
    """

    def __init__(
        self, client: GovernanceClient, kind: AccessProviderKind[S], config: Config
    ) -> None:
        self.client = client
        self.kind = kind
        self.config = config
        self.owners = OwnerReconciler(client, config.owner_role, config.listing_timeout_seconds)

    def stream(self, source: AsyncIterator[T], description: str) -> CancellableStream[T]:
        return CancellableStream(
            source,
            timeout_seconds=self.config.listing_timeout_seconds,
            description=f"{self.kind.name} {description}",
        )

    # -------------------------------------------------------------------------
    # Validation and planning
    # -------------------------------------------------------------------------

    def validate(self, spec: S) -> S:
        """Check the declaration and apply the kind's plan modifier.

        Every check runs; all problems are raised together.

        Raises:
            DeclarationValidationError: If anything is invalid.
        """
        errors: list[str] = []

        try:
            parse_state(spec.state)
        except DeclarationValidationError as e:
            errors.extend(e.errors)

        if spec.who is not None and spec.who_abac_rule is not None:
            errors.append("Cannot specify both who and who_abac_rule")

        for item in spec.who or ():
            found = sum(v is not None for v in (item.user, item.group, item.access_control))
            if found != 1:
                errors.append(
                    "Invalid who-item. Exactly one of user, group or access_control must "
                    f"be set, got: {found}."
                )
            if item.promise_duration is not None and item.promise_duration < 1:
                errors.append(
                    f"Invalid who-item. promise_duration must be at least 1, "
                    f"got: {item.promise_duration}."
                )

        errors.extend(self.kind.validate(spec))

        if errors:
            raise DeclarationValidationError(errors)
        return self.kind.modify_plan(spec)

    async def _observe(self, spec: S, diagnostics: Diagnostics) -> S | None:
        if spec.id is None:
            return None
        lifecycle = LifecycleStateMachine(self.client)
        ap = await lifecycle.read(spec.id)
        if ap is None:
            return None
        return await self._read_state(spec, ap, diagnostics)

    async def plan(self, spec: S) -> PlanAction:
        """Decide what apply would do, without mutating anything."""
        spec = self.validate(spec)
        observed = await self._observe(spec, Diagnostics())
        if observed is None:
            return PlanAction.CREATE
        if matches_declared(spec, observed):
            return PlanAction.NOOP
        return PlanAction.UPDATE

    async def apply(self, spec: S) -> ResourceResult[S]:
        """Converge the remote access provider to the declaration.

        A second apply with the same declaration issues no remote mutation.
        """
        spec = self.validate(spec)
        diagnostics = Diagnostics()

        observed = await self._observe(spec, diagnostics)
        if observed is None:
            result = await self.create(spec.model_copy(update={"id": None}))
            result.action = PlanAction.CREATE
        elif matches_declared(spec, observed):
            logger.info(
                "Access provider up to date",
                extra={"kind": self.kind.name, "ap_id": spec.id},
            )
            result = ResourceResult(state=observed, diagnostics=diagnostics)
            result.action = PlanAction.NOOP
        else:
            result = await self.update(spec)
            result.action = PlanAction.UPDATE
        return result

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    async def _build_input(self, spec: S, reconciler: WhoItemReconciler) -> AccessProviderInput:
        ap_input = AccessProviderInput(
            name=spec.name, action=self.kind.action, description=spec.description
        )
        diagnostics = Diagnostics()

        if spec.who is not None:
            ap_input.who_type = WhoAndWhatType.STATIC
            try:
                ap_input.who_items = await reconciler.to_inputs(self.client)
            except PartialApplyError as e:
                diagnostics.extend(e.diagnostics)
        elif spec.who_abac_rule is not None:
            ap_input.who_type = WhoAndWhatType.DYNAMIC
            ap_input.who_abac_rule = dict(spec.who_abac_rule)

        try:
            await self.kind.fill_input(self, spec, ap_input)
        except PartialApplyError as e:
            diagnostics.extend(e.diagnostics)

        if diagnostics.has_error:
            raise PartialApplyError("Access provider input could not be built", diagnostics)
        return ap_input

    async def create(self, spec: S) -> ResourceResult[S]:
        spec = self.validate(spec)
        declared_state = parse_state(spec.state)
        reconciler = WhoItemReconciler(spec.who)

        try:
            ap_input = await self._build_input(spec, reconciler)
        except PartialApplyError as e:
            return ResourceResult(state=None, diagnostics=e.diagnostics)

        lifecycle = LifecycleStateMachine(self.client)
        ap = await lifecycle.create(ap_input)
        return await self._finish(spec, ap, declared_state, lifecycle)

    async def update(self, spec: S) -> ResourceResult[S]:
        spec = self.validate(spec)
        if spec.id is None:
            raise DeclarationValidationError(["id is required to update an access provider"])
        declared_state = parse_state(spec.state)
        reconciler = WhoItemReconciler(spec.who)

        try:
            ap_input = await self._build_input(spec, reconciler)
        except PartialApplyError as e:
            return ResourceResult(state=spec, diagnostics=e.diagnostics)

        if ap_input.who_items is not None and reconciler.declared_promise_keys:
            async with self.stream(self.client.list_who_items(spec.id), "who-items") as stream:
                observed_who = await stream.collect()
            who_plan = reconciler.plan(observed_who)
            logger.info(
                "Who-item plan",
                extra={
                    "kind": self.kind.name,
                    "ap_id": spec.id,
                    "to_add": len(who_plan.to_add),
                    "to_remove": len(who_plan.to_remove),
                    "preserved": len(who_plan.preserved),
                },
            )
            ap_input.who_items.extend(reconciler.resubmissions(observed_who))

        lifecycle = LifecycleStateMachine(self.client)
        ap = await lifecycle.update(spec.id, ap_input)
        return await self._finish(spec, ap, declared_state, lifecycle)

    async def _finish(
        self,
        spec: S,
        ap: RemoteAccessProvider,
        declared_state: Any,
        lifecycle: LifecycleStateMachine,
    ) -> ResourceResult[S]:
        """Secondary steps after a successful primary mutation."""
        diagnostics = Diagnostics()
        spec = spec.model_copy(update={"id": ap.id})

        ap = await lifecycle.converge(ap, declared_state, diagnostics)
        await self.owners.apply(ap.id, spec.owners, diagnostics)

        try:
            state = await self._read_state(spec, ap, diagnostics)
        except (RemoteError, SequenceError) as e:
            diagnostics.add_error("Failed to read back access provider", f"{ap.id}: {e}")
            state = spec
        return ResourceResult(state=state, diagnostics=diagnostics)

    async def read(self, spec: S) -> ResourceResult[S]:
        """Rebuild the snapshot from the remote. Gone entities are removed."""
        if spec.id is None:
            raise DeclarationValidationError(["id is required to read an access provider"])

        diagnostics = Diagnostics()
        lifecycle = LifecycleStateMachine(self.client)
        ap = await lifecycle.read(spec.id)
        if ap is None:
            return ResourceResult(state=None, diagnostics=diagnostics, removed=True)

        state = await self._read_state(spec, ap, diagnostics)
        return ResourceResult(state=state, diagnostics=diagnostics)

    async def delete(self, spec: S) -> ResourceResult[S]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to delete an access provider"])
        await LifecycleStateMachine(self.client).delete(spec.id)
        return ResourceResult(state=None, removed=True)

    async def _read_state(
        self, spec: S, ap: RemoteAccessProvider, diagnostics: Diagnostics
    ) -> S:
        update: dict[str, Any] = {
            "id": ap.id,
            "name": ap.name,
            "description": ap.description,
            "state": ap.state.value,
        }

        # Undeclared who is externally managed and stays None
        if spec.who is not None:
            reconciler = WhoItemReconciler(spec.who)
            async with self.stream(self.client.list_who_items(ap.id), "who-items") as stream:
                who_result = await reconciler.reconstruct(stream)
            diagnostics.extend(who_result.diagnostics)
            update["who"] = who_result.who

        if ap.who_abac_rule is not None:
            update["who_abac_rule"] = dict(ap.who_abac_rule)

        state = spec.model_copy(update=update)
        state = await self.kind.from_remote(self, state, ap, diagnostics)

        owners = await self.owners.read(ap.id, diagnostics)
        if owners is not None:
            state = state.model_copy(update={"owners": owners})

        for hook in self.kind.read_hooks:
            state = await hook(self, state, diagnostics)
        return state

