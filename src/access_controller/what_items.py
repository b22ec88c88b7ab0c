"""What-item projection between declared full names and remote object ids."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, Iterable

from .diagnostics import Diagnostics
from .errors import ConsistencyViolation, PartialApplyError, RemoteError
from .models import WhatAbacRule, WhatDataObject
from .remote import (
    GovernanceClient,
    RemoteDataObject,
    RemoteWhatAbacRule,
    RemoteWhatItem,
    WhatAbacRuleInput,
    WhatDataObjectInput,
)

logger = logging.getLogger(__name__)


class WhatItemProjector:
    """Resolves what-items for one data source.

    Write methods attempt every item and raise PartialApplyError at the end
    if any full name could not be resolved; the mutation is then skipped.
    Read methods rebuild the declared shape from remote listings.
    """

    def __init__(self, client: GovernanceClient, data_source_id: str) -> None:
        self.client = client
        self.data_source_id = data_source_id

    async def _resolve(self, full_name: str, diagnostics: Diagnostics) -> str | None:
        try:
            return await self.client.resolve_object_id(full_name, self.data_source_id)
        except RemoteError as e:
            diagnostics.add_error("Failed to get data object id", f"{full_name}: {e}")
            return None

    async def resolve_all(self, full_names: Iterable[str]) -> list[str]:
        """Resolve full names to object ids, in sorted name order."""
        diagnostics = Diagnostics()
        ids: list[str] = []
        for full_name in sorted(full_names):
            object_id = await self._resolve(full_name, diagnostics)
            if object_id is not None:
                ids.append(object_id)

        if diagnostics.has_error:
            raise PartialApplyError("Failed to resolve what-items", diagnostics)
        return ids

    async def data_objects_to_inputs(
        self, what: Iterable[WhatDataObject]
    ) -> list[WhatDataObjectInput]:
        diagnostics = Diagnostics()
        inputs: list[WhatDataObjectInput] = []
        for item in sorted(what, key=lambda w: w.fullname):
            object_id = await self._resolve(item.fullname, diagnostics)
            if object_id is None:
                continue
            inputs.append(
                WhatDataObjectInput(
                    data_object_id=object_id,
                    permissions=sorted(item.permissions),
                    global_permissions=sorted(item.global_permissions),
                )
            )

        if diagnostics.has_error:
            raise PartialApplyError("Failed to resolve what-items", diagnostics)
        return inputs

    async def abac_rule_to_input(
        self, rule: WhatAbacRule, fixed_do_types: Iterable[str] | None = None
    ) -> WhatAbacRuleInput:
        """Project an ABAC what-rule. The rule body is passed through as is."""
        scope = await self.resolve_all(rule.scope or ())
        do_types = fixed_do_types if fixed_do_types is not None else rule.do_types or ()
        return WhatAbacRuleInput(
            rule=dict(rule.rule),
            do_types=sorted(do_types),
            permissions=sorted(rule.permissions),
            global_permissions=sorted(rule.global_permissions),
            scope=scope,
        )

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    @staticmethod
    async def read_data_objects(
        stream: AsyncIterable[RemoteWhatItem], diagnostics: Diagnostics
    ) -> frozenset[WhatDataObject]:
        """Rebuild grant what-items. Global permissions are upper-cased."""
        items: set[WhatDataObject] = set()
        async for item in stream:
            if item.data_object is None:
                diagnostics.add_error("Invalid what data object", "Received data object is nil")
                continue
            items.add(
                WhatDataObject(
                    fullname=item.data_object.full_name,
                    permissions=frozenset(item.permissions),
                    global_permissions=frozenset(p.upper() for p in item.global_permissions),
                )
            )
        return frozenset(items)

    @staticmethod
    async def read_columns(
        stream: AsyncIterable[RemoteWhatItem], diagnostics: Diagnostics
    ) -> frozenset[str]:
        columns: set[str] = set()
        async for item in stream:
            if item.data_object is None:
                diagnostics.add_error("Invalid what data object", "Received data object is nil")
                continue
            columns.add(item.data_object.full_name)
        return frozenset(columns)

    @staticmethod
    async def read_single_table(stream: AsyncIterable[RemoteWhatItem]) -> str | None:
        """Rebuild the one table of a filter.

        Raises:
            ConsistencyViolation: If the listing contains more than one item.
        """
        table: str | None = None
        seen = 0
        async for item in stream:
            seen += 1
            if seen > 1:
                raise ConsistencyViolation(
                    "Received multiple tables for a filter, expected exactly one"
                )
            if item.data_object is not None:
                table = item.data_object.full_name
        return table

    @staticmethod
    async def read_abac_rule(
        remote_rule: RemoteWhatAbacRule,
        scope_stream: AsyncIterable[RemoteDataObject],
        include_do_types: bool = True,
    ) -> WhatAbacRule:
        scope = frozenset([obj.full_name async for obj in scope_stream])
        return WhatAbacRule(
            rule=dict(remote_rule.rule),
            scope=scope,
            do_types=frozenset(remote_rule.do_types) if include_do_types else None,
            permissions=frozenset(remote_rule.permissions),
            global_permissions=frozenset(p.upper() for p in remote_rule.global_permissions),
        )
