"""Tests for what-item projection."""

import pytest
from governance_mock import MockGovernanceClient, async_items

from access_controller.diagnostics import Diagnostics
from access_controller.errors import ConsistencyViolation, PartialApplyError
from access_controller.models import WhatAbacRule, WhatDataObject
from access_controller.remote import RemoteDataObject, RemoteWhatAbacRule, RemoteWhatItem
from access_controller.what_items import WhatItemProjector

DS = "ds-warehouse"


@pytest.fixture
def client() -> MockGovernanceClient:
    client = MockGovernanceClient()
    client.add_data_object("db.sales", DS)
    client.add_data_object("db.sales.amount", DS)
    return client


class TestProjection:
    """Tests for declared -> remote projection."""

    @pytest.mark.asyncio
    async def test_data_objects_to_inputs(self, client: MockGovernanceClient) -> None:
        projector = WhatItemProjector(client, DS)
        what = {
            WhatDataObject(
                fullname="db.sales",
                permissions=frozenset({"SELECT"}),
                global_permissions=frozenset({"WRITE", "READ"}),
            )
        }

        inputs = await projector.data_objects_to_inputs(what)

        assert len(inputs) == 1
        assert inputs[0].data_object_id == client.data_objects[("db.sales", DS)].id
        assert inputs[0].permissions == ["SELECT"]
        assert inputs[0].global_permissions == ["READ", "WRITE"]

    @pytest.mark.asyncio
    async def test_unresolvable_objects_collected(self, client: MockGovernanceClient) -> None:
        """Test that every name is attempted before failing."""
        projector = WhatItemProjector(client, DS)
        what = {WhatDataObject(fullname="db.missing"), WhatDataObject(fullname="db.gone")}

        with pytest.raises(PartialApplyError) as exc_info:
            await projector.data_objects_to_inputs(what)

        errors = exc_info.value.diagnostics.errors()
        assert [e.summary for e in errors] == ["Failed to get data object id"] * 2
        assert len(client.calls_to("resolve_object_id")) == 2

    @pytest.mark.asyncio
    async def test_abac_rule_with_fixed_do_types(self, client: MockGovernanceClient) -> None:
        projector = WhatItemProjector(client, DS)
        rule = WhatAbacRule(
            rule={"tag": "pii"},
            scope=frozenset({"db.sales"}),
            do_types=frozenset({"table"}),
        )

        rule_input = await projector.abac_rule_to_input(rule, fixed_do_types=("column",))

        assert rule_input.do_types == ["column"]
        assert rule_input.rule == {"tag": "pii"}
        assert rule_input.scope == [client.data_objects[("db.sales", DS)].id]


class TestRead:
    """Tests for remote -> declared reconstruction."""

    @pytest.mark.asyncio
    async def test_read_data_objects_upper_cases(self) -> None:
        listing = [
            RemoteWhatItem(
                data_object=RemoteDataObject("do-1", "db.sales", DS),
                permissions=("SELECT",),
                global_permissions=("read",),
            ),
            RemoteWhatItem(data_object=None),
        ]
        diagnostics = Diagnostics()

        what = await WhatItemProjector.read_data_objects(async_items(listing), diagnostics)

        assert what == frozenset(
            {
                WhatDataObject(
                    fullname="db.sales",
                    permissions=frozenset({"SELECT"}),
                    global_permissions=frozenset({"READ"}),
                )
            }
        )
        assert diagnostics[0].summary == "Invalid what data object"

    @pytest.mark.asyncio
    async def test_read_single_table(self) -> None:
        listing = [RemoteWhatItem(data_object=RemoteDataObject("do-1", "db.sales", DS))]

        assert await WhatItemProjector.read_single_table(async_items(listing)) == "db.sales"

    @pytest.mark.asyncio
    async def test_read_single_table_empty(self) -> None:
        assert await WhatItemProjector.read_single_table(async_items([])) is None

    @pytest.mark.asyncio
    async def test_read_multiple_tables_violates_consistency(self) -> None:
        listing = [
            RemoteWhatItem(data_object=RemoteDataObject("do-1", "db.sales", DS)),
            RemoteWhatItem(data_object=RemoteDataObject("do-2", "db.orders", DS)),
        ]

        with pytest.raises(ConsistencyViolation):
            await WhatItemProjector.read_single_table(async_items(listing))

    @pytest.mark.asyncio
    async def test_read_abac_rule_without_do_types(self) -> None:
        remote_rule = RemoteWhatAbacRule(
            rule={"tag": "pii"}, do_types=("column",), global_permissions=("read",)
        )
        scope = [RemoteDataObject("do-1", "db.sales", DS)]

        rule = await WhatItemProjector.read_abac_rule(
            remote_rule, async_items(scope), include_do_types=False
        )

        assert rule.do_types is None
        assert rule.scope == frozenset({"db.sales"})
        assert rule.global_permissions == frozenset({"READ"})
