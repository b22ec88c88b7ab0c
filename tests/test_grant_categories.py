"""Tests for grant categories."""

import logging

import pytest
from governance_mock import MockGovernanceClient

from access_controller.errors import DeclarationValidationError, RemoteError
from access_controller.grant_categories import GrantCategoryResource, to_input
from access_controller.models import (
    AllowedWhatItems,
    AllowedWhoItems,
    DataSourceDefaultType,
    GrantCategorySpec,
)
from access_controller.remote import CategoryWhoRules, DataSourceTypeDefault, RemoteGrantCategory
from access_controller.resources import PlanAction


@pytest.fixture
def client() -> MockGovernanceClient:
    return MockGovernanceClient()


@pytest.fixture
def categories(client: MockGovernanceClient) -> GrantCategoryResource:
    return GrantCategoryResource(client)


def category(**kwargs: object) -> GrantCategorySpec:
    fields: dict[str, object] = {"name": "Data Product", "icon": "box"}
    fields.update(kwargs)
    return GrantCategorySpec(**fields)


class TestToInput:
    """Tests for the grant category payload."""

    def test_undeclared_rules_not_sent(self) -> None:
        category_input = to_input(category())

        assert category_input.default_type_per_data_source is None
        assert category_input.allowed_who_items is None
        assert category_input.allowed_what_items is None

    def test_declared_rules_sent(self) -> None:
        spec = category(
            default_type_per_data_source=frozenset(
                {
                    DataSourceDefaultType(data_source="ds-b", type="role"),
                    DataSourceDefaultType(data_source="ds-a", type="table"),
                }
            ),
            allowed_who_items=AllowedWhoItems(group=False, categories=frozenset({"gc-2", "gc-1"})),
        )

        category_input = to_input(spec)

        assert category_input.default_type_per_data_source == [
            DataSourceTypeDefault("ds-a", "table"),
            DataSourceTypeDefault("ds-b", "role"),
        ]
        assert category_input.allowed_who_items == CategoryWhoRules(
            group=False, categories=("gc-1", "gc-2")
        )


class TestGrantCategoryResource:
    """Tests for GrantCategoryResource."""

    @pytest.mark.asyncio
    async def test_create_reads_back_service_defaults(
        self, client: MockGovernanceClient, categories: GrantCategoryResource
    ) -> None:
        """Test that undeclared rule sets come back from the service."""
        result = await categories.apply(category(description="Products"))

        assert result.action == PlanAction.CREATE
        state = result.state
        assert state is not None
        assert state.id in client.grant_categories
        assert state.description == "Products"
        assert state.is_system is False
        assert state.default_type_per_data_source == frozenset()
        assert state.allowed_who_items == AllowedWhoItems()
        assert state.allowed_what_items == AllowedWhatItems()

    @pytest.mark.asyncio
    async def test_create_with_info_logging(
        self, categories: GrantCategoryResource, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO)

        await categories.apply(category())

        created = [r for r in caplog.records if r.getMessage() == "Created grant category"]
        assert created[0].category_name == "Data Product"

    @pytest.mark.asyncio
    async def test_second_apply_is_noop(
        self, client: MockGovernanceClient, categories: GrantCategoryResource
    ) -> None:
        spec = category(
            can_create=False,
            default_type_per_data_source=frozenset(
                {DataSourceDefaultType(data_source="ds-a", type="table")}
            ),
            allowed_what_items=AllowedWhatItems(data_object=False),
        )
        created = await categories.apply(spec)
        assert created.state is not None
        client.reset_calls()

        result = await categories.apply(spec.model_copy(update={"id": created.state.id}))

        assert result.action == PlanAction.NOOP
        assert client.mutations() == []

    @pytest.mark.asyncio
    async def test_changed_rule_triggers_update(
        self, client: MockGovernanceClient, categories: GrantCategoryResource
    ) -> None:
        created = await categories.apply(category())
        assert created.state is not None
        category_id = created.state.id

        result = await categories.apply(
            category(id=category_id, allowed_who_items=AllowedWhoItems(inheritance=False))
        )

        assert result.action == PlanAction.UPDATE
        assert client.grant_categories[category_id].allowed_who_items.inheritance is False

    @pytest.mark.asyncio
    async def test_update_keeps_undeclared_rules(
        self, client: MockGovernanceClient, categories: GrantCategoryResource
    ) -> None:
        """Test that a rule set managed elsewhere survives an update."""
        client.grant_categories["gc-1"] = RemoteGrantCategory(
            id="gc-1",
            name="Data Product",
            icon="box",
            allowed_who_items=CategoryWhoRules(user=False),
        )

        result = await categories.apply(category(id="gc-1", icon="cube"))

        assert result.action == PlanAction.UPDATE
        assert client.grant_categories["gc-1"].icon == "cube"
        assert client.grant_categories["gc-1"].allowed_who_items.user is False

    @pytest.mark.asyncio
    async def test_primary_failure_raises(
        self, client: MockGovernanceClient, categories: GrantCategoryResource
    ) -> None:
        client.fail_on("create_grant_category", RemoteError("quota exceeded"))

        with pytest.raises(RemoteError):
            await categories.apply(category())

    @pytest.mark.asyncio
    async def test_read_missing_marks_removed(self, categories: GrantCategoryResource) -> None:
        result = await categories.read(category(id="gc-missing"))

        assert result.removed
        assert result.state is None

    @pytest.mark.asyncio
    async def test_delete_tolerates_missing(
        self, client: MockGovernanceClient, categories: GrantCategoryResource
    ) -> None:
        created = await categories.apply(category())
        assert created.state is not None

        await categories.delete(created.state)
        result = await categories.delete(created.state)

        assert result.removed
        assert client.grant_categories == {}

    @pytest.mark.asyncio
    async def test_update_without_id(self, categories: GrantCategoryResource) -> None:
        with pytest.raises(DeclarationValidationError):
            await categories.update(category())
