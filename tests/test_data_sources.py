"""Tests for data sources and identity-store links."""

import logging

import pytest
from governance_mock import MockGovernanceClient

from access_controller.config import Config
from access_controller.data_sources import DataSourceResource, split_links
from access_controller.errors import RemoteError
from access_controller.models import DataSourceSpec
from access_controller.remote import IdentityStoreLink, RemoteIdentityStore
from access_controller.resources import PlanAction


@pytest.fixture
def client() -> MockGovernanceClient:
    client = MockGovernanceClient()
    for store_id in ("is-okta", "is-ldap", "is-master"):
        client.identity_stores[store_id] = RemoteIdentityStore(id=store_id, name=store_id)
    return client


@pytest.fixture
def data_sources(client: MockGovernanceClient) -> DataSourceResource:
    return DataSourceResource(client, Config(domain="acme"))


def test_split_links() -> None:
    """Test that native and master stores are left out of reconciliation."""
    links = [
        IdentityStoreLink("is-native", native=True),
        IdentityStoreLink("is-master", master=True),
        IdentityStoreLink("is-okta"),
    ]

    native, linked = split_links(links)

    assert native == "is-native"
    assert linked == frozenset({"is-okta"})


class TestDataSourceResource:
    """Tests for DataSourceResource."""

    @pytest.mark.asyncio
    async def test_create_with_info_logging(
        self,
        client: MockGovernanceClient,
        data_sources: DataSourceResource,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that the creation log record carries the data source name."""
        caplog.set_level(logging.INFO)

        result = await data_sources.apply(DataSourceSpec(name="warehouse"))

        assert result.state is not None
        assert result.state.id in client.data_sources
        created = [r for r in caplog.records if r.getMessage() == "Created data source"]
        assert len(created) == 1
        assert created[0].ds_name == "warehouse"

    @pytest.mark.asyncio
    async def test_create_links_identity_stores(
        self, client: MockGovernanceClient, data_sources: DataSourceResource
    ) -> None:
        spec = DataSourceSpec(
            name="warehouse",
            description="Main warehouse",
            identity_stores=frozenset({"is-okta", "is-ldap"}),
        )

        result = await data_sources.apply(spec)

        assert result.action == PlanAction.CREATE
        assert not result.diagnostics
        state = result.state
        assert state is not None
        assert state.identity_stores == frozenset({"is-okta", "is-ldap"})
        assert state.native_identity_store == f"is-native-{state.id}"
        assert [c.args[1] for c in client.calls_to("add_identity_store_link")] == [
            "is-ldap",
            "is-okta",
        ]

    @pytest.mark.asyncio
    async def test_update_reconciles_links(
        self, client: MockGovernanceClient, data_sources: DataSourceResource
    ) -> None:
        created = await data_sources.apply(
            DataSourceSpec(name="warehouse", identity_stores=frozenset({"is-okta"}))
        )
        assert created.state is not None
        ds_id = created.state.id
        client.reset_calls()

        result = await data_sources.apply(
            DataSourceSpec(id=ds_id, name="warehouse", identity_stores=frozenset({"is-ldap"}))
        )

        assert result.action == PlanAction.UPDATE
        assert [c.args for c in client.calls_to("add_identity_store_link")] == [
            (ds_id, "is-ldap")
        ]
        assert [c.args for c in client.calls_to("remove_identity_store_link")] == [
            (ds_id, "is-okta")
        ]
        native = f"is-native-{ds_id}"
        assert all(c.args[1] != native for c in client.calls_to("remove_identity_store_link"))

    @pytest.mark.asyncio
    async def test_native_and_master_links_untouched(
        self, client: MockGovernanceClient, data_sources: DataSourceResource
    ) -> None:
        created = await data_sources.apply(DataSourceSpec(name="warehouse"))
        assert created.state is not None
        ds_id = created.state.id
        client.identity_store_links[ds_id].append(IdentityStoreLink("is-master", master=True))

        await data_sources.apply(
            DataSourceSpec(id=ds_id, name="warehouse", identity_stores=frozenset())
        )

        links = {link.id for link in client.identity_store_links[ds_id]}
        assert links == {f"is-native-{ds_id}", "is-master"}

    @pytest.mark.asyncio
    async def test_second_apply_is_noop(
        self, client: MockGovernanceClient, data_sources: DataSourceResource
    ) -> None:
        spec = DataSourceSpec(
            name="warehouse", identity_stores=frozenset({"is-okta"}), owners=frozenset({"u-1"})
        )
        created = await data_sources.apply(spec)
        assert created.state is not None
        client.reset_calls()

        result = await data_sources.apply(spec.model_copy(update={"id": created.state.id}))

        assert result.action == PlanAction.NOOP
        assert client.mutations() == []

    @pytest.mark.asyncio
    async def test_link_failure_is_diagnostic(
        self, client: MockGovernanceClient, data_sources: DataSourceResource
    ) -> None:
        client.fail_on("add_identity_store_link", RemoteError("forbidden"))

        result = await data_sources.apply(
            DataSourceSpec(name="warehouse", identity_stores=frozenset({"is-okta", "is-ldap"}))
        )

        assert result.state is not None
        assert result.state.id in client.data_sources
        errors = result.diagnostics.errors()
        assert len(errors) == 2
        assert {e.summary for e in errors} == {"Failed to add identity store to data source"}

    @pytest.mark.asyncio
    async def test_read_missing_marks_removed(self, data_sources: DataSourceResource) -> None:
        result = await data_sources.read(DataSourceSpec(id="ds-missing", name="warehouse"))

        assert result.removed

    @pytest.mark.asyncio
    async def test_delete_hands_ownership_to_api_user(
        self, client: MockGovernanceClient, data_sources: DataSourceResource
    ) -> None:
        created = await data_sources.apply(
            DataSourceSpec(name="warehouse", owners=frozenset({"u-1"}))
        )
        assert created.state is not None
        ds_id = created.state.id
        client.reset_calls()

        result = await data_sources.delete(created.state)

        assert result.removed
        assert ds_id not in client.data_sources
        assert [c.method for c in client.mutations()] == [
            "update_role_assignees",
            "delete_data_source",
        ]
        assert client.calls_to("update_role_assignees")[0].args == (
            ds_id,
            "OwnerRole",
            [client.current_user_id],
        )

    @pytest.mark.asyncio
    async def test_delete_tolerates_missing(self, data_sources: DataSourceResource) -> None:
        result = await data_sources.delete(DataSourceSpec(id="ds-missing", name="warehouse"))

        assert result.removed
