"""Tests for plan comparison."""

from access_controller.models import GrantSpec, WhatAbacRule, WhoItem
from access_controller.resources import ResourceResult, matches_declared


class TestMatchesDeclared:
    """Tests for matches_declared."""

    def test_unset_fields_ignored(self) -> None:
        """Test that None in the declaration never forces an update."""
        declared = GrantSpec(name="readers", data_source="ds-1")
        observed = GrantSpec(
            name="readers",
            data_source="ds-1",
            who=frozenset({WhoItem(user="alice@acme.io")}),
            owners=frozenset({"u-1"}),
        )

        assert matches_declared(declared, observed)

    def test_empty_set_is_managed(self) -> None:
        declared = GrantSpec(name="readers", data_source="ds-1", who=frozenset())
        observed = GrantSpec(
            name="readers", data_source="ds-1", who=frozenset({WhoItem(user="alice@acme.io")})
        )

        assert not matches_declared(declared, observed)

    def test_nested_models_compared_by_managed_fields(self) -> None:
        declared = GrantSpec(
            name="readers",
            data_source="ds-1",
            what_abac_rule=WhatAbacRule(rule={"tag": "pii"}),
        )
        observed = GrantSpec(
            name="readers",
            data_source="ds-1",
            what_abac_rule=WhatAbacRule(
                rule={"tag": "pii"}, scope=frozenset({"db.sales"}), do_types=frozenset({"table"})
            ),
        )

        assert matches_declared(declared, observed)

    def test_changed_value_detected(self) -> None:
        declared = GrantSpec(name="readers", data_source="ds-1", description="new")
        observed = GrantSpec(name="readers", data_source="ds-1", description="old")

        assert not matches_declared(declared, observed)


def test_result_defaults() -> None:
    result: ResourceResult[GrantSpec] = ResourceResult(state=None)

    assert not result.diagnostics
    assert result.removed is False
    assert result.action is None
