"""Tests for declared-vs-observed set difference."""

from access_controller.set_diff import SetDiff, diff


class TestDiff:
    """Tests for diff()."""

    def test_adds_and_removes(self) -> None:
        result = diff({"a", "b"}, {"b", "c"})

        assert result.to_add == frozenset({"a"})
        assert result.to_remove == frozenset({"c"})
        assert not result.is_empty

    def test_equal_sets_are_empty(self) -> None:
        """Test that agreeing sets produce no operations."""
        assert diff(["x", "y"], ["y", "x"]).is_empty

    def test_empty_declared_removes_everything(self) -> None:
        """Test that an empty declaration reconciles to empty."""
        result = diff([], ["a", "b"])

        assert result.to_add == frozenset()
        assert result.to_remove == frozenset({"a", "b"})

    def test_duplicates_collapse(self) -> None:
        result = diff(["a", "a"], [])

        assert result.to_add == frozenset({"a"})

    def test_tuple_keys(self) -> None:
        """Test that composite keys work."""
        result = diff({("user", "a@x.io")}, {("group", "g-1")})

        assert result.to_add == frozenset({("user", "a@x.io")})
        assert result.to_remove == frozenset({("group", "g-1")})


def test_default_setdiff_is_empty() -> None:
    assert SetDiff().is_empty


def test_add_and_remove_are_disjoint() -> None:
    """Test that no key is both added and removed."""
    samples = [({1, 2, 3}, {2, 3, 4}), (set(), {1}), ({1}, set()), ({1, 2}, {1, 2})]

    for declared, observed in samples:
        result = diff(declared, observed)
        assert not result.to_add & result.to_remove
