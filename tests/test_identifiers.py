"""Tests for composite role assignment identifiers."""

import pytest

from access_controller import identifiers
from access_controller.errors import DeclarationValidationError


class TestEncode:
    """Tests for identifiers.encode."""

    def test_encode(self) -> None:
        assert identifiers.encode("Admin", "u-1") == "Admin#u-1"

    def test_role_with_separator_rejected(self) -> None:
        """Test that a role containing '#' cannot be encoded."""
        with pytest.raises(DeclarationValidationError) as exc_info:
            identifiers.encode("Ad#min", "u-1")

        assert "must not contain" in exc_info.value.errors[0]

    def test_user_may_contain_separator(self) -> None:
        """Test that only the role is restricted."""
        assert identifiers.encode("Admin", "u#1") == "Admin#u#1"


class TestDecode:
    """Tests for identifiers.decode."""

    def test_decode(self) -> None:
        assert identifiers.decode("Admin#u-1") == ("Admin", "u-1")

    def test_decode_splits_on_first_separator(self) -> None:
        """Test that everything after the first '#' is the user."""
        assert identifiers.decode("Admin#u#1") == ("Admin", "u#1")

    def test_decode_without_separator(self) -> None:
        """Test that an id without '#' is rejected."""
        with pytest.raises(DeclarationValidationError) as exc_info:
            identifiers.decode("Admin")

        assert "invalid role assignment id" in exc_info.value.errors[0]

    def test_decode_reverses_encode(self) -> None:
        for role, user in [("Admin", "u-1"), ("Viewer", ""), ("Creator", "a#b#c")]:
            assert identifiers.decode(identifiers.encode(role, user)) == (role, user)


def test_role_id() -> None:
    """Test that remote role ids carry the Role suffix."""
    assert identifiers.role_id("Admin") == "AdminRole"
