"""Composite identifiers for associations without a remote id.

A global role assignment is an edge (role -> user) and the governance
service does not give it an id of its own. Locally it is addressed as
``<role>#<user>``.
"""

from __future__ import annotations

from .errors import DeclarationValidationError

SEPARATOR = "#"

# Remote role ids are the role name with this suffix (Admin -> AdminRole)
ROLE_ID_SUFFIX = "Role"


def encode(role: str, user: str) -> str:
    """Build the composite id for a role assignment.

    Args:
        role: Role name. Must not contain the separator.
        user: User id.

    Returns:
        ``role + "#" + user``.

    Raises:
        DeclarationValidationError: If role contains the separator, which
            would make the id ambiguous.
    """
    if SEPARATOR in role:
        raise DeclarationValidationError(
            [f"role must not contain '{SEPARATOR}': {role}"]
        )
    return f"{role}{SEPARATOR}{user}"


def decode(identifier: str) -> tuple[str, str]:
    """Split a composite id into (role, user).

    Splits on the first separator only; everything after it is the user.

    Raises:
        DeclarationValidationError: If the id has no separator.
    """
    role, separator, user = identifier.partition(SEPARATOR)
    if not separator:
        raise DeclarationValidationError(
            [f"invalid role assignment id '{identifier}': expected <role>{SEPARATOR}<user>"]
        )
    return role, user


def role_id(role_name: str) -> str:
    """Map a role name to its remote role id."""
    return role_name + ROLE_ID_SUFFIX
