"""Pydantic models for declared state with validation.

These models provide:
1. Type-safe YAML parsing
2. Validation at the boundary (fail fast, fail loudly)
3. Immutable snapshots the orchestrator can compare and copy

NULLABLE SETS:
``None`` and an empty set mean different things. ``who: None`` says the
membership is managed elsewhere and must not be reconciled; ``who: []``
says nobody should have access. Every set-valued field keeps that
distinction, so none of them default to an empty collection.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .remote import AccessProviderState, BeneficiaryType, UserType

# Global permissions accepted on grants
GLOBAL_PERMISSION_READ = "READ"
GLOBAL_PERMISSION_WRITE = "WRITE"
GLOBAL_PERMISSION_ADMIN = "ADMIN"
ALL_GLOBAL_PERMISSIONS = frozenset(
    {GLOBAL_PERMISSION_READ, GLOBAL_PERMISSION_WRITE, GLOBAL_PERMISSION_ADMIN}
)

VALID_EMAIL_PATTERN = r"^.+@.+\..+$"

SYNC_METHODS = frozenset({"OnPrem", "CloudNoSync", "CloudManualTrigger"})

_MODEL_CONFIG = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


# =============================================================================
# Who / What items
# =============================================================================


class WhoItem(BaseModel):
    """A declared membership entry.

    Exactly one of user, group or access_control is set. Setting
    promise_duration turns the entry into a promise.
    """

    model_config = _MODEL_CONFIG

    user: str | None = Field(None, pattern=VALID_EMAIL_PATTERN)
    group: str | None = Field(None, min_length=3)
    access_control: str | None = Field(None, min_length=3, alias="accessControl")
    promise_duration: int | None = Field(None, ge=1, alias="promiseDuration")

    @model_validator(mode="after")
    def exactly_one_beneficiary(self) -> WhoItem:
        found = sum(v is not None for v in (self.user, self.group, self.access_control))
        if found != 1:
            raise ValueError(
                "Exactly one of user, group or access_control must be set, "
                f"got: {found}"
            )
        return self

    @property
    def is_promise(self) -> bool:
        return self.promise_duration is not None

    @property
    def beneficiary(self) -> tuple[BeneficiaryType, str]:
        """(type, id) of the single target. Users are addressed by email."""
        if self.user is not None:
            return BeneficiaryType.USER, self.user
        if self.group is not None:
            return BeneficiaryType.GROUP, self.group
        assert self.access_control is not None
        return BeneficiaryType.ACCESS_CONTROL, self.access_control


class WhatDataObject(BaseModel):
    """A data object a grant gives access to."""

    model_config = _MODEL_CONFIG

    fullname: Annotated[str, Field(min_length=1)]
    permissions: frozenset[str] = frozenset()
    global_permissions: frozenset[str] = Field(
        default=frozenset({GLOBAL_PERMISSION_READ}), alias="globalPermissions"
    )

    @field_validator("global_permissions")
    @classmethod
    def validate_global_permissions(cls, v: frozenset[str]) -> frozenset[str]:
        normalized = frozenset(p.upper() for p in v)
        invalid = normalized - ALL_GLOBAL_PERMISSIONS
        if invalid:
            raise ValueError(
                f"global permissions must be within {sorted(ALL_GLOBAL_PERMISSIONS)}: "
                f"{sorted(invalid)}"
            )
        return normalized


class WhatAbacRule(BaseModel):
    """ABAC what-rule. The rule body is an opaque JSON document."""

    model_config = _MODEL_CONFIG

    rule: dict[str, Any]
    scope: frozenset[str] | None = None
    do_types: frozenset[str] | None = Field(None, alias="doTypes")
    permissions: frozenset[str] = frozenset()
    global_permissions: frozenset[str] = Field(
        default=frozenset({GLOBAL_PERMISSION_READ}), alias="globalPermissions"
    )

    def __hash__(self) -> int:
        return hash((self.scope, self.do_types, self.permissions, self.global_permissions))


# =============================================================================
# Access providers
# =============================================================================


class AccessProviderSpec(BaseModel):
    """Fields shared by every access provider kind."""

    model_config = _MODEL_CONFIG

    id: str | None = None
    name: Annotated[str, Field(min_length=3)]
    description: str | None = None
    state: str = AccessProviderState.ACTIVE.value
    who: frozenset[WhoItem] | None = None
    who_abac_rule: dict[str, Any] | None = Field(None, alias="whoAbacRule")
    owners: frozenset[Annotated[str, Field(min_length=3)]] | None = None

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id, self.name))

    def promises(self) -> list[WhoItem]:
        """Declared who-items that are promises."""
        return [w for w in self.who or () if w.is_promise]


class GrantSpec(AccessProviderSpec):
    """A grant: who may use which data objects, with which permissions."""

    type: str | None = None
    data_source: Annotated[str, Field(min_length=3, alias="dataSource")]
    what_data_objects: frozenset[WhatDataObject] | None = Field(None, alias="whatDataObjects")
    what_abac_rule: WhatAbacRule | None = Field(None, alias="whatAbacRule")
    what_locked: bool | None = Field(None, alias="whatLocked")


class MaskSpec(AccessProviderSpec):
    """A column mask."""

    type: str | None = None
    data_source: Annotated[str, Field(min_length=3, alias="dataSource")]
    columns: frozenset[Annotated[str, Field(min_length=1)]] | None = None
    what_abac_rule: WhatAbacRule | None = Field(None, alias="whatAbacRule")
    what_locked: bool | None = Field(None, alias="whatLocked")


class FilterSpec(AccessProviderSpec):
    """A row filter on exactly one table."""

    data_source: Annotated[str, Field(min_length=3, alias="dataSource")]
    table: str | None = Field(None, min_length=1)
    filter_policy: str | None = Field(None, alias="filterPolicy")
    what_locked: bool | None = Field(None, alias="whatLocked")


class PurposeSpec(AccessProviderSpec):
    """A purpose: a named who-set other access providers can refer to."""

    type: str | None = None


# =============================================================================
# Data sources, identity stores, role assignments
# =============================================================================


class DataSourceSpec(BaseModel):
    """A data source and the identity stores linked to it."""

    model_config = _MODEL_CONFIG

    id: str | None = None
    name: Annotated[str, Field(min_length=3)]
    description: str | None = None
    sync_method: str = Field("OnPrem", alias="syncMethod")
    parent: str | None = None
    native_identity_store: str | None = Field(None, alias="nativeIdentityStore")
    identity_stores: frozenset[str] | None = Field(None, alias="identityStores")
    owners: frozenset[str] | None = None

    @field_validator("sync_method")
    @classmethod
    def validate_sync_method(cls, v: str) -> str:
        if v not in SYNC_METHODS:
            raise ValueError(f"syncMethod must be one of {sorted(SYNC_METHODS)}")
        return v


class IdentityStoreSpec(BaseModel):
    """An identity store."""

    model_config = _MODEL_CONFIG

    id: str | None = None
    name: Annotated[str, Field(min_length=3)]
    description: str | None = None
    master: bool = False
    owners: frozenset[str] | None = None


class GlobalRoleAssignmentSpec(BaseModel):
    """A global role assigned to a user."""

    model_config = _MODEL_CONFIG

    id: str | None = None
    role: Annotated[str, Field(min_length=1)]
    user: Annotated[str, Field(min_length=1)]

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if "#" in v:
            raise ValueError("role must not contain '#'")
        return v


# =============================================================================
# Grant categories and users
# =============================================================================


class DataSourceDefaultType(BaseModel):
    """Default type of a grant category on one data source."""

    model_config = _MODEL_CONFIG

    data_source: Annotated[str, Field(min_length=1, alias="dataSource")]
    type: Annotated[str, Field(min_length=1)]


class AllowedWhoItems(BaseModel):
    """Beneficiary kinds grants of a category may name."""

    model_config = _MODEL_CONFIG

    user: bool = True
    group: bool = True
    inheritance: bool = True
    allow_self: bool = Field(True, alias="self")
    categories: frozenset[str] = frozenset()


class AllowedWhatItems(BaseModel):
    """Target kinds grants of a category may name."""

    model_config = _MODEL_CONFIG

    data_object: bool = Field(True, alias="dataObject")


class GrantCategorySpec(BaseModel):
    """A grant category. The ``type`` of a grant names one of these.

    ``is_system`` and ``is_default`` are reported by the service and are
    only ever filled in on read.
    """

    model_config = _MODEL_CONFIG

    id: str | None = None
    name: Annotated[str, Field(min_length=3)]
    description: str | None = None
    icon: Annotated[str, Field(min_length=1)]
    can_create: bool = Field(True, alias="canCreate")
    allow_duplicate_names: bool = Field(True, alias="allowDuplicateNames")
    multi_data_source: bool = Field(True, alias="multiDataSource")
    default_type_per_data_source: frozenset[DataSourceDefaultType] | None = Field(
        None, alias="defaultTypePerDataSource"
    )
    allowed_who_items: AllowedWhoItems | None = Field(None, alias="allowedWhoItems")
    allowed_what_items: AllowedWhatItems | None = Field(None, alias="allowedWhatItems")
    is_system: bool | None = Field(None, alias="isSystem")
    is_default: bool | None = Field(None, alias="isDefault")

    @field_validator("is_system", "is_default")
    @classmethod
    def reported_only(cls, v: bool | None, info: ValidationInfo) -> bool | None:
        if v is not None:
            raise ValueError(f"{info.field_name} is set by the service and cannot be declared")
        return v


class UserSpec(BaseModel):
    """A user account. Platform users may sign in to the governance service."""

    model_config = _MODEL_CONFIG

    id: str | None = None
    name: Annotated[str, Field(min_length=3)]
    email: str = Field(pattern=VALID_EMAIL_PATTERN)
    type: UserType = UserType.HUMAN
    platform_user: bool = Field(True, alias="platformUser")


# =============================================================================
# Kind registry
# =============================================================================

SPEC_CLASSES: dict[str, type[BaseModel]] = {
    "Grant": GrantSpec,
    "Mask": MaskSpec,
    "Filter": FilterSpec,
    "Purpose": PurposeSpec,
    "DataSource": DataSourceSpec,
    "IdentityStore": IdentityStoreSpec,
    "GlobalRoleAssignment": GlobalRoleAssignmentSpec,
    "GrantCategory": GrantCategorySpec,
    "User": UserSpec,
}


def get_spec_class(kind: str) -> type[BaseModel]:
    """Get the model class for a declaration kind.

    Raises:
        ValueError: If the kind is unknown.
    """
    spec_class = SPEC_CLASSES.get(kind)
    if spec_class is None:
        raise ValueError(f"Unknown kind '{kind}'. Valid kinds: {sorted(SPEC_CLASSES)}")
    return spec_class
