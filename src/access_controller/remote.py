"""Remote records and the collaborator interface of the governance service.

The engine never talks to the network itself. Everything it needs from
the governance service is expressed by the GovernanceClient protocol
below; a transport implements it, tests use an in-memory fake.

CONVENTIONS:
- Single-entity lookups raise NotFoundError when the entity is absent
- Failed calls raise RemoteError (or a subclass)
- Listings are async iterators; they may page internally and may raise
  mid-stream. Consume them through streams.CancellableStream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

# =============================================================================
# Enumerations
# =============================================================================


class AccessProviderState(str, Enum):
    """Lifecycle state as reported by the governance service."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"
    DELETED = "Deleted"


class AccessProviderAction(str, Enum):
    """Kind of access provider."""

    GRANT = "Grant"
    MASK = "Mask"
    FILTERED = "Filtered"
    PURPOSE = "Purpose"


class WhoItemType(str, Enum):
    """Whether a who-item is a realized grant or a time-bounded promise."""

    GRANT = "WhoGrant"
    PROMISE = "WhoPromise"


class BeneficiaryType(str, Enum):
    """What a who-item points at."""

    USER = "user"
    GROUP = "group"
    ACCESS_CONTROL = "access_control"


class WhoAndWhatType(str, Enum):
    """Static lists vs ABAC rules for who and what."""

    STATIC = "Static"
    DYNAMIC = "Dynamic"


class UserType(str, Enum):
    """Whether a user account belongs to a person or a service."""

    HUMAN = "Human"
    MACHINE = "Machine"


class LockKey(str, Enum):
    """Locks the declaring tool places on an access provider."""

    WHAT_LOCK = "WhatLock"


# Lock reason shown in the governance UI
LOCK_REASON = "This access provider is managed declaratively"


# =============================================================================
# Records returned by the service
# =============================================================================


@dataclass(frozen=True)
class Beneficiary:
    """The subject of a who-item or role assignment.

    For users, ``id`` is the internal user id and ``email`` the address the
    declarations use. Groups and access providers are addressed by id.
    """

    type: BeneficiaryType
    id: str
    email: str | None = None


@dataclass(frozen=True)
class RemoteWhoItem:
    """One entry of an access provider's who listing."""

    beneficiary: Beneficiary
    type: WhoItemType = WhoItemType.GRANT
    promise_duration: int | None = None
    expires_after: int | None = None
    expires_at: str | None = None


@dataclass(frozen=True)
class RemoteDataObject:
    """A data object (table, column, ...) known to the service."""

    id: str
    full_name: str
    data_source_id: str = ""


@dataclass(frozen=True)
class RemoteWhatItem:
    """One entry of an access provider's what listing."""

    data_object: RemoteDataObject | None
    permissions: tuple[str, ...] = ()
    global_permissions: tuple[str, ...] = ()


@dataclass(frozen=True)
class SyncData:
    """Binding of an access provider to a data source."""

    data_source_id: str
    type: str | None = None


@dataclass(frozen=True)
class RemoteWhatAbacRule:
    """ABAC what-rule as stored remotely. The rule body is opaque JSON."""

    rule: dict[str, Any]
    do_types: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ()
    global_permissions: tuple[str, ...] = ()


@dataclass(frozen=True)
class RemoteAccessProvider:
    """An access provider as reported by the service."""

    id: str
    name: str
    action: AccessProviderAction
    description: str = ""
    state: AccessProviderState = AccessProviderState.ACTIVE
    type: str | None = None
    sync_data: tuple[SyncData, ...] = ()
    locks: tuple[LockKey, ...] = ()
    who_type: WhoAndWhatType = WhoAndWhatType.STATIC
    who_abac_rule: dict[str, Any] | None = None
    what_type: WhoAndWhatType = WhoAndWhatType.STATIC
    what_abac_rule: RemoteWhatAbacRule | None = None
    policy_rule: str | None = None


@dataclass(frozen=True)
class IdentityStoreLink:
    """An identity store linked to a data source."""

    id: str
    native: bool = False
    master: bool = False


@dataclass(frozen=True)
class RoleAssignment:
    """A role granted to a user or group, optionally on a resource."""

    role_id: str
    role_name: str
    to: Beneficiary
    resource_id: str | None = None


@dataclass(frozen=True)
class RoleAssignmentFilter:
    """Filter for role assignment listings. Unset fields do not filter."""

    role: str | None = None
    user: str | None = None
    resource: str | None = None


@dataclass(frozen=True)
class RemoteDataSource:
    """A data source as reported by the service."""

    id: str
    name: str
    description: str = ""
    sync_method: str = "OnPrem"
    parent_id: str | None = None


@dataclass(frozen=True)
class RemoteIdentityStore:
    """An identity store as reported by the service."""

    id: str
    name: str
    description: str = ""
    master: bool = False


@dataclass(frozen=True)
class DataSourceTypeDefault:
    """Type a grant category uses by default on one data source."""

    data_source: str
    type: str


@dataclass(frozen=True)
class CategoryWhoRules:
    """Beneficiaries grants of a category may name."""

    user: bool = True
    group: bool = True
    inheritance: bool = True
    allow_self: bool = True
    categories: tuple[str, ...] = ()


@dataclass(frozen=True)
class CategoryWhatRules:
    """Targets grants of a category may name."""

    data_object: bool = True


@dataclass(frozen=True)
class RemoteGrantCategory:
    """A grant category as reported by the service."""

    id: str
    name: str
    icon: str
    description: str = ""
    is_system: bool = False
    is_default: bool = False
    can_create: bool = True
    allow_duplicate_names: bool = True
    multi_data_source: bool = True
    default_type_per_data_source: tuple[DataSourceTypeDefault, ...] = ()
    allowed_who_items: CategoryWhoRules = field(default_factory=CategoryWhoRules)
    allowed_what_items: CategoryWhatRules = field(default_factory=CategoryWhatRules)


@dataclass(frozen=True)
class RemoteUser:
    """A user account as reported by the service."""

    id: str
    name: str
    email: str | None = None
    type: UserType = UserType.HUMAN
    is_platform_user: bool = False


# =============================================================================
# Mutation inputs
# =============================================================================


@dataclass
class WhoItemInput:
    """A who-item in a create/update payload. Exactly one target is set."""

    type: WhoItemType = WhoItemType.GRANT
    user: str | None = None
    group: str | None = None
    access_provider: str | None = None
    promise_duration: int | None = None
    expires_after: int | None = None
    expires_at: str | None = None


@dataclass
class WhatDataObjectInput:
    """A resolved what-item in a create/update payload."""

    data_object_id: str
    permissions: list[str] = field(default_factory=list)
    global_permissions: list[str] = field(default_factory=list)


@dataclass
class WhatAbacRuleInput:
    """An ABAC what-rule with its scope resolved to data object ids."""

    rule: dict[str, Any]
    do_types: list[str] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)
    global_permissions: list[str] = field(default_factory=list)
    scope: list[str] = field(default_factory=list)


@dataclass
class AccessProviderInput:
    """Create/update payload for an access provider.

    ``who_items`` and ``what_data_objects`` left as None tell the service
    not to touch that side at all. An empty list means "nobody"/"nothing".
    """

    name: str
    action: AccessProviderAction
    description: str | None = None
    type: str | None = None
    data_source: str | None = None
    who_type: WhoAndWhatType = WhoAndWhatType.STATIC
    who_items: list[WhoItemInput] | None = None
    who_abac_rule: dict[str, Any] | None = None
    what_type: WhoAndWhatType = WhoAndWhatType.STATIC
    what_data_objects: list[WhatDataObjectInput] | None = None
    what_abac_rule: WhatAbacRuleInput | None = None
    policy_rule: str | None = None
    locks: list[LockKey] = field(default_factory=list)


@dataclass
class DataSourceInput:
    """Create/update payload for a data source."""

    name: str
    description: str | None = None
    sync_method: str | None = None
    parent: str | None = None


@dataclass
class IdentityStoreInput:
    """Create/update payload for an identity store."""

    name: str
    description: str | None = None


@dataclass
class GrantCategoryInput:
    """Create/update payload for a grant category.

    Rule fields left as None are not sent; the service keeps its current
    (or default) value.
    """

    name: str
    icon: str
    description: str | None = None
    can_create: bool = True
    allow_duplicate_names: bool = True
    multi_data_source: bool = True
    default_type_per_data_source: list[DataSourceTypeDefault] | None = None
    allowed_who_items: CategoryWhoRules | None = None
    allowed_what_items: CategoryWhatRules | None = None


@dataclass
class UserInput:
    """Create/update payload for a user. Credentials are not part of it."""

    name: str
    email: str
    type: UserType = UserType.HUMAN


# =============================================================================
# Collaborator protocol
# =============================================================================


@runtime_checkable
class GovernanceClient(Protocol):
    """Operations the engine consumes from the governance service."""

    # Access providers
    async def create_access_provider(self, ap: AccessProviderInput) -> RemoteAccessProvider: ...

    async def update_access_provider(
        self, ap_id: str, ap: AccessProviderInput
    ) -> RemoteAccessProvider: ...

    async def delete_access_provider(self, ap_id: str) -> None: ...

    async def get_access_provider(self, ap_id: str) -> RemoteAccessProvider: ...

    async def set_access_provider_state(
        self, ap_id: str, state: AccessProviderState
    ) -> RemoteAccessProvider: ...

    def list_who_items(self, ap_id: str) -> AsyncIterator[RemoteWhoItem]: ...

    def list_what_items(self, ap_id: str) -> AsyncIterator[RemoteWhatItem]: ...

    def list_abac_what_scope(self, ap_id: str) -> AsyncIterator[RemoteDataObject]: ...

    # Lookups
    async def resolve_object_id(self, full_name: str, data_source_id: str) -> str: ...

    async def get_user_id_by_email(self, email: str) -> str: ...

    async def get_current_user_id(self) -> str: ...

    async def get_default_mask_type(self, data_source_id: str) -> str | None: ...

    # Data sources and identity stores
    async def create_data_source(self, ds: DataSourceInput) -> RemoteDataSource: ...

    async def update_data_source(self, ds_id: str, ds: DataSourceInput) -> RemoteDataSource: ...

    async def get_data_source(self, ds_id: str) -> RemoteDataSource: ...

    async def delete_data_source(self, ds_id: str) -> None: ...

    async def list_identity_store_links(self, ds_id: str) -> list[IdentityStoreLink]: ...

    async def add_identity_store_link(self, ds_id: str, is_id: str) -> None: ...

    async def remove_identity_store_link(self, ds_id: str, is_id: str) -> None: ...

    async def create_identity_store(self, store: IdentityStoreInput) -> RemoteIdentityStore: ...

    async def update_identity_store(
        self, is_id: str, store: IdentityStoreInput
    ) -> RemoteIdentityStore: ...

    async def get_identity_store(self, is_id: str) -> RemoteIdentityStore: ...

    async def delete_identity_store(self, is_id: str) -> None: ...

    async def set_identity_store_master(self, is_id: str, master: bool) -> RemoteIdentityStore: ...

    # Grant categories
    async def create_grant_category(
        self, category: GrantCategoryInput
    ) -> RemoteGrantCategory: ...

    async def update_grant_category(
        self, category_id: str, category: GrantCategoryInput
    ) -> RemoteGrantCategory: ...

    async def get_grant_category(self, category_id: str) -> RemoteGrantCategory: ...

    async def delete_grant_category(self, category_id: str) -> None: ...

    # Users
    async def get_user(self, user_id: str) -> RemoteUser: ...

    async def get_user_by_email(self, email: str) -> RemoteUser: ...

    async def create_user(self, user: UserInput) -> RemoteUser: ...

    async def update_user(self, user_id: str, user: UserInput) -> RemoteUser: ...

    async def delete_user(self, user_id: str) -> None: ...

    async def invite_platform_user(self, user_id: str) -> RemoteUser: ...

    async def remove_platform_user(self, user_id: str) -> RemoteUser: ...

    # Roles
    def list_role_assignments(
        self, role_filter: RoleAssignmentFilter
    ) -> AsyncIterator[RoleAssignment]: ...

    async def assign_global_role(self, role_id: str, user_id: str) -> None: ...

    async def unassign_global_role(self, role_id: str, user_id: str) -> None: ...

    async def update_role_assignees(
        self, resource_id: str, role_id: str, assignee_ids: list[str]
    ) -> None: ...
