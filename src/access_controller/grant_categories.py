"""Grant categories: the types grants are created under.

Besides its own fields a category carries three rule sets (default type per
data source, allowed who-items, allowed what-items). A rule set left
undeclared is not sent on write and is read back from the service.
"""

from __future__ import annotations

import logging

from .errors import DeclarationValidationError, NotFoundError
from .models import AllowedWhatItems, AllowedWhoItems, DataSourceDefaultType, GrantCategorySpec
from .remote import (
    CategoryWhatRules,
    CategoryWhoRules,
    DataSourceTypeDefault,
    GovernanceClient,
    GrantCategoryInput,
    RemoteGrantCategory,
)
from .resources import PlanAction, ResourceResult, matches_declared

logger = logging.getLogger(__name__)


def to_input(spec: GrantCategorySpec) -> GrantCategoryInput:
    category_input = GrantCategoryInput(
        name=spec.name,
        icon=spec.icon,
        description=spec.description,
        can_create=spec.can_create,
        allow_duplicate_names=spec.allow_duplicate_names,
        multi_data_source=spec.multi_data_source,
    )

    if spec.default_type_per_data_source is not None:
        category_input.default_type_per_data_source = [
            DataSourceTypeDefault(d.data_source, d.type)
            for d in sorted(
                spec.default_type_per_data_source, key=lambda d: (d.data_source, d.type)
            )
        ]

    who = spec.allowed_who_items
    if who is not None:
        category_input.allowed_who_items = CategoryWhoRules(
            user=who.user,
            group=who.group,
            inheritance=who.inheritance,
            allow_self=who.allow_self,
            categories=tuple(sorted(who.categories)),
        )

    if spec.allowed_what_items is not None:
        category_input.allowed_what_items = CategoryWhatRules(
            data_object=spec.allowed_what_items.data_object
        )
    return category_input


def from_remote(spec: GrantCategorySpec, category: RemoteGrantCategory) -> GrantCategorySpec:
    """Snapshot of the remote category, on top of the declaration."""
    who = category.allowed_who_items
    return spec.model_copy(
        update={
            "id": category.id,
            "name": category.name,
            "description": category.description,
            "icon": category.icon,
            "can_create": category.can_create,
            "allow_duplicate_names": category.allow_duplicate_names,
            "multi_data_source": category.multi_data_source,
            "is_system": category.is_system,
            "is_default": category.is_default,
            "default_type_per_data_source": frozenset(
                DataSourceDefaultType(data_source=d.data_source, type=d.type)
                for d in category.default_type_per_data_source
            ),
            "allowed_who_items": AllowedWhoItems(
                user=who.user,
                group=who.group,
                inheritance=who.inheritance,
                allow_self=who.allow_self,
                categories=frozenset(who.categories),
            ),
            "allowed_what_items": AllowedWhatItems(
                data_object=category.allowed_what_items.data_object
            ),
        }
    )


class GrantCategoryResource:
    """Create/read/update/delete/apply for grant categories."""

    def __init__(self, client: GovernanceClient) -> None:
        self.client = client

    async def create(self, spec: GrantCategorySpec) -> ResourceResult[GrantCategorySpec]:
        category = await self.client.create_grant_category(to_input(spec))
        logger.info(
            "Created grant category",
            extra={"category_id": category.id, "category_name": category.name},
        )
        return ResourceResult(state=from_remote(spec, category))

    async def read(self, spec: GrantCategorySpec) -> ResourceResult[GrantCategorySpec]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to read a grant category"])

        try:
            category = await self.client.get_grant_category(spec.id)
        except NotFoundError:
            logger.info("Grant category not found", extra={"category_id": spec.id})
            return ResourceResult(state=None, removed=True)
        return ResourceResult(state=from_remote(spec, category))

    async def update(self, spec: GrantCategorySpec) -> ResourceResult[GrantCategorySpec]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to update a grant category"])

        category = await self.client.update_grant_category(spec.id, to_input(spec))
        logger.info("Updated grant category", extra={"category_id": category.id})
        return ResourceResult(state=from_remote(spec, category))

    async def delete(self, spec: GrantCategorySpec) -> ResourceResult[GrantCategorySpec]:
        if spec.id is None:
            raise DeclarationValidationError(["id is required to delete a grant category"])

        try:
            await self.client.delete_grant_category(spec.id)
        except NotFoundError:
            logger.info("Grant category already deleted", extra={"category_id": spec.id})
        else:
            logger.info("Deleted grant category", extra={"category_id": spec.id})
        return ResourceResult(state=None, removed=True)

    async def apply(self, spec: GrantCategorySpec) -> ResourceResult[GrantCategorySpec]:
        if spec.id is not None:
            observed = await self.read(spec)
            if observed.state is not None:
                if matches_declared(spec, observed.state):
                    observed.action = PlanAction.NOOP
                    return observed
                result = await self.update(spec)
                result.action = PlanAction.UPDATE
                return result

        result = await self.create(spec.model_copy(update={"id": None}))
        result.action = PlanAction.CREATE
        return result
