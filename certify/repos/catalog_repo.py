from __future__ import annotations

from typing import Protocol
from uuid import UUID

from certify.models.catalog import ItemDetails, LessonCatalog
from certify.models.entity import EntityKind


class CatalogRepo(Protocol):
    async def get_catalog(
        self, kind: EntityKind, item_id: UUID
    ) -> LessonCatalog | None: ...
    async def get_details(
        self, kind: EntityKind, item_id: UUID
    ) -> ItemDetails | None: ...


class InMemoryCatalogRepo:
    """Catalog fixture store.

    The catalog is owned by the content side of the platform; this
    implementation exists for local development and tests, which load it
    with ``put``.
    """

    def __init__(self) -> None:
        self._catalogs: dict[tuple[EntityKind, UUID], LessonCatalog] = {}
        self._details: dict[tuple[EntityKind, UUID], ItemDetails] = {}

    def put(self, details: ItemDetails, catalog: LessonCatalog) -> None:
        if (details.kind, details.item_id) != (catalog.kind, catalog.item_id):
            raise ValueError("details and catalog describe different items")
        key = (details.kind, details.item_id)
        self._details[key] = details
        self._catalogs[key] = catalog

    async def get_catalog(
        self, kind: EntityKind, item_id: UUID
    ) -> LessonCatalog | None:
        return self._catalogs.get((kind, item_id))

    async def get_details(self, kind: EntityKind, item_id: UUID) -> ItemDetails | None:
        return self._details.get((kind, item_id))
