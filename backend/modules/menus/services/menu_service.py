# backend/modules/menus/services/menu_service.py

from functools import lru_cache
from math import ceil
from typing import Any, Dict, List, Mapping, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from core.exceptions import (
    ConflictError, FieldConflictError, InvalidReferenceError, NotFoundError, ValidationError
)

from ..constants import MENU_ITEM_LAYOUT, MENU_SCALAR_FIELDS, UID_MENU, UID_MENU_ITEM
from .entity_store import EntityStore, SQLAlchemyEntityStore
from .population_service import PopulationResolver, PopulationSpec
from .reconciliation_service import ReconciliationEngine
from .schema_registry import SchemaRegistry, SQLAlchemySchemaRegistry, build_menu_schema_registry
from .tree_serializer import (
    flatten_nested,
    get_nested_params,
    has_nested_children,
    has_parent_population,
    is_nested_request,
    populates_items,
    serialize_nested_menu,
)

logger = logging.getLogger(__name__)


def _payload(data: Any) -> Dict[str, Any]:
    if hasattr(data, "model_dump"):
        return data.model_dump(exclude_unset=True)
    return dict(data)


class MenuService:
    """Service class for menu management operations"""

    def __init__(
        self,
        store: EntityStore,
        schema_registry: SchemaRegistry,
        population_resolver: PopulationResolver,
        settings: Optional[Settings] = None,
        reconciliation_engine: Optional[ReconciliationEngine] = None,
    ):
        self.store = store
        self.schema_registry = schema_registry
        self.population_resolver = population_resolver
        self.settings = settings or get_settings()
        self.reconciliation = reconciliation_engine or ReconciliationEngine(store, population_resolver)

    @property
    def menus(self):
        return self.store.query(UID_MENU)

    # Population
    def get_population(self, layout_name: str) -> PopulationSpec:
        """Relation/media fields to load for a layout"""
        return self.population_resolver.resolve(layout_name)

    def _menu_population(self, params: Optional[Mapping[str, Any]], nested: bool) -> Dict[str, Any]:
        if not (nested or populates_items(params)):
            return {}

        item_population = self.get_population(MENU_ITEM_LAYOUT)
        item_population["parent"] = {"select": ["id"]}
        return {"items": {"populate": item_population}}

    def _pagination(self, params: Mapping[str, Any]) -> Dict[str, int]:
        try:
            page = max(int(params.get("page") or 1), 1)
            page_size = int(params.get("page_size") or self.settings.default_page_size)
        except (TypeError, ValueError):
            raise ValidationError("page and page_size must be integers")

        page_size = min(max(page_size, 1), self.settings.max_page_size)
        return {"page": page, "page_size": page_size}

    # Reads
    async def find(self, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Paginated list of menus, optionally with nested items"""
        params = params or {}
        nested = is_nested_request(params)
        find_params = get_nested_params(params) if nested else dict(params)

        pagination = self._pagination(find_params)
        filters = find_params.get("filters") or {}

        total = await self.menus.count(filters)
        results = await self.menus.find(
            filters,
            populate=self._menu_population(find_params, nested),
            sort=find_params.get("sort"),
            offset=(pagination["page"] - 1) * pagination["page_size"],
            limit=pagination["page_size"],
        )

        if nested:
            include_parent = has_parent_population(params)
            results = [serialize_nested_menu(result, include_parent) for result in results]

        pagination["page_count"] = ceil(total / pagination["page_size"]) if total else 0
        pagination["total"] = total
        return {"results": results, "pagination": pagination}

    async def find_one(self, menu_id: int, params: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Single menu, optionally with nested items; None when missing"""
        params = params or {}
        nested = is_nested_request(params)
        find_params = get_nested_params(params) if nested else dict(params)

        result = await self.menus.find_one(
            {"id": menu_id}, populate=self._menu_population(find_params, nested)
        )

        if nested:
            return serialize_nested_menu(result, has_parent_population(params))
        return result

    async def get_menu(self, value: Any, field: str = "id") -> Optional[Dict[str, Any]]:
        """Menu with all items populated for the menu item layout"""
        return await self.menus.find_one(
            {field: value}, populate=self._menu_population(None, nested=True)
        )

    async def check_availability(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        """True when no other menu uses the slug"""
        filters: Dict[str, Any] = {"slug": slug}

        # Don't check the menu against itself.
        if exclude_id is not None:
            filters["$not"] = {"id": exclude_id}

        menu = await self.menus.find_one(filters)
        return menu is None

    async def _ensure_slug_available(self, slug: Optional[str], exclude_id: Optional[int] = None) -> None:
        if slug is None:
            return
        if not await self.check_availability(slug, exclude_id):
            raise FieldConflictError("slug", f"The slug {slug} is already taken")

    # Writes
    def _submitted_items(self, data: Mapping[str, Any]) -> List[Dict[str, Any]]:
        items = [_payload(item) for item in (data.get("items") or [])]
        if has_nested_children(items):
            items = flatten_nested(items)
        return items

    async def create(self, data: Any) -> Dict[str, Any]:
        """Create a menu; items are only present when cloning"""
        if data is None or not (isinstance(data, Mapping) or hasattr(data, "model_dump")):
            raise ValidationError('Missing "data" payload in the request body')

        data = _payload(data)
        if not data.get("title"):
            raise ValidationError("Menu title is required")
        if not data.get("slug"):
            raise ValidationError("Menu slug is required")
        await self._ensure_slug_available(data["slug"])

        menu_data = {key: data[key] for key in MENU_SCALAR_FIELDS if key in data}
        items_data = self._submitted_items(data)

        try:
            async with self.store.transaction():
                menu = await self.menus.create(menu_data)
                items = []
                if items_data:
                    items = await self.reconciliation.reconcile(menu["id"], [], items_data)
        except IntegrityError as e:
            # Another writer took the slug after the availability check.
            logger.warning(f"Integrity error creating menu {data['slug']}: {e}")
            raise ConflictError(f"The slug {data['slug']} is already taken")

        logger.info(f"Created menu {menu['id']} ({menu['slug']}) with {len(items)} items")
        return {**menu, "items": items}

    async def update(self, menu_id: int, data: Any) -> Dict[str, Any]:
        """Update menu fields and reconcile its items"""
        data = _payload(data) if data is not None else {}
        if not data:
            raise ValidationError("Request body cannot be empty")

        menu_to_update = await self.get_menu(menu_id)
        if menu_to_update is None:
            raise NotFoundError(f"Menu {menu_id} not found")

        await self._ensure_slug_available(data.get("slug"), exclude_id=menu_id)

        menu_data = {key: data[key] for key in MENU_SCALAR_FIELDS if key in data}

        try:
            async with self.store.transaction():
                # `items: null` leaves the items alone; only a list is reconciled.
                if data.get("items") is not None:
                    await self.reconciliation.reconcile(
                        menu_id, menu_to_update.get("items") or [], self._submitted_items(data)
                    )
                if menu_data:
                    await self.menus.update({"id": menu_id}, menu_data)
        except IntegrityError as e:
            logger.warning(f"Integrity error updating menu {menu_id}: {e}")
            if data.get("slug"):
                raise ConflictError(f"The slug {data['slug']} is already taken")
            raise ConflictError(f"Menu {menu_id} was changed by another request")

        logger.info(f"Updated menu {menu_id}")
        return await self.get_menu(menu_id)

    async def delete(self, menu_id: int) -> Dict[str, bool]:
        """Delete a menu and all of its items"""
        menu_to_delete = await self.menus.find_one({"id": menu_id})
        if menu_to_delete is None:
            raise NotFoundError(f"Menu {menu_id} not found")

        async with self.store.transaction():
            await self.reconciliation.delete_all(menu_id)
            await self.menus.delete({"id": menu_id})

        logger.info(f"Deleted menu {menu_id}")
        return {"ok": True}

    # Admin helpers
    def get_config(self) -> Dict[str, Any]:
        """Layouts plus the menu and menu item schemas, for admin UIs"""
        schema = {}
        for uid in (UID_MENU, UID_MENU_ITEM):
            model = self.schema_registry.get_model(uid)
            if model is not None:
                schema[uid] = model.model_dump()

        return {
            "config": {"layouts": self.settings.menu_layouts},
            "schema": schema,
        }

    async def find_relations(self, target_field: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Candidate entities for a menu item relation field"""
        if not target_field:
            raise ValidationError("targetField is required")

        model = self.schema_registry.get_model(UID_MENU_ITEM)
        if model is None:
            raise NotFoundError("model.notFound")

        attribute = model.attributes.get(target_field)
        if attribute is None or attribute.type != "relation" or attribute.private:
            raise InvalidReferenceError("targetField.invalid")

        target = self.schema_registry.get_model(attribute.target)
        if target is None:
            raise NotFoundError("target.notFound")

        params = params or {}
        entities = await self.store.query(target.uid).find(
            params.get("filters") or {},
            sort=params.get("sort"),
            limit=self.settings.max_page_size,
        )

        main_field = self.settings.relation_main_fields.get(target_field, "id")
        pick_fields = [main_field, "id", target.primary_key, "published_at"]
        return [
            {key: entity[key] for key in pick_fields if key in entity}
            for entity in entities
        ]


@lru_cache()
def get_schema_registry() -> SQLAlchemySchemaRegistry:
    return build_menu_schema_registry()


@lru_cache()
def get_population_resolver() -> PopulationResolver:
    """Process-wide resolver so memoized population specs are shared between requests"""
    settings = get_settings()
    return PopulationResolver(
        settings.menu_layouts,
        get_schema_registry(),
        cache_enabled=settings.population_cache_enabled,
    )


def create_menu_service(session: AsyncSession, settings: Optional[Settings] = None) -> MenuService:
    """Wire a MenuService for one database session"""
    registry = get_schema_registry()
    store = SQLAlchemyEntityStore(session, registry.models())
    return MenuService(store, registry, get_population_resolver(), settings=settings)
