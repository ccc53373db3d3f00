# backend/modules/menus/services/reconciliation_service.py

"""
Menu item reconciliation.

On every menu write the submitted item list is compared with the stored one:
stored items that were left out are deleted (together with everything below
them), the rest are updated in place or created. The whole sequence runs in
one store transaction.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence
import logging

from core.exceptions import ValidationError

from ..constants import MENU_ITEM_LAYOUT, MENU_ITEM_MANAGED_FIELDS, UID_MENU_ITEM
from .entity_store import EntityStore
from .population_service import PopulationResolver
from .tree_serializer import parent_id_of

logger = logging.getLogger(__name__)


def is_persisted_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _as_dict(item: Any) -> Dict[str, Any]:
    if hasattr(item, "model_dump"):
        return item.model_dump(exclude_unset=True)
    return dict(item)


@dataclass
class PlannedItem:
    """One submitted item, ready to be written"""
    key: Hashable
    existing: bool
    parent_key: Optional[Hashable]
    order_index: int
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReconciliationPlan:
    menu_id: int
    # Persisted ids to delete, grouped by stored depth, deepest level first.
    delete_levels: List[List[int]] = field(default_factory=list)
    # Surviving submitted items, parents before children.
    upserts: List[PlannedItem] = field(default_factory=list)
    # Submitted items dropped because an ancestor is being deleted.
    dropped: List[Hashable] = field(default_factory=list)

    @property
    def delete_ids(self) -> List[int]:
        return [item_id for level in self.delete_levels for item_id in level]

    @property
    def creates(self) -> List[PlannedItem]:
        return [entry for entry in self.upserts if not entry.existing]

    @property
    def updates(self) -> List[PlannedItem]:
        return [entry for entry in self.upserts if entry.existing]


def _depths(parents: Mapping[Hashable, Optional[Hashable]]) -> Dict[Hashable, int]:
    """Depth of every node below the root; raises on parent cycles."""
    depths: Dict[Hashable, int] = {}

    def depth_of(key, trail):
        if key in depths:
            return depths[key]
        if key in trail:
            raise ValidationError(f"Menu item {key} is its own ancestor")
        parent = parents.get(key)
        depth = 0 if parent is None or parent not in parents else depth_of(parent, trail | {key}) + 1
        depths[key] = depth
        return depth

    for key in parents:
        depth_of(key, frozenset())
    return depths


def _levels(ids: Sequence[int], depths: Mapping[Hashable, int]) -> List[List[int]]:
    levels: Dict[int, List[int]] = {}
    for item_id in ids:
        levels.setdefault(depths.get(item_id, 0), []).append(item_id)
    return [levels[depth] for depth in sorted(levels, reverse=True)]


class ReconciliationEngine:
    """Diffs stored menu items against a submission and applies the result"""

    def __init__(
        self,
        store: EntityStore,
        population_resolver: Optional[PopulationResolver] = None,
        item_uid: str = UID_MENU_ITEM,
        layout_name: str = MENU_ITEM_LAYOUT,
    ):
        self.store = store
        self.population_resolver = population_resolver
        self.item_uid = item_uid
        self.layout_name = layout_name

    @property
    def items(self):
        return self.store.query(self.item_uid)

    def item_population(self) -> Dict[str, Any]:
        population = self.population_resolver.resolve(self.layout_name) if self.population_resolver else {}
        population["parent"] = {"select": ["id"]}
        return population

    # Planning
    def plan(
        self,
        menu_id: int,
        previous_items: Sequence[Mapping[str, Any]],
        submitted_items: Sequence[Any],
    ) -> ReconciliationPlan:
        """Compute deletes and upserts without touching the store."""
        previous = {item["id"]: item for item in previous_items}
        submitted = [_as_dict(item) for item in submitted_items]

        # Identify submitted items.
        keys: List[Hashable] = []
        for index, item in enumerate(submitted):
            item_id = item.get("id")
            if item_id is None:
                key = ("new", index)
            elif is_persisted_id(item_id):
                if item_id not in previous:
                    raise ValidationError(f"Menu item {item_id} does not belong to menu {menu_id}")
                key = item_id
            else:
                key = item_id
            if key in keys:
                raise ValidationError(f"Menu item {item_id} was submitted more than once")
            keys.append(key)

        submitted_keys = set(keys)

        # Effective parent of every node: the submitted one, else the stored one.
        parents: Dict[Hashable, Optional[Hashable]] = {
            item_id: parent_id_of(item) for item_id, item in previous.items() if item_id not in submitted_keys
        }
        for key, item in zip(keys, submitted):
            if "parent" not in item and key in previous:
                parent_key = parent_id_of(previous[key])
            else:
                parent_key = parent_id_of(item)

            if parent_key is not None and parent_key not in submitted_keys and parent_key not in previous:
                raise ValidationError(
                    f"Menu item {item.get('id') or '(new)'} references parent {parent_key} outside menu {menu_id}"
                )
            if parent_key == key:
                raise ValidationError(f"Menu item {key} cannot be its own parent")
            parents[key] = parent_key

        depths = _depths(parents)

        # Removed items and everything below them.
        children: Dict[Hashable, List[Hashable]] = {}
        for key, parent_key in parents.items():
            if parent_key is not None:
                children.setdefault(parent_key, []).append(key)

        removed = set()
        queue = [item_id for item_id in previous if item_id not in submitted_keys]
        while queue:
            key = queue.pop()
            if key in removed:
                continue
            removed.add(key)
            queue.extend(children.get(key, []))

        stored_parents = {item_id: parent_id_of(item) for item_id, item in previous.items()}
        stored_depths = _depths(stored_parents)
        delete_ids = [item_id for item_id in previous if item_id in removed]

        plan = ReconciliationPlan(menu_id=menu_id, delete_levels=_levels(delete_ids, stored_depths))

        # Order within each parent bucket follows submission order.
        positions: Dict[Optional[Hashable], int] = {}
        entries = []
        for key, item in zip(keys, submitted):
            if key in removed:
                plan.dropped.append(key)
                continue
            parent_key = parents[key]
            order_index = positions.get(parent_key, 0)
            positions[parent_key] = order_index + 1
            data = {name: value for name, value in item.items() if name not in MENU_ITEM_MANAGED_FIELDS}
            if key not in previous and not data.get("title"):
                raise ValidationError("Menu item title is required")
            entries.append(PlannedItem(
                key=key,
                existing=key in previous,
                parent_key=parent_key,
                order_index=order_index,
                data=data,
            ))

        plan.upserts = sorted(entries, key=lambda entry: depths.get(entry.key, 0))
        return plan

    # Applying
    async def reconcile(
        self,
        menu_id: int,
        previous_items: Sequence[Mapping[str, Any]],
        submitted_items: Sequence[Any],
    ) -> List[Dict[str, Any]]:
        """Bring the stored items of a menu in line with the submission."""
        plan = self.plan(menu_id, previous_items, submitted_items)
        logger.info(
            f"Reconciling menu {menu_id}: {len(plan.delete_ids)} to delete, "
            f"{len(plan.creates)} to create, {len(plan.updates)} to update"
        )
        if plan.dropped:
            logger.warning(f"Menu {menu_id}: dropping submitted items under deleted parents: {plan.dropped}")

        async with self.store.transaction():
            await self.bulk_delete(plan.delete_levels)
            await self.bulk_create_or_update(plan)

        return await self.get_menu_items(menu_id)

    async def bulk_delete(self, delete_levels: Sequence[Sequence[int]]) -> int:
        deleted = 0
        for level in delete_levels:
            if not level:
                continue
            logger.debug(f"Deleting menu items {list(level)}")
            deleted += await self.items.delete_many({"id": {"$in": list(level)}})
        return deleted

    async def bulk_create_or_update(self, plan: ReconciliationPlan) -> Dict[Hashable, int]:
        """Write the planned upserts; returns submitted key -> stored id."""
        resolved: Dict[Hashable, int] = {}
        for entry in plan.upserts:
            parent_id = None
            if entry.parent_key is not None:
                parent_id = resolved.get(entry.parent_key, entry.parent_key)

            data = {**entry.data, "parent": parent_id, "order_index": entry.order_index}

            if entry.existing:
                await self.items.update({"id": entry.key, "menu": plan.menu_id}, data)
                resolved[entry.key] = entry.key
                logger.debug(f"Updated menu item {entry.key}")
            else:
                created = await self.items.create({**data, "menu": plan.menu_id})
                resolved[entry.key] = created["id"]
                logger.debug(f"Created menu item {created['id']} for submitted key {entry.key}")

        return resolved

    async def delete_all(self, menu_id: int) -> int:
        """Delete every item of a menu, children before parents."""
        items = await self.items.find({"menu": menu_id}, populate={"parent": {"select": ["id"]}})
        stored_depths = _depths({item["id"]: parent_id_of(item) for item in items})
        levels = _levels([item["id"] for item in items], stored_depths)

        async with self.store.transaction():
            deleted = await self.bulk_delete(levels)

        logger.info(f"Deleted {deleted} items of menu {menu_id}")
        return deleted

    async def get_menu_items(self, menu_id: int) -> List[Dict[str, Any]]:
        return await self.items.find(
            {"menu": menu_id},
            populate=self.item_population(),
            sort=["order_index", "id"],
        )
