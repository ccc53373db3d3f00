# backend/modules/menus/services/tree_serializer.py

"""
Nested <-> flat shaping of menu items.

Menus are stored as a flat list of items that point at their parent. Reads
with the `nested` flag turn that list into a tree; nested submissions are
flattened back before reconciliation.
"""

from itertools import count
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

from ..constants import TEMP_KEY_PREFIX

logger = logging.getLogger(__name__)

ROOT = None


def parent_id_of(item: Mapping[str, Any]) -> Any:
    """Id of the item's parent, or None for root items."""
    parent = item.get("parent")
    if isinstance(parent, Mapping):
        return parent.get("id")
    return parent


def _sorted_bucket(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # sorted() is stable, equal order_index keeps the input order
    return sorted(items, key=lambda item: item.get("order_index") or 0)


def build_buckets(items: Iterable[Dict[str, Any]]) -> Dict[Any, List[Dict[str, Any]]]:
    """Group items by parent id; orphans go to the root bucket."""
    items = list(items)
    known_ids = {item.get("id") for item in items}

    buckets: Dict[Any, List[Dict[str, Any]]] = {ROOT: []}
    for item in items:
        parent_id = parent_id_of(item)
        if parent_id is not None and parent_id not in known_ids:
            logger.warning(
                f"Menu item {item.get('id')} references missing parent {parent_id}, treating it as a root item"
            )
            parent_id = ROOT
        buckets.setdefault(parent_id, []).append(item)

    return {key: _sorted_bucket(bucket) for key, bucket in buckets.items()}


def serialize_nested_items(
    items: Iterable[Dict[str, Any]], include_parent_ref: bool = False
) -> List[Dict[str, Any]]:
    """Build the nested tree for a flat list of items."""
    items = list(items)
    by_id = {item.get("id"): item for item in items}
    buckets = build_buckets(items)
    visited = set()

    def parent_summary(item):
        parent = by_id.get(parent_id_of(item))
        if parent is None:
            return None
        return {"id": parent.get("id"), "title": parent.get("title")}

    def build_node(item):
        visited.add(id(item))
        node = {key: value for key, value in item.items() if key not in ("parent", "children")}
        if include_parent_ref:
            node["parent"] = parent_summary(item)
        node["children"] = [
            build_node(child)
            for child in buckets.get(item.get("id"), [])
            if id(child) not in visited
        ]
        return node

    tree = [build_node(item) for item in buckets[ROOT]]

    # Items caught in a parent cycle are unreachable from the roots.
    for item in items:
        if id(item) not in visited:
            logger.warning(f"Menu item {item.get('id')} is part of a parent cycle, treating it as a root item")
            tree.append(build_node(item))

    return tree


def serialize_nested_menu(menu: Optional[Dict[str, Any]], include_parent_ref: bool = False) -> Optional[Dict[str, Any]]:
    """Return a copy of the menu with `items` replaced by the nested tree."""
    if menu is None:
        return None

    nested = dict(menu)
    nested["items"] = serialize_nested_items(menu.get("items") or [], include_parent_ref)
    return nested


def flatten_nested(nodes: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Pre-order flattening of a nested tree into parent-referencing items.

    New nodes that have children but no id get a temporary key so their
    children can reference them until they are created.
    """
    nodes = list(nodes)
    used_ids = set()

    def collect(node):
        if node.get("id") is not None:
            used_ids.add(node["id"])
        for child in node.get("children") or []:
            collect(child)

    for node in nodes:
        collect(node)

    temp_keys = (
        key for key in (f"{TEMP_KEY_PREFIX}{n}" for n in count(1)) if key not in used_ids
    )
    flat: List[Dict[str, Any]] = []

    def visit(node, parent_key):
        item = {key: value for key, value in node.items() if key != "children"}
        children = node.get("children") or []

        item["parent"] = {"id": parent_key} if parent_key is not None else None

        if children and item.get("id") is None:
            item["id"] = next(temp_keys)

        flat.append(item)
        for child in children:
            visit(child, item.get("id"))

    for node in nodes:
        visit(node, None)

    return flat


def has_nested_children(items: Iterable[Mapping[str, Any]]) -> bool:
    return any(item.get("children") for item in items)


# Read params
def is_nested_request(params: Optional[Mapping[str, Any]]) -> bool:
    return bool(params) and "nested" in params


def _populate_paths(populate: Any) -> List[str]:
    if not populate:
        return []
    if isinstance(populate, str):
        return [path.strip() for path in populate.split(",") if path.strip()]
    if isinstance(populate, Mapping):
        paths = []
        for key, value in populate.items():
            paths.append(key)
            nested = value.get("populate") if isinstance(value, Mapping) else None
            paths.extend(f"{key}.{sub}" for sub in _populate_paths(nested))
        return paths
    return [str(path) for path in populate]


def has_parent_population(params: Optional[Mapping[str, Any]]) -> bool:
    """True when the caller asked for `items.parent` (or everything)."""
    paths = _populate_paths((params or {}).get("populate"))
    return "*" in paths or "items.parent" in paths


def populates_items(params: Optional[Mapping[str, Any]]) -> bool:
    paths = _populate_paths((params or {}).get("populate"))
    return "*" in paths or any(path == "items" or path.startswith("items.") for path in paths)


def get_nested_params(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Store params for a nested read: drop the flag, always load items."""
    nested_params = {key: value for key, value in (params or {}).items() if key != "nested"}
    nested_params["populate"] = ["items", "items.parent"]
    return nested_params
