# backend/modules/menus/services/population_service.py

from copy import deepcopy
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import logging

from ..constants import UID_MENU_ITEM
from .schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)

PopulationEntry = Union[bool, Dict[str, Dict[str, bool]]]
PopulationSpec = Dict[str, PopulationEntry]
LayoutConfig = Mapping[str, Mapping[str, List[Dict[str, Any]]]]


class PopulationResolver:
    """Works out which relation and media fields of a layout to eager load.

    Media fields are fetched shallowly. Relation fields are fetched one level
    deep when their target model has media/relation attributes of its own.
    Any schema lookup that fails falls back to a shallow fetch so a bad
    layout never breaks a read.
    """

    def __init__(
        self,
        layouts: LayoutConfig,
        schema_registry: SchemaRegistry,
        model_uid: str = UID_MENU_ITEM,
        cache_enabled: bool = True,
    ):
        self.layouts = layouts or {}
        self.schema_registry = schema_registry
        self.model_uid = model_uid
        self.cache_enabled = cache_enabled
        self._cache: Dict[str, PopulationSpec] = {}

    def resolve(self, layout_name: str) -> PopulationSpec:
        """Population spec for a layout; callers get their own copy."""
        if self.cache_enabled and layout_name in self._cache:
            return deepcopy(self._cache[layout_name])

        population = self._build(layout_name)
        if self.cache_enabled:
            self._cache[layout_name] = population
        return deepcopy(population)

    def layout_fields(self, layout_name: str) -> List[Dict[str, Any]]:
        """All field definitions of a layout, flattened across its sections."""
        sections = self.layouts.get(layout_name) or {}
        fields: List[Dict[str, Any]] = []
        for section_fields in sections.values():
            fields.extend(section_fields or [])
        return fields

    def _build(self, layout_name: str) -> PopulationSpec:
        if layout_name not in self.layouts:
            logger.debug(f"No layout named '{layout_name}', nothing to populate")

        population: PopulationSpec = {}
        for field in self.layout_fields(layout_name):
            field_input = field.get("input")
            if not field_input:
                continue

            name = field_input.get("name")
            field_type = field_input.get("type")

            if field_type == "media":
                population[name] = True
            elif field_type == "relation":
                population[name] = self.relation_population(name, field_input.get("target"))

        return population

    def relation_population(self, field: str, fallback_target: Optional[str] = None) -> PopulationEntry:
        """Population for one relation field of the menu item model."""
        attr = self.schema_registry.attributes_of(self.model_uid).get(field)
        target = attr.target if attr and attr.target else fallback_target

        if not target:
            logger.warning(f"Relation '{field}' has no resolvable target, populating shallowly")
            return True

        target_model = self.schema_registry.get_model(target)
        if target_model is None:
            logger.warning(f"Target model '{target}' for relation '{field}' not found, populating shallowly")
            return True

        relations = _relational_fields(
            (name, meta) for name, meta in target_model.attributes.items() if not meta.private
        )
        if not relations:
            return True

        return {"populate": {relation: True for relation in relations}}


def _relational_fields(attributes: Iterable) -> List[str]:
    return [name for name, meta in attributes if meta.is_relational]
