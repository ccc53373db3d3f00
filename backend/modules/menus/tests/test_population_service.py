# backend/modules/menus/tests/test_population_service.py

"""
Tests for layout-driven population resolution.
"""

import pytest
from unittest.mock import Mock

from modules.menus.schemas.menu_schemas import FieldMeta, ModelSchema
from modules.menus.services.population_service import PopulationResolver


class StaticSchemaRegistry:
    """Registry backed by a plain dict of schemas"""

    def __init__(self, schemas):
        self.schemas = {schema.uid: schema for schema in schemas}

    def get_model(self, uid):
        return self.schemas.get(uid)

    def attributes_of(self, uid):
        schema = self.get_model(uid)
        return dict(schema.attributes) if schema else {}


def layout(*inputs):
    return {"menuItem": {"main": [{"input": field_input} for field_input in inputs]}}


@pytest.fixture
def registry():
    return StaticSchemaRegistry([
        ModelSchema(uid="menu-item", attributes={
            "title": FieldMeta(type="string"),
            "icon": FieldMeta(type="media"),
            "article": FieldMeta(type="relation", target="article"),
            "tag": FieldMeta(type="relation", target="tag"),
            "ghost": FieldMeta(type="relation", target="does-not-exist"),
        }),
        ModelSchema(uid="article", attributes={
            "title": FieldMeta(type="string"),
            "hero": FieldMeta(type="media"),
            "author": FieldMeta(type="relation", target="author"),
            "created_by": FieldMeta(type="relation", target="admin", private=True),
        }),
        ModelSchema(uid="tag", attributes={
            "name": FieldMeta(type="string"),
        }),
    ])


class TestPopulationResolver:
    """Test population resolution"""

    def test_media_field_is_shallow(self, registry):
        resolver = PopulationResolver(layout({"name": "icon", "type": "media"}), registry)

        assert resolver.resolve("menuItem") == {"icon": True}

    def test_relation_with_relational_target_populates_one_level(self, registry):
        resolver = PopulationResolver(layout({"name": "article", "type": "relation"}), registry)

        assert resolver.resolve("menuItem") == {
            "article": {"populate": {"hero": True, "author": True}}
        }

    def test_private_target_attributes_are_not_populated(self, registry):
        resolver = PopulationResolver(layout({"name": "article", "type": "relation"}), registry)

        population = resolver.resolve("menuItem")

        assert "created_by" not in population["article"]["populate"]

    def test_relation_without_relational_target_is_shallow(self, registry):
        resolver = PopulationResolver(layout({"name": "tag", "type": "relation"}), registry)

        assert resolver.resolve("menuItem") == {"tag": True}

    def test_scalar_fields_and_fields_without_input_are_omitted(self, registry):
        layouts = {"menuItem": {
            "link": [
                {"input": {"name": "title", "type": "text"}},
                {"label": "decoration only"},
            ],
            "extra": [{"input": {"name": "icon", "type": "media"}}],
        }}
        resolver = PopulationResolver(layouts, registry)

        assert resolver.resolve("menuItem") == {"icon": True}

    def test_missing_target_model_degrades_to_shallow(self, registry):
        resolver = PopulationResolver(layout({"name": "ghost", "type": "relation"}), registry)

        assert resolver.resolve("menuItem") == {"ghost": True}

    def test_unknown_attribute_degrades_to_shallow(self, registry):
        resolver = PopulationResolver(layout({"name": "nowhere", "type": "relation"}), registry)

        assert resolver.resolve("menuItem") == {"nowhere": True}

    def test_layout_target_used_when_attribute_is_unknown(self, registry):
        resolver = PopulationResolver(
            layout({"name": "featured", "type": "relation", "target": "article"}), registry
        )

        assert resolver.resolve("menuItem") == {
            "featured": {"populate": {"hero": True, "author": True}}
        }

    def test_unknown_layout_yields_empty_spec(self, registry):
        resolver = PopulationResolver(layout({"name": "icon", "type": "media"}), registry)

        assert resolver.resolve("footer") == {}

    def test_resolution_is_deterministic(self, registry):
        layouts = layout(
            {"name": "icon", "type": "media"},
            {"name": "article", "type": "relation"},
            {"name": "tag", "type": "relation"},
        )
        cached = PopulationResolver(layouts, registry)
        uncached = PopulationResolver(layouts, registry, cache_enabled=False)

        assert cached.resolve("menuItem") == cached.resolve("menuItem")
        assert uncached.resolve("menuItem") == uncached.resolve("menuItem")
        assert cached.resolve("menuItem") == uncached.resolve("menuItem")

    def test_results_are_memoized_per_layout(self, registry):
        spy = Mock(wraps=registry)
        resolver = PopulationResolver(layout({"name": "article", "type": "relation"}), spy)

        resolver.resolve("menuItem")
        resolver.resolve("menuItem")

        assert spy.get_model.call_count == 1

    def test_callers_cannot_mutate_cached_spec(self, registry):
        resolver = PopulationResolver(layout({"name": "article", "type": "relation"}), registry)

        first = resolver.resolve("menuItem")
        first["article"]["populate"]["injected"] = True
        first["parent"] = {"select": ["id"]}

        assert resolver.resolve("menuItem") == {
            "article": {"populate": {"hero": True, "author": True}}
        }


class TestMenuItemPopulation:
    """Population against the real menu models"""

    def test_default_menu_item_layout(self, population_resolver):
        assert population_resolver.resolve("menuItem") == {
            "image": True,
            "page": {"populate": {"cover": True}},
        }

    def test_registry_folds_foreign_keys_into_relations(self, schema_registry):
        attributes = schema_registry.attributes_of("menu-item")

        assert attributes["image"].type == "media"
        assert attributes["page"].type == "relation"
        assert attributes["page"].target == "page"
        assert attributes["parent"].private is True
        assert "page_id" not in attributes
        assert "image_id" not in attributes

    def test_registry_returns_none_for_unknown_model(self, schema_registry):
        assert schema_registry.get_model("unknown") is None
        assert schema_registry.attributes_of("unknown") == {}
