# backend/modules/menus/tests/test_reconciliation_service.py

"""
Tests for menu item reconciliation.

Planning is tested without a store; applying is tested against an
in-memory SQLite database.
"""

import pytest
from unittest.mock import Mock, patch

from core.exceptions import ValidationError
from modules.menus.services.entity_store import SQLAlchemyRepository
from modules.menus.services.reconciliation_service import ReconciliationEngine


def stored(item_id, parent=None, title=None):
    return {
        "id": item_id,
        "title": title or f"Item {item_id}",
        "parent": {"id": parent} if parent is not None else None,
    }


@pytest.fixture
def engine():
    return ReconciliationEngine(Mock())


class TestReconciliationPlan:
    """Test the pure diff"""

    def test_update_scenario(self, engine):
        previous = [stored(1), stored(2)]
        submitted = [{"id": 1, "title": "Home"}, {"title": "new"}]

        plan = engine.plan(7, previous, submitted)

        assert plan.delete_ids == [2]
        assert [entry.key for entry in plan.updates] == [1]
        assert len(plan.creates) == 1
        assert plan.creates[0].data == {"title": "new"}

    def test_delete_set_is_previous_minus_submitted(self, engine):
        previous = [stored(i) for i in range(1, 7)]
        submitted = [{"id": 2}, {"id": 4}, {"id": 6}, {"title": "x"}]

        plan = engine.plan(1, previous, submitted)

        assert sorted(plan.delete_ids) == [1, 3, 5]
        assert len(plan.upserts) == len(submitted)

    def test_create_against_empty_menu(self, engine):
        plan = engine.plan(1, [], [{"title": "A"}, {"title": "B"}])

        assert plan.delete_ids == []
        assert len(plan.creates) == 2
        assert plan.updates == []

    def test_descendants_of_removed_items_are_deleted(self, engine):
        previous = [stored(1), stored(2, parent=1), stored(3, parent=2), stored(4)]
        submitted = [{"id": 2, "parent": {"id": 1}}, {"id": 3, "parent": {"id": 2}}, {"id": 4}]

        plan = engine.plan(1, previous, submitted)

        assert plan.delete_levels == [[3], [2], [1]]
        assert sorted(plan.dropped) == [2, 3]
        assert [entry.key for entry in plan.upserts] == [4]

    def test_unsubmitted_descendants_are_deleted(self, engine):
        previous = [stored(1), stored(2, parent=1), stored(3, parent=2)]

        plan = engine.plan(1, previous, [])

        assert plan.delete_levels == [[3], [2], [1]]

    def test_new_children_of_removed_items_are_dropped(self, engine):
        previous = [stored(1)]
        submitted = [{"title": "Orphan", "parent": {"id": 1}}]

        plan = engine.plan(1, previous, submitted)

        assert plan.delete_ids == [1]
        assert plan.upserts == []
        assert plan.dropped == [("new", 0)]

    def test_moved_child_survives_parent_removal(self, engine):
        previous = [stored(1), stored(2, parent=1)]
        submitted = [{"id": 2, "parent": None}]

        plan = engine.plan(1, previous, submitted)

        assert plan.delete_ids == [1]
        assert plan.updates[0].key == 2
        assert plan.updates[0].parent_key is None

    def test_missing_parent_key_keeps_stored_parent(self, engine):
        previous = [stored(1), stored(2, parent=1)]
        submitted = [{"id": 1}, {"id": 2, "title": "Renamed"}]

        plan = engine.plan(1, previous, submitted)

        updates = {entry.key: entry for entry in plan.updates}
        assert updates[2].parent_key == 1
        assert updates[2].data == {"title": "Renamed"}

    def test_order_index_follows_submission_per_parent(self, engine):
        previous = [stored(1), stored(2), stored(3, parent=1), stored(4, parent=1)]
        submitted = [
            {"id": 2},
            {"id": 4, "parent": {"id": 1}},
            {"id": 1},
            {"id": 3, "parent": {"id": 1}},
            {"title": "Last child", "parent": {"id": 1}},
        ]

        plan = engine.plan(1, previous, submitted)

        order = {entry.key: entry.order_index for entry in plan.upserts}
        assert order[2] == 0
        assert order[1] == 1
        assert order[4] == 0
        assert order[3] == 1
        assert order[("new", 4)] == 2

    def test_temporary_keys_are_created_parent_first(self, engine):
        submitted = [
            {"title": "Child", "parent": {"id": "tmp-a"}},
            {"id": "tmp-a", "title": "Parent"},
        ]

        plan = engine.plan(1, [], submitted)

        assert [entry.key for entry in plan.upserts] == ["tmp-a", ("new", 0)]
        assert plan.upserts[1].parent_key == "tmp-a"

    def test_parent_given_as_bare_id(self, engine):
        plan = engine.plan(1, [stored(1)], [{"id": 1}, {"title": "Child", "parent": 1}])

        assert plan.creates[0].parent_key == 1

    def test_item_from_another_menu_is_rejected(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.plan(1, [stored(1)], [{"id": 1}, {"id": 42}])

        assert "does not belong" in exc_info.value.detail

    def test_parent_from_another_menu_is_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.plan(1, [stored(1)], [{"id": 1, "parent": {"id": 42}}])

    def test_parent_cycle_is_rejected(self, engine):
        previous = [stored(1), stored(2)]
        submitted = [{"id": 1, "parent": {"id": 2}}, {"id": 2, "parent": {"id": 1}}]

        with pytest.raises(ValidationError):
            engine.plan(1, previous, submitted)

    def test_self_parent_is_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.plan(1, [stored(1)], [{"id": 1, "parent": {"id": 1}}])

    def test_duplicate_submission_is_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.plan(1, [stored(1)], [{"id": 1}, {"id": 1}])

    def test_new_item_requires_title(self, engine):
        with pytest.raises(ValidationError):
            engine.plan(1, [], [{"url": "/no-title"}])

    def test_managed_fields_are_not_copied(self, engine):
        submitted = [{
            "id": 1, "title": "Home", "menu": 99, "order_index": 12,
            "created_at": "2024-01-01T00:00:00",
        }]

        plan = engine.plan(1, [stored(1)], submitted)

        assert plan.updates[0].data == {"title": "Home"}


class TestReconciliationApply:
    """Test applying plans to the store"""

    @pytest.fixture
    def engine(self, store, population_resolver):
        return ReconciliationEngine(store, population_resolver)

    @pytest.mark.asyncio
    async def test_reconcile_update_scenario(self, engine, menu_service, main_menu):
        menu = await menu_service.get_menu(main_menu["id"])
        titles = {item["title"]: item["id"] for item in menu["items"]}

        items = await engine.reconcile(
            menu["id"],
            menu["items"],
            [{"id": titles["Home"], "title": "Start"}, {"title": "Blog", "url": "/blog"}],
        )

        assert sorted(item["title"] for item in items) == ["Blog", "Start"]
        start = next(item for item in items if item["title"] == "Start")
        assert start["id"] == titles["Home"]
        assert start["url"] == "/"

    @pytest.mark.asyncio
    async def test_reconcile_final_ids_match_submission(self, engine, menu_service, main_menu):
        menu = await menu_service.get_menu(main_menu["id"])
        keep = [item["id"] for item in menu["items"] if item["title"] != "Home"]

        # Home is removed so About, its child, goes with it.
        items = await engine.reconcile(menu["id"], menu["items"], [{"id": item_id} for item_id in keep])

        remaining = {item["title"] for item in items}
        assert remaining == {"Contact"}

    @pytest.mark.asyncio
    async def test_new_children_link_to_new_parents(self, engine, menu_service, main_menu):
        menu = await menu_service.get_menu(main_menu["id"])
        previous = menu["items"]

        items = await engine.reconcile(
            menu["id"],
            previous,
            [{"id": item["id"]} for item in previous] + [
                {"title": "Docs child", "parent": {"id": "tmp-docs"}},
                {"id": "tmp-docs", "title": "Docs"},
            ],
        )

        by_title = {item["title"]: item for item in items}
        assert by_title["Docs child"]["parent"] == {"id": by_title["Docs"]["id"]}

    @pytest.mark.asyncio
    async def test_failed_upsert_rolls_back_deletions(self, engine, menu_service, main_menu, store):
        menu = await menu_service.get_menu(main_menu["id"])

        with patch.object(SQLAlchemyRepository, "create", side_effect=RuntimeError("store down")):
            with pytest.raises(RuntimeError):
                await engine.reconcile(menu["id"], menu["items"], [{"title": "Replacement"}])

        assert await store.query("menu-item").count({"menu": menu["id"]}) == 3

    @pytest.mark.asyncio
    async def test_delete_all_removes_every_item(self, engine, main_menu, store):
        deleted = await engine.delete_all(main_menu["id"])

        assert deleted == 3
        assert await store.query("menu-item").count({"menu": main_menu["id"]}) == 0
