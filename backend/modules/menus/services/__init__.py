# backend/modules/menus/services/__init__.py

from .entity_store import EntityStore, Repository, SQLAlchemyEntityStore
from .schema_registry import SchemaRegistry, SQLAlchemySchemaRegistry, build_menu_schema_registry
from .population_service import PopulationResolver
from .reconciliation_service import ReconciliationEngine, ReconciliationPlan
from .menu_service import MenuService, create_menu_service

__all__ = [
    "EntityStore",
    "Repository",
    "SQLAlchemyEntityStore",
    "SchemaRegistry",
    "SQLAlchemySchemaRegistry",
    "build_menu_schema_registry",
    "PopulationResolver",
    "ReconciliationEngine",
    "ReconciliationPlan",
    "MenuService",
    "create_menu_service",
]
