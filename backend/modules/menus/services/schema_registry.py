# backend/modules/menus/services/schema_registry.py

from typing import Dict, Optional, Protocol, Type

from sqlalchemy import Boolean, DateTime, Float, Integer, JSON, String, Text, inspect

from ..schemas.menu_schemas import FieldMeta, ModelSchema


class SchemaRegistry(Protocol):
    """Read-only access to the attribute types of registered models"""

    def get_model(self, uid: str) -> Optional[ModelSchema]:
        ...

    def attributes_of(self, uid: str) -> Dict[str, FieldMeta]:
        ...


_COLUMN_TYPES = (
    (Boolean, "boolean"),
    (Integer, "integer"),
    (Float, "float"),
    (DateTime, "datetime"),
    (Text, "text"),
    (String, "string"),
    (JSON, "json"),
)


def _column_type(column) -> str:
    if "type" in column.info:
        return column.info["type"]
    for sa_type, name in _COLUMN_TYPES:
        if isinstance(column.type, sa_type):
            return name
    return "string"


class SQLAlchemySchemaRegistry:
    """Schema registry derived from SQLAlchemy mappers.

    Relationships are reported as ``relation`` unless tagged with
    ``info={"type": "media"}``; attributes tagged ``info={"private": True}``
    are internal and never expanded by population. Foreign key columns that
    back a relationship are folded into that relationship.
    """

    def __init__(self, models: Dict[str, Type]):
        self._models = dict(models)
        self._uids = {model: uid for uid, model in self._models.items()}
        self._schemas: Dict[str, ModelSchema] = {
            uid: self._build_schema(uid, model) for uid, model in self._models.items()
        }

    def _build_schema(self, uid: str, model: Type) -> ModelSchema:
        mapper = inspect(model)
        attributes: Dict[str, FieldMeta] = {}

        relationship_columns = set()
        for rel in mapper.relationships:
            relationship_columns.update(col.key for col in rel.local_columns if col.foreign_keys)

        for prop in mapper.column_attrs:
            column = prop.columns[0]
            if column.key in relationship_columns:
                continue
            attributes[prop.key] = FieldMeta(
                type=_column_type(column),
                private=bool(column.info.get("private", False)),
            )

        for rel in mapper.relationships:
            attributes[rel.key] = FieldMeta(
                type=rel.info.get("type", "relation"),
                target=self.uid_of(rel.mapper.class_),
                private=bool(rel.info.get("private", False)),
            )

        primary_key = mapper.primary_key[0].key if mapper.primary_key else "id"
        return ModelSchema(uid=uid, primary_key=primary_key, attributes=attributes)

    def get_model(self, uid: Optional[str]) -> Optional[ModelSchema]:
        if uid is None:
            return None
        return self._schemas.get(uid)

    def attributes_of(self, uid: str) -> Dict[str, FieldMeta]:
        schema = self.get_model(uid)
        return dict(schema.attributes) if schema else {}

    def uid_of(self, model: Type) -> Optional[str]:
        return self._uids.get(model)

    def models(self) -> Dict[str, Type]:
        return dict(self._models)


def build_menu_schema_registry() -> SQLAlchemySchemaRegistry:
    """Registry for the models the menus module knows about."""
    from ..constants import UID_MEDIA, UID_MENU, UID_MENU_ITEM, UID_PAGE
    from ..models.menu_models import MediaFile, Menu, MenuItem, Page

    return SQLAlchemySchemaRegistry({
        UID_MENU: Menu,
        UID_MENU_ITEM: MenuItem,
        UID_PAGE: Page,
        UID_MEDIA: MediaFile,
    })
