# backend/modules/menus/schemas/__init__.py

from .menu_schemas import (
    FieldMeta, ModelSchema, ParentRef, MenuItemInput, MenuCreate, MenuUpdate,
    MenuCreateRequest, Pagination, MenuListResponse, AvailabilityResponse, DeleteResponse
)

__all__ = [
    "FieldMeta", "ModelSchema", "ParentRef", "MenuItemInput", "MenuCreate", "MenuUpdate",
    "MenuCreateRequest", "Pagination", "MenuListResponse", "AvailabilityResponse",
    "DeleteResponse",
]
