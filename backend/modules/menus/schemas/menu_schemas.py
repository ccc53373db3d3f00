# backend/modules/menus/schemas/menu_schemas.py

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Union


# Schema registry
class FieldMeta(BaseModel):
    """Type information for a single model attribute"""
    model_config = ConfigDict(frozen=True)

    type: str
    target: Optional[str] = None
    private: bool = False

    @property
    def is_relational(self) -> bool:
        return self.type in ("media", "relation")


class ModelSchema(BaseModel):
    """Attributes of a registered model, keyed by attribute name"""
    model_config = ConfigDict(frozen=True)

    uid: str
    primary_key: str = "id"
    attributes: Dict[str, FieldMeta] = {}


# Menu items
class ParentRef(BaseModel):
    id: Union[int, str]


class MenuItemInput(BaseModel):
    """Submitted menu item. Integer ids are existing items, anything else is new."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[int, str]] = None
    parent: Optional[Union[ParentRef, int, str]] = None
    title: Optional[str] = Field(None, max_length=255)
    url: Optional[str] = Field(None, max_length=500)
    target: Optional[str] = Field(None, max_length=20)
    children: Optional[List["MenuItemInput"]] = None


# Menus
class MenuCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255)
    items: List[MenuItemInput] = []


class MenuUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=255)
    items: Optional[List[MenuItemInput]] = None


class MenuCreateRequest(BaseModel):
    data: Optional[Any] = None


class Pagination(BaseModel):
    page: int
    page_size: int
    page_count: int
    total: int


class MenuListResponse(BaseModel):
    results: List[Dict[str, Any]]
    pagination: Pagination


class AvailabilityResponse(BaseModel):
    available: bool


class DeleteResponse(BaseModel):
    ok: bool


MenuItemInput.model_rebuild()
