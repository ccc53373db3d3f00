# backend/modules/menus/routes/menu_routes.py

from typing import Any, Dict, Optional
import re

from fastapi import APIRouter, Body, Depends, Query, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.exceptions import NotFoundError, ValidationError
from ..schemas.menu_schemas import (
    AvailabilityResponse, DeleteResponse, MenuCreate, MenuCreateRequest, MenuListResponse, MenuUpdate
)
from ..services.menu_service import MenuService, create_menu_service

router = APIRouter(prefix="/menus", tags=["Menus"])

_FILTER_KEY = re.compile(r"^filters\[(?P<field>[^\]]+)\]$")


async def get_menu_service(db: AsyncSession = Depends(get_db)) -> MenuService:
    return create_menu_service(db)


def _read_params(request: Request) -> Dict[str, Any]:
    """Query string -> service params (`nested`, `populate`, `filters[x]`, paging, sort)"""
    params: Dict[str, Any] = {}
    filters: Dict[str, Any] = {}

    for key, value in request.query_params.multi_items():
        match = _FILTER_KEY.match(key)
        if match:
            filters[match.group("field")] = value
        elif key == "populate":
            params.setdefault("populate", []).extend(
                path.strip() for path in value.split(",") if path.strip()
            )
        else:
            params[key] = value

    if filters:
        params["filters"] = filters
    return params


def _validate(schema, data: Dict[str, Any]):
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(str(e))


@router.get("/config")
async def get_config(service: MenuService = Depends(get_menu_service)):
    """Menu item layouts and menu schemas for admin UIs"""
    return service.get_config()


@router.get("/check-availability", response_model=AvailabilityResponse)
async def check_availability(
    slug: str = Query(..., min_length=1),
    id: Optional[int] = Query(None, description="Menu to exclude from the check"),
    service: MenuService = Depends(get_menu_service),
):
    """Check whether a slug is still free"""
    return {"available": await service.check_availability(slug, id)}


@router.get("/relations/{target_field}")
async def find_relations(
    target_field: str,
    request: Request,
    service: MenuService = Depends(get_menu_service),
):
    """Entities that can be linked through a menu item relation field"""
    return await service.find_relations(target_field, _read_params(request))


@router.get("", response_model=MenuListResponse)
async def find_menus(request: Request, service: MenuService = Depends(get_menu_service)):
    """
    List menus

    Pass `nested` to receive items as a tree and `populate=items.parent`
    to add a parent summary to every node.
    """
    return await service.find(_read_params(request))


@router.get("/{menu_id}")
async def find_menu(
    menu_id: int,
    request: Request,
    service: MenuService = Depends(get_menu_service),
):
    """Get a menu by ID"""
    menu = await service.find_one(menu_id, _read_params(request))
    if menu is None:
        raise NotFoundError(f"Menu {menu_id} not found")
    return menu


@router.post("")
async def create_menu(
    body: MenuCreateRequest,
    service: MenuService = Depends(get_menu_service),
):
    """Create a menu, optionally with its items (cloning)"""
    data = body.data
    if not isinstance(data, dict):
        raise ValidationError('Missing "data" payload in the request body')

    return await service.create(_validate(MenuCreate, data))


@router.put("/{menu_id}")
async def update_menu(
    menu_id: int,
    body: Dict[str, Any] = Body(...),
    service: MenuService = Depends(get_menu_service),
):
    """Update a menu and reconcile its items"""
    if not body:
        raise ValidationError("Request body cannot be empty")

    return await service.update(menu_id, _validate(MenuUpdate, body))


@router.delete("/{menu_id}", response_model=DeleteResponse)
async def delete_menu(menu_id: int, service: MenuService = Depends(get_menu_service)):
    """Delete a menu and all of its items"""
    return await service.delete(menu_id)
