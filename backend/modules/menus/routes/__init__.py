# backend/modules/menus/routes/__init__.py

from .menu_routes import router

__all__ = ["router"]
