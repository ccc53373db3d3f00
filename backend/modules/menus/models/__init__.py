# backend/modules/menus/models/__init__.py

from .menu_models import MediaFile, Page, Menu, MenuItem

__all__ = ["MediaFile", "Page", "Menu", "MenuItem"]
