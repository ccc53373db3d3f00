# backend/modules/menus/__init__.py

"""Navigation menus: nested menu items, layout-driven population and item reconciliation."""
