# backend/modules/menus/constants.py

UID_MENU = "menu"
UID_MENU_ITEM = "menu-item"
UID_PAGE = "page"
UID_MEDIA = "media"

MENU_ITEM_LAYOUT = "menuItem"

# Fields copied from a submitted menu payload onto the menu record itself.
MENU_SCALAR_FIELDS = ("title", "slug")

# Keys on a submitted item that the reconciliation engine manages itself.
MENU_ITEM_MANAGED_FIELDS = (
    "id", "menu", "parent", "order_index", "children", "created_at", "updated_at",
)

TEMP_KEY_PREFIX = "tmp-"
