# backend/modules/menus/models/menu_models.py

from sqlalchemy import Column, Integer, String, ForeignKey, Text
from sqlalchemy.orm import relationship

from core.database import Base
from core.mixins import TimestampMixin, PublishableMixin


class MediaFile(Base, TimestampMixin):
    """Uploaded media (images, documents) referenced by media fields"""
    __tablename__ = "media_files"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    url = Column(String(500), nullable=False)
    mime = Column(String(100), nullable=True)
    alternative_text = Column(Text, nullable=True)

    def __repr__(self):
        return f"<MediaFile(id={self.id}, name='{self.name}')>"


class Page(Base, TimestampMixin, PublishableMixin):
    """Linkable content page, the target of the menu item `page` relation"""
    __tablename__ = "pages"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    cover_id = Column(Integer, ForeignKey("media_files.id"), nullable=True)

    cover = relationship("MediaFile", info={"type": "media"})

    def __repr__(self):
        return f"<Page(id={self.id}, slug='{self.slug}')>"


class Menu(Base, TimestampMixin, PublishableMixin):
    """Navigation menu owning an ordered tree of menu items"""
    __tablename__ = "menus"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)

    # Relationships
    items = relationship(
        "MenuItem",
        back_populates="menu",
        order_by=lambda: [MenuItem.order_index, MenuItem.id],
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Menu(id={self.id}, slug='{self.slug}')>"


class MenuItem(Base, TimestampMixin):
    """Single entry of a menu; items without a parent are roots of the tree"""
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    menu_id = Column(Integer, ForeignKey("menus.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("menu_items.id", ondelete="SET NULL"), nullable=True, index=True)
    order_index = Column(Integer, nullable=False, default=0)

    title = Column(String(255), nullable=False)
    url = Column(String(500), nullable=True)
    target = Column(String(20), nullable=True)  # _blank, _parent, _self, _top

    image_id = Column(Integer, ForeignKey("media_files.id"), nullable=True)
    page_id = Column(Integer, ForeignKey("pages.id"), nullable=True)

    # Relationships
    menu = relationship("Menu", back_populates="items", info={"private": True})
    parent = relationship(
        "MenuItem", remote_side=[id], back_populates="children", info={"private": True}
    )
    children = relationship(
        "MenuItem", back_populates="parent", passive_deletes=True, info={"private": True}
    )
    image = relationship("MediaFile", info={"type": "media"})
    page = relationship("Page")

    def __repr__(self):
        return f"<MenuItem(id={self.id}, menu_id={self.menu_id}, title='{self.title}')>"
