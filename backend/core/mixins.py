from sqlalchemy import Column, DateTime
from sqlalchemy.sql import func


class TimestampMixin:
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(),
                        onupdate=func.now(), nullable=False)


class PublishableMixin:
    """Draft/publish support: a null published_at means draft"""
    published_at = Column(DateTime, nullable=True)
