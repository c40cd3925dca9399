"""
Common mixins for multi-tenant models
"""
from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.sql import func


class TenantMixin:
    """Mixin for multi-tenant models that adds tenant_id and ensures tenant isolation"""

    tenant_id = Column(Uuid, nullable=False, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
