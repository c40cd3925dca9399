from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from typing import Annotated
from uuid import UUID
from app.database.database import get_db


def get_tenant_id(request: Request) -> UUID:
    """Tenant resuelto por TenantMiddleware a partir del header X-Company-ID"""
    tenant_id = getattr(request.state, "tenant_id", None)
    if tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-Company-ID header"
        )
    return tenant_id


db_dependency = Annotated[Session, Depends(get_db)]

tenant_dependency = Annotated[UUID, Depends(get_tenant_id)]
