"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.db.database import get_session
from cardledger.models.context import UserContext
from cardledger.services.catalog import SqlCatalog

SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_user_context(
    x_user_id: Annotated[str | None, Header()] = None,
) -> UserContext:
    """User from the X-User-Id header, else the configured default user."""
    if x_user_id and x_user_id.strip():
        return UserContext(user_id=x_user_id.strip())
    return UserContext.default()


def get_catalog(session: SessionDep) -> SqlCatalog:
    """Catalog reader bound to the request session."""
    return SqlCatalog(session)


UserDep = Annotated[UserContext, Depends(get_user_context)]
CatalogDep = Annotated[SqlCatalog, Depends(get_catalog)]
