from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .services.authorization import Principal


# Dependency for FastAPI routes
def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_services(request: Request):
    return request.app.state.services


def get_current_principal(
    request: Request, db: Session = Depends(get_db)
) -> Optional[Principal]:
    """Resolve the caller once per request; None when unauthenticated"""
    provider = request.app.state.services.identity
    return provider.resolve(db, request.headers.get(provider.header_name))
