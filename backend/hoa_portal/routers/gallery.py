from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from ..dependencies import get_db, get_services
from ..schemas.gallery import GalleryEntry
from ..services import gallery

router = APIRouter(prefix="/gallery", tags=["Gallery"])


@router.get("", response_model=List[GalleryEntry])
def get_gallery(category: Optional[str] = None, db: Session = Depends(get_db)):
    """Get approved photos, optionally filtered by category"""
    return gallery.list_approved(db, category=category)


@router.get("/search", response_model=List[GalleryEntry])
def search_gallery(
    q: str = "",
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Free-text search over approved photos; never fails"""
    return gallery.search(db, services.indexer, q, category=category)
