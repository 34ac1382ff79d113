from typing import Optional

from fastapi import APIRouter, Depends, Query

from auth import require_admin_key
from database import DocumentStore
from deps import get_store

router = APIRouter(prefix="/firestore", tags=["Admin"], dependencies=[Depends(require_admin_key)])


@router.get("/collections")
def list_collections(
    parent_path: Optional[str] = Query(default=None, alias="parentPath"),
    store: DocumentStore = Depends(get_store),
):
    names = store.list_collections(parent_path)
    return {
        "success": True,
        "collections": names,
        "count": len(names),
        "parentPath": parent_path or "(root)",
    }
