from typing import Optional

from fastapi import Request, UploadFile

from bandcatalog.store import CatalogStore


def get_store(request: Request) -> CatalogStore:
    return request.app.state.store


def has_file(upload: Optional[UploadFile]) -> bool:
    """True when the client actually attached a file to the part."""
    return upload is not None and bool(upload.filename)
