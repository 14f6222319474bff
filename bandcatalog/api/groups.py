import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse

from bandcatalog.api.dependencies import get_store, has_file
from bandcatalog.api.schemas import GroupCover, GroupCoverUploaded
from bandcatalog.store import CatalogStore, MissingFieldError, require_name
from bandcatalog.utils import build_url

router = APIRouter(tags=['groups'])


@router.post('/uploadGroupCover', response_model=GroupCoverUploaded)
def upload_group_cover(
    request: Request,
    groupName: Optional[str] = Form(None),
    icon: Optional[UploadFile] = File(None),
    store: CatalogStore = Depends(get_store),
):
    if not groupName or not has_file(icon):
        raise MissingFieldError('groupName and icon are required')
    group = require_name(groupName, 'groupName')
    with store.staging() as staging:
        staged = staging.stage(icon.file, icon.filename, icon.content_type, role='icon')
        filename = store.upload_group_cover(group, staged)
    return {'url': build_url(request, group, filename)}


@router.get('/groupCover/{groupName}', response_model=GroupCover)
def group_cover(groupName: str, request: Request, store: CatalogStore = Depends(get_store)):
    group = require_name(groupName, 'groupName')
    cover = store.group_cover(group)
    return {'coverUrl': build_url(request, group, cover)}


@router.get('/groupCover/{groupName}/file')
def group_cover_file(groupName: str, store: CatalogStore = Depends(get_store)):
    """Stream the cover image itself instead of returning its URL."""
    group = require_name(groupName, 'groupName')
    cover = store.group_cover(group)
    meta = store.read_metadata(store.group_dir(group)).get('cover', {})
    media_type = meta.get('contentType') if meta.get('filename') == cover else None
    return FileResponse(
        os.path.join(store.group_dir(group), cover),
        media_type=media_type,
        headers={'Cache-Control': 'no-cache'},
    )
