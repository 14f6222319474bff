from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from bandcatalog.api.dependencies import get_store, has_file
from bandcatalog.api.schemas import AlbumCover, AlbumTracks, AlbumUploaded, Message, TrackAdded
from bandcatalog.store import ALBUMS, CatalogStore, MissingFieldError, require_name
from bandcatalog.utils import build_url

router = APIRouter(tags=['albums'])


@router.get('/albumCovers/{groupName}', response_model=list[AlbumCover])
def album_covers(groupName: str, request: Request, store: CatalogStore = Depends(get_store)):
    group = require_name(groupName, 'groupName')
    return [
        {
            'albumTitle': entry['albumTitle'],
            'coverUrl': build_url(request, group, ALBUMS, entry['albumTitle'], entry['cover']),
        }
        for entry in store.album_covers(group)
    ]


@router.post('/uploadAlbum', response_model=AlbumUploaded)
def upload_album(
    request: Request,
    groupName: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    cover: Optional[UploadFile] = File(None),
    tracks: Optional[list[UploadFile]] = File(None),
    store: CatalogStore = Depends(get_store),
):
    tracks = [t for t in tracks or [] if has_file(t)]
    if not groupName or not title or not has_file(cover) or not tracks:
        raise MissingFieldError('groupName, title, cover and tracks are required')
    group = require_name(groupName, 'groupName')
    album = require_name(title, 'title')
    with store.staging() as staging:
        staged_cover = staging.stage(cover.file, cover.filename, cover.content_type, role='cover')
        staged_tracks = [
            staging.stage(t.file, t.filename, t.content_type, role='tracks') for t in tracks
        ]
        cover_name, track_names = store.upload_album(group, album, staged_cover, staged_tracks)
    return {
        'message': f"Album '{album}' uploaded",
        'coverUrl': build_url(request, group, ALBUMS, album, cover_name),
        'tracksUrls': [build_url(request, group, ALBUMS, album, name) for name in track_names],
    }


@router.get('/album-tracks/{groupName}/{albumName}', response_model=AlbumTracks)
def album_tracks(groupName: str, albumName: str, request: Request, store: CatalogStore = Depends(get_store)):
    group = require_name(groupName, 'groupName')
    album = store.album_tracks(group, albumName)
    name = album['albumName']
    return {
        'albumName': name,
        'coverUrl': build_url(request, group, ALBUMS, name, album['cover']) if album['cover'] else None,
        'tracks': [
            {
                'trackName': track['trackName'],
                'audioUrl': build_url(request, group, ALBUMS, name, track['filename']),
            }
            for track in album['tracks']
        ],
    }


@router.delete('/deleteAlbum/{groupName}/{albumName}', response_model=Message)
def delete_album(groupName: str, albumName: str, store: CatalogStore = Depends(get_store)):
    store.delete_album(groupName, albumName)
    return {'message': f"Album '{albumName}' deleted"}


@router.post('/addTrack/{groupName}/{albumName}', response_model=TrackAdded)
def add_track(
    groupName: str,
    albumName: str,
    request: Request,
    track: Optional[UploadFile] = File(None),
    store: CatalogStore = Depends(get_store),
):
    if not has_file(track):
        raise MissingFieldError('track file is required')
    group = require_name(groupName, 'groupName')
    album = require_name(albumName, 'albumName')
    with store.staging() as staging:
        staged = staging.stage(track.file, track.filename, track.content_type, role='track')
        filename = store.add_album_track(group, album, staged)
    return {'trackUrl': build_url(request, group, ALBUMS, album, filename)}


@router.delete('/deleteTrack/{groupName}/{albumName}/{trackName}', response_model=Message)
def delete_album_track(groupName: str, albumName: str, trackName: str, store: CatalogStore = Depends(get_store)):
    store.delete_album_track(groupName, albumName, trackName)
    return {'message': f"Track '{trackName}' deleted from album '{albumName}'"}
