from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from bandcatalog.api.dependencies import get_store, has_file
from bandcatalog.api.schemas import AlbumTrackEntry, Message, Track, TrackInfo, TrackUploaded
from bandcatalog.store import ALBUMS, TRACKS, CatalogStore, MissingFieldError, require_name
from bandcatalog.utils import build_url

router = APIRouter(tags=['tracks'])


@router.post('/uploadTrack', response_model=TrackUploaded)
def upload_track(
    request: Request,
    groupName: Optional[str] = Form(None),
    trackName: Optional[str] = Form(None),
    cover: Optional[UploadFile] = File(None),
    audio: Optional[UploadFile] = File(None),
    store: CatalogStore = Depends(get_store),
):
    if not groupName or not trackName:
        raise MissingFieldError('groupName and trackName are required')
    if not has_file(cover) or not has_file(audio):
        raise MissingFieldError('cover and audio files are required')
    group = require_name(groupName, 'groupName')
    track = require_name(trackName, 'trackName')
    with store.staging() as staging:
        staged_cover = staging.stage(cover.file, cover.filename, cover.content_type, role='cover')
        staged_audio = staging.stage(audio.file, audio.filename, audio.content_type, role='audio')
        cover_name, audio_name = store.upload_track(group, track, staged_cover, staged_audio)
    return {
        'message': f"Track '{track}' uploaded",
        'coverUrl': build_url(request, group, TRACKS, track, cover_name),
        'audioUrl': build_url(request, group, TRACKS, track, audio_name),
    }


@router.get('/allTracks/{groupName}', response_model=list[AlbumTrackEntry])
def all_tracks(groupName: str, request: Request, store: CatalogStore = Depends(get_store)):
    group = require_name(groupName, 'groupName')
    return [
        {
            'trackName': entry['trackName'],
            'coverUrl': build_url(request, group, ALBUMS, entry['albumName'], entry['cover']) if entry['cover'] else None,
            'audioUrl': build_url(request, group, ALBUMS, entry['albumName'], entry['audio']),
            'albumName': entry['albumName'],
        }
        for entry in store.all_album_tracks(group)
    ]


@router.get('/tracks/{groupName}', response_model=list[Track])
def tracks(groupName: str, request: Request, albumName: Optional[str] = None, store: CatalogStore = Depends(get_store)):
    group = require_name(groupName, 'groupName')
    return [
        {
            'trackName': entry['trackName'],
            'coverUrl': build_url(request, group, TRACKS, entry['trackName'], entry['cover']) if entry['cover'] else None,
            'audioUrl': build_url(request, group, TRACKS, entry['trackName'], entry['audio']),
        }
        for entry in store.standalone_tracks(group, albumName or None)
    ]


@router.delete('/deleteTrack/{groupName}/{trackName}', response_model=Message)
def delete_track(groupName: str, trackName: str, store: CatalogStore = Depends(get_store)):
    store.delete_track(groupName, trackName)
    return {'message': f"Track '{trackName}' deleted from group '{groupName}'"}


@router.get('/trackInfo/{groupName}/{trackName}', response_model=TrackInfo)
def track_info(
    groupName: str,
    trackName: str,
    request: Request,
    albumName: Optional[str] = None,
    store: CatalogStore = Depends(get_store),
):
    group = require_name(groupName, 'groupName')
    found = store.find_track(group, trackName, albumName or None)
    parts = (group, found['section'], found['container'])
    return {
        'coverUrl': build_url(request, *parts, found['cover']) if found['cover'] else None,
        'audioUrl': build_url(request, *parts, found['audio']),
    }
