from typing import Optional

from pydantic import BaseModel


class Message(BaseModel):
    message: str


class GroupCoverUploaded(BaseModel):
    url: str


class GroupCover(BaseModel):
    coverUrl: str


class AlbumCover(BaseModel):
    albumTitle: str
    coverUrl: str


class AlbumUploaded(BaseModel):
    message: str
    coverUrl: str
    tracksUrls: list[str]


class AlbumTrack(BaseModel):
    trackName: str
    audioUrl: str


class AlbumTracks(BaseModel):
    albumName: str
    coverUrl: Optional[str] = None
    tracks: list[AlbumTrack]


class TrackAdded(BaseModel):
    trackUrl: str


class TrackUploaded(BaseModel):
    message: str
    coverUrl: str
    audioUrl: str


class Track(BaseModel):
    trackName: str
    coverUrl: Optional[str] = None
    audioUrl: str


class AlbumTrackEntry(Track):
    albumName: str


class TrackInfo(BaseModel):
    coverUrl: Optional[str] = None
    audioUrl: str
