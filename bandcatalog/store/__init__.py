"""
bandcatalog.store
=================

Filesystem-backed catalog of groups, albums and standalone tracks.

There is no database: the directory tree under the catalog root *is* the
catalog, and this module owns the convention that maps entities onto it::

    <root>/<group>/cover.<ext>
    <root>/<group>/Albums/<album>/cover.<ext>   + audio files
    <root>/<group>/Tracks/<track>/cover.<ext>   + one audio file

Each entity directory may also hold a ``.catalog.json`` sidecar recording
which file is the cover (and, for standalone tracks, which file is the
audio) together with its extension and content type.  Readers trust the
sidecar first and fall back to the filename conventions for directories
written before sidecars existed.

Uploads go through a per-request :class:`Staging` directory and are
committed by a :class:`Batch`, which moves every staged file into place
or none of them.
"""

import json
import logging
import mimetypes
import os
import shutil
import tempfile
from contextlib import contextmanager
from typing import NamedTuple

from bandcatalog.config import GROUPS_DIR, MAX_UPLOAD_SIZE, TMP_DIR
from bandcatalog.utils import is_audio_file, is_cover_file, is_safe_segment, sanitize_name, split_ext

logger = logging.getLogger(__name__)

ALBUMS = 'Albums'
TRACKS = 'Tracks'
METADATA_FILENAME = '.catalog.json'

_COPY_CHUNK = 1024 * 1024


#############################
# Errors
#############################


class CatalogError(Exception):
    """Base class for failures reported back to the client."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingFieldError(CatalogError):
    status_code = 400


class InvalidNameError(CatalogError):
    status_code = 400


class NotFoundError(CatalogError):
    status_code = 404


class ConflictError(CatalogError):
    status_code = 409


class PayloadTooLargeError(CatalogError):
    status_code = 413


def require_name(value: str | None, field: str) -> str:
    """Return ``value`` sanitized, raising if it is absent or unsafe."""
    if value is None or not str(value).strip():
        raise MissingFieldError(f'{field} is required')
    name = sanitize_name(value)
    if name is None:
        raise InvalidNameError(f'Invalid {field}')
    return name


#############################
# Staging and commit
#############################


class StagedFile(NamedTuple):
    path: str
    filename: str
    content_type: str | None


class Staging:
    """Holding area for the files of a single upload request."""

    def __init__(self, directory: str, max_size: int = MAX_UPLOAD_SIZE):
        self.directory = directory
        self.max_size = max_size

    def stage(self, fileobj, filename: str | None, content_type: str | None = None, role: str = 'file') -> StagedFile:
        """Copy ``fileobj`` into the staging area under its original name."""
        name = require_name(filename, 'filename')
        if name == METADATA_FILENAME:
            raise InvalidNameError('Invalid filename')
        role_dir = os.path.join(self.directory, role)
        os.makedirs(role_dir, exist_ok=True)
        path = os.path.join(role_dir, name)
        written = 0
        with open(path, 'wb') as out:
            while True:
                chunk = fileobj.read(_COPY_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_size:
                    raise PayloadTooLargeError(f'File too large: {name}')
                out.write(chunk)
        if not content_type or content_type == 'application/octet-stream':
            content_type = mimetypes.guess_type(name)[0] or content_type
        return StagedFile(path, name, content_type)


class Batch:
    """A set of file moves applied all-or-nothing.

    Directories created while committing are remembered so that a rollback
    leaves the catalog as it was.  Files overwritten by a move are not
    restored.
    """

    def __init__(self):
        self._moves: list[tuple[str, str]] = []
        self._moved: list[str] = []
        self._created_dirs: list[str] = []

    def add(self, src: str, dest: str) -> None:
        self._moves.append((src, dest))

    def claim_directory(self, path: str) -> None:
        """Create ``path`` exclusively, raising ``FileExistsError`` if present."""
        self._makedirs(os.path.dirname(path))
        os.mkdir(path)
        self._created_dirs.append(path)

    def _makedirs(self, path: str) -> None:
        missing = []
        while path and not os.path.isdir(path):
            missing.append(path)
            parent = os.path.dirname(path)
            if parent == path:
                break
            path = parent
        for directory in reversed(missing):
            try:
                os.mkdir(directory)
            except FileExistsError:
                continue
            self._created_dirs.append(directory)

    def commit(self) -> None:
        try:
            for src, dest in self._moves:
                self._makedirs(os.path.dirname(dest))
                shutil.move(src, dest)
                self._moved.append(dest)
        except OSError:
            logger.error(
                "Upload batch failed after %d of %d files, rolling back",
                len(self._moved), len(self._moves),
            )
            self.rollback()
            raise

    def rollback(self) -> None:
        for dest in reversed(self._moved):
            try:
                os.remove(dest)
            except OSError as e:
                logger.warning("Failed to remove %s during rollback", dest, exc_info=e)
        self._moved.clear()
        for directory in reversed(self._created_dirs):
            try:
                os.rmdir(directory)
            except OSError as e:
                logger.warning("Failed to remove directory %s during rollback", directory, exc_info=e)
        self._created_dirs.clear()


#############################
# Catalog store
#############################


class CatalogStore:
    """Maps groups, albums and tracks onto the catalog directory tree."""

    def __init__(self, groups_dir: str = GROUPS_DIR, tmp_dir: str = TMP_DIR, max_upload_size: int = MAX_UPLOAD_SIZE):
        self.groups_dir = os.path.abspath(groups_dir)
        self.tmp_dir = os.path.abspath(tmp_dir)
        self.max_upload_size = max_upload_size

    def init_dirs(self) -> None:
        os.makedirs(self.groups_dir, exist_ok=True)
        os.makedirs(self.tmp_dir, exist_ok=True)

    # Path resolver ----------------------------------------------------

    def _resolve(self, *segments: str) -> str:
        for segment in segments:
            if not is_safe_segment(segment):
                raise InvalidNameError(f'Invalid name: {segment!r}')
        path = os.path.abspath(os.path.join(self.groups_dir, *segments))
        if os.path.commonpath([path, self.groups_dir]) != self.groups_dir:
            raise InvalidNameError('Path escapes the catalog root')
        return path

    def group_dir(self, group: str) -> str:
        return self._resolve(group)

    def album_dir(self, group: str, album: str) -> str:
        return self._resolve(group, ALBUMS, album)

    def track_dir(self, group: str, track: str) -> str:
        return self._resolve(group, TRACKS, track)

    # Directory helpers ------------------------------------------------

    @staticmethod
    def list_files(directory: str) -> list[str] | None:
        """Sorted names of regular files in ``directory`` or ``None`` if absent."""
        try:
            with os.scandir(directory) as it:
                return sorted(entry.name for entry in it if entry.is_file())
        except (FileNotFoundError, NotADirectoryError):
            return None

    @staticmethod
    def list_subdirs(directory: str) -> list[str] | None:
        try:
            with os.scandir(directory) as it:
                return sorted(entry.name for entry in it if entry.is_dir())
        except (FileNotFoundError, NotADirectoryError):
            return None

    # Metadata ---------------------------------------------------------

    @staticmethod
    def read_metadata(directory: str) -> dict:
        path = os.path.join(directory, METADATA_FILENAME)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable metadata %s", path, exc_info=e)
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def write_metadata(directory: str, metadata: dict) -> None:
        """Replace the sidecar of ``directory`` atomically."""
        fd, tmp_path = tempfile.mkstemp(prefix=METADATA_FILENAME, dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(metadata, f, indent=2, sort_keys=True)
            os.replace(tmp_path, os.path.join(directory, METADATA_FILENAME))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def update_metadata(self, directory: str, **entries: dict) -> None:
        metadata = self.read_metadata(directory)
        metadata.update(entries)
        self.write_metadata(directory, metadata)

    @staticmethod
    def file_entry(filename: str, content_type: str | None = None) -> dict:
        ext = split_ext(filename)[1]
        return {
            'filename': filename,
            'extension': ext,
            'contentType': content_type or mimetypes.guess_type(filename)[0],
        }

    def find_cover(self, directory: str, files: list[str] | None = None) -> str | None:
        if files is None:
            files = self.list_files(directory) or []
        recorded = self.read_metadata(directory).get('cover', {}).get('filename')
        if recorded and recorded in files:
            return recorded
        return next((f for f in files if is_cover_file(f)), None)

    @staticmethod
    def match_audio(files: list[str], name: str) -> str | None:
        """First audio file whose base name equals ``name`` (case-insensitive)."""
        wanted = name.lower()
        for f in files:
            if is_audio_file(f) and split_ext(f)[0].lower() == wanted:
                return f
        return None

    def find_track_audio(self, directory: str, track: str, files: list[str] | None = None) -> str | None:
        if files is None:
            files = self.list_files(directory) or []
        recorded = self.read_metadata(directory).get('audio', {}).get('filename')
        if recorded and recorded in files:
            return recorded
        return self.match_audio(files, track)

    # Listing ----------------------------------------------------------

    def group_cover(self, group: str) -> str:
        group = require_name(group, 'groupName')
        files = self.list_files(self.group_dir(group))
        if files is None:
            raise NotFoundError('Group folder not found')
        cover = self.find_cover(self.group_dir(group), files)
        if not cover:
            raise NotFoundError('Cover image not found')
        return cover

    def album_covers(self, group: str) -> list[dict]:
        group = require_name(group, 'groupName')
        albums_dir = os.path.join(self.group_dir(group), ALBUMS)
        result = []
        for album in self.list_subdirs(albums_dir) or []:
            cover = self.find_cover(os.path.join(albums_dir, album))
            if cover:
                result.append({'albumTitle': album, 'cover': cover})
        return result

    def album_tracks(self, group: str, album: str) -> dict:
        group = require_name(group, 'groupName')
        album = require_name(album, 'albumName')
        directory = self.album_dir(group, album)
        files = self.list_files(directory) or []
        return {
            'albumName': album,
            'cover': self.find_cover(directory, files),
            'tracks': [
                {'trackName': split_ext(f)[0], 'filename': f}
                for f in files if is_audio_file(f)
            ],
        }

    def standalone_tracks(self, group: str, name: str | None = None) -> list[dict]:
        """Standalone tracks of ``group`` having an audio file.

        With ``name`` only that track directory is considered.
        """
        group = require_name(group, 'groupName')
        tracks_dir = os.path.join(self.group_dir(group), TRACKS)
        if name is not None:
            name = require_name(name, 'albumName')
            names = [name] if os.path.isdir(self.track_dir(group, name)) else []
        else:
            # Names come straight from disk and are used as they are.
            names = self.list_subdirs(tracks_dir) or []
        result = []
        for track in names:
            directory = os.path.join(tracks_dir, track)
            files = self.list_files(directory) or []
            audio = self.find_track_audio(directory, track, files)
            if not audio:
                continue
            result.append({
                'trackName': track,
                'cover': self.find_cover(directory, files),
                'audio': audio,
            })
        return result

    def all_album_tracks(self, group: str) -> list[dict]:
        group = require_name(group, 'groupName')
        albums_dir = os.path.join(self.group_dir(group), ALBUMS)
        albums = self.list_subdirs(albums_dir)
        if albums is None:
            raise NotFoundError('Albums not found')
        result = []
        for album in albums:
            directory = os.path.join(albums_dir, album)
            files = self.list_files(directory) or []
            cover = self.find_cover(directory, files)
            for f in files:
                if is_audio_file(f):
                    result.append({
                        'trackName': split_ext(f)[0],
                        'cover': cover,
                        'audio': f,
                        'albumName': album,
                    })
        return result

    def find_track(self, group: str, track: str, album: str | None = None) -> dict:
        """Locate ``track`` and return its section, container, cover and audio.

        Without ``album`` the standalone track of that name wins, then albums
        are searched in name order.
        """
        group = require_name(group, 'groupName')
        track = require_name(track, 'trackName')
        if album:
            album = require_name(album, 'albumName')
            directory = self.album_dir(group, album)
            files = self.list_files(directory) or []
            audio = self.match_audio(files, track)
            if not audio:
                raise NotFoundError('Track not found in album')
            return {'section': ALBUMS, 'container': album, 'cover': self.find_cover(directory, files), 'audio': audio}

        directory = self.track_dir(group, track)
        files = self.list_files(directory)
        if files is not None:
            audio = self.find_track_audio(directory, track, files)
            if audio:
                return {'section': TRACKS, 'container': track, 'cover': self.find_cover(directory, files), 'audio': audio}

        albums_dir = os.path.join(self.group_dir(group), ALBUMS)
        for album_name in self.list_subdirs(albums_dir) or []:
            directory = os.path.join(albums_dir, album_name)
            files = self.list_files(directory) or []
            audio = self.match_audio(files, track)
            if audio:
                return {'section': ALBUMS, 'container': album_name, 'cover': self.find_cover(directory, files), 'audio': audio}
        raise NotFoundError('Track not found')

    # Delete -----------------------------------------------------------

    @staticmethod
    def _remove_tree(path: str) -> bool:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return False
        return True

    def delete_album(self, group: str, album: str) -> bool:
        group = require_name(group, 'groupName')
        album = require_name(album, 'albumName')
        removed = self._remove_tree(self.album_dir(group, album))
        logger.info("Delete album %s/%s (existed=%s)", group, album, removed)
        return removed

    def delete_track(self, group: str, track: str) -> bool:
        group = require_name(group, 'groupName')
        track = require_name(track, 'trackName')
        removed = self._remove_tree(self.track_dir(group, track))
        logger.info("Delete track %s/%s (existed=%s)", group, track, removed)
        return removed

    def delete_album_track(self, group: str, album: str, track: str) -> str:
        """Remove one audio file from an album, leaving its siblings alone."""
        group = require_name(group, 'groupName')
        album = require_name(album, 'albumName')
        track = require_name(track, 'trackName')
        directory = self.album_dir(group, album)
        files = self.list_files(directory)
        if files is None:
            raise NotFoundError('Album not found')
        target = next((f for f in files if split_ext(f)[0] == track and f != METADATA_FILENAME and not is_cover_file(f)), None)
        if target is None:
            raise NotFoundError('Track file not found in album')
        try:
            os.remove(os.path.join(directory, target))
        except FileNotFoundError:
            raise NotFoundError('Track file not found in album') from None
        logger.info("Deleted track file %s from album %s/%s", target, group, album)
        return target

    # Upload -----------------------------------------------------------

    @contextmanager
    def staging(self):
        """Yield a :class:`Staging` area private to the current request."""
        os.makedirs(self.tmp_dir, exist_ok=True)
        directory = tempfile.mkdtemp(prefix='upload-', dir=self.tmp_dir)
        try:
            yield Staging(directory, self.max_upload_size)
        finally:
            try:
                shutil.rmtree(directory)
            except OSError as e:
                logger.warning("Failed to remove staging directory %s", directory, exc_info=e)

    @staticmethod
    def cover_filename(staged: StagedFile) -> str:
        ext = split_ext(staged.filename)[1]
        if not ext and staged.content_type:
            ext = mimetypes.guess_extension(staged.content_type) or ''
        return f'cover{ext or ".bin"}'

    def _clear_old_covers(self, directory: str, keep: str) -> None:
        for f in self.list_files(directory) or []:
            if is_cover_file(f) and f != keep:
                try:
                    os.remove(os.path.join(directory, f))
                except OSError as e:
                    logger.warning("Failed to remove stale cover %s", f, exc_info=e)

    def _finish(self, batch: Batch, directory: str, **metadata: dict) -> None:
        """Record metadata after ``batch`` committed, undoing the batch on failure."""
        try:
            self.update_metadata(directory, **metadata)
        except OSError:
            batch.rollback()
            raise
        if 'cover' in metadata:
            self._clear_old_covers(directory, metadata['cover']['filename'])

    def upload_group_cover(self, group: str, cover: StagedFile) -> str:
        group = require_name(group, 'groupName')
        directory = self.group_dir(group)
        filename = self.cover_filename(cover)
        batch = Batch()
        batch.add(cover.path, os.path.join(directory, filename))
        batch.commit()
        self._finish(batch, directory, cover=self.file_entry(filename, cover.content_type))
        logger.info("Uploaded cover %s for group %s", filename, group)
        return filename

    def upload_album(self, group: str, album: str, cover: StagedFile, tracks: list[StagedFile]) -> tuple[str, list[str]]:
        group = require_name(group, 'groupName')
        album = require_name(album, 'title')
        directory = self.album_dir(group, album)
        cover_name = self.cover_filename(cover)
        if any(is_cover_file(staged.filename) for staged in tracks):
            raise InvalidNameError('Track file names must not start with "cover."')
        names = [staged.filename for staged in tracks]
        if len(set(names)) != len(names):
            raise InvalidNameError('Duplicate track file names in upload')
        batch = Batch()
        batch.add(cover.path, os.path.join(directory, cover_name))
        for staged in tracks:
            batch.add(staged.path, os.path.join(directory, staged.filename))
        batch.commit()
        self._finish(batch, directory, cover=self.file_entry(cover_name, cover.content_type))
        logger.info("Uploaded album %s/%s with %d tracks", group, album, len(tracks))
        return cover_name, [staged.filename for staged in tracks]

    def add_album_track(self, group: str, album: str, track: StagedFile) -> str:
        group = require_name(group, 'groupName')
        album = require_name(album, 'albumName')
        directory = self.album_dir(group, album)
        if not os.path.isdir(directory):
            raise NotFoundError('Album not found')
        if is_cover_file(track.filename):
            raise InvalidNameError('Track file names must not start with "cover."')
        batch = Batch()
        batch.add(track.path, os.path.join(directory, track.filename))
        batch.commit()
        logger.info("Added track %s to album %s/%s", track.filename, group, album)
        return track.filename

    def upload_track(self, group: str, track: str, cover: StagedFile, audio: StagedFile) -> tuple[str, str]:
        group = require_name(group, 'groupName')
        track = require_name(track, 'trackName')
        directory = self.track_dir(group, track)
        cover_name = self.cover_filename(cover)
        if is_cover_file(audio.filename):
            raise InvalidNameError('Track file names must not start with "cover."')
        batch = Batch()
        try:
            batch.claim_directory(directory)
        except FileExistsError:
            raise ConflictError('Track with this name already exists') from None
        batch.add(cover.path, os.path.join(directory, cover_name))
        batch.add(audio.path, os.path.join(directory, audio.filename))
        batch.commit()
        self._finish(
            batch,
            directory,
            cover=self.file_entry(cover_name, cover.content_type),
            audio=self.file_entry(audio.filename, audio.content_type),
        )
        logger.info("Uploaded track %s/%s", group, track)
        return cover_name, audio.filename
