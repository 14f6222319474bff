import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from bandcatalog.config import GROUPS_DIR
from bandcatalog.store import ALBUMS, METADATA_FILENAME, TRACKS, CatalogStore
from bandcatalog.utils import is_audio_file


def _backfill(store: CatalogStore, directory: str, track: str | None = None) -> bool:
    if os.path.exists(os.path.join(directory, METADATA_FILENAME)):
        return False
    files = store.list_files(directory) or []
    metadata = {}
    cover = store.find_cover(directory, files)
    if cover:
        metadata['cover'] = store.file_entry(cover)
    if track is not None:
        audio = store.find_track_audio(directory, track, files)
        if audio is None:
            # Older uploads kept the client's filename; a lone audio file is the track.
            candidates = [f for f in files if is_audio_file(f)]
            if len(candidates) == 1:
                audio = candidates[0]
        if audio:
            metadata['audio'] = store.file_entry(audio)
    if not metadata:
        return False
    store.write_metadata(directory, metadata)
    return True


def migrate(groups_dir: str | None = None) -> int:
    """Write ``.catalog.json`` for every group, album and track lacking one.
    Returns the number of directories updated."""
    store = CatalogStore(groups_dir or GROUPS_DIR)
    updated = 0
    for group in store.list_subdirs(store.groups_dir) or []:
        group_dir = os.path.join(store.groups_dir, group)
        updated += _backfill(store, group_dir)
        for album in store.list_subdirs(os.path.join(group_dir, ALBUMS)) or []:
            updated += _backfill(store, os.path.join(group_dir, ALBUMS, album))
        for track in store.list_subdirs(os.path.join(group_dir, TRACKS)) or []:
            updated += _backfill(store, os.path.join(group_dir, TRACKS, track), track)
    return updated


if __name__ == '__main__':
    count = migrate(sys.argv[1] if len(sys.argv) > 1 else None)
    if count:
        print(f'Migration completed: wrote metadata for {count} directories.')
    else:
        print('No migration necessary.')
