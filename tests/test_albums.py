import os
import json
import urllib.parse

from test_api import start_test_server, stop_test_server, request, upload, url_path, group_dir


def upload_album(port, group="Band", title="First", cover=("art.png", b"cover"), tracks=None):
    tracks = tracks if tracks is not None else [("a.mp3", b"aaa"), ("b.mp3", b"bbb")]
    files = [("cover", cover[0], "image/png", cover[1])]
    files += [("tracks", name, "audio/mpeg", content) for name, content in tracks]
    return upload(port, "/uploadAlbum", {"groupName": group, "title": title}, files)


def test_album_round_trip(tmp_path):
    httpd, thread, port = start_test_server(tmp_path)
    try:
        status, _, body = upload_album(port)
        assert status == 200
        data = json.loads(body)
        assert urllib.parse.urlsplit(data["coverUrl"]).path == "/groups/Band/Albums/First/cover.png"
        assert len(data["tracksUrls"]) == 2

        status, _, body = request("GET", port, "/album-tracks/Band/First")
        assert status == 200
        album = json.loads(body)
        assert album["albumName"] == "First"
        assert urllib.parse.urlsplit(album["coverUrl"]).path.endswith("cover.png")
        assert {t["trackName"] for t in album["tracks"]} == {"a", "b"}

        audio = next(t for t in album["tracks"] if t["trackName"] == "a")
        status, _, body = request("GET", port, url_path(audio["audioUrl"]))
        assert status == 200 and body == b"aaa"
    finally:
        stop_test_server(httpd, thread)


def test_album_tracks_for_missing_album_is_empty(tmp_path):
    httpd, thread, port = start_test_server(tmp_path)
    try:
        status, _, body = request("GET", port, "/album-tracks/Band/Nothing")
        assert status == 200
        assert json.loads(body) == {"albumName": "Nothing", "coverUrl": None, "tracks": []}
    finally:
        stop_test_server(httpd, thread)


def test_upload_album_requires_all_parts(tmp_path):
    httpd, thread, port = start_test_server(tmp_path)
    try:
        status, _, _ = upload_album(port, tracks=[])
        assert status == 400
        status, _, _ = upload(port, "/uploadAlbum", {"groupName": "Band"})
        assert status == 400
        assert not group_dir(tmp_path, "Band").exists()
    finally:
        stop_test_server(httpd, thread)


def test_album_covers_lists_titles_and_skips_coverless(tmp_path):
    httpd, thread, port = start_test_server(tmp_path)
    try:
        upload_album(port, title="First")
        upload_album(port, title="Second", cover=("x.jpg", b"jpg"))
        os.makedirs(group_dir(tmp_path, "Band") / "Albums" / "Bare")

        status, _, body = request("GET", port, "/albumCovers/Band")
        assert status == 200
        covers = json.loads(body)
        assert [c["albumTitle"] for c in covers] == ["First", "Second"]
        assert urllib.parse.urlsplit(covers[1]["coverUrl"]).path == "/groups/Band/Albums/Second/cover.jpg"

        status, _, body = request("GET", port, "/albumCovers/Unknown")
        assert status == 200 and json.loads(body) == []
    finally:
        stop_test_server(httpd, thread)


def test_reuploading_album_cover_replaces_stale_one(tmp_path):
    httpd, thread, port = start_test_server(tmp_path)
    try:
        upload_album(port, cover=("art.png", b"png"))
        upload_album(port, cover=("art.jpg", b"jpg"), tracks=[("c.mp3", b"ccc")])
        album = group_dir(tmp_path, "Band") / "Albums" / "First"
        assert sorted(f for f in os.listdir(album) if f.startswith("cover.")) == ["cover.jpg"]
        assert {"a.mp3", "b.mp3", "c.mp3"} <= set(os.listdir(album))
    finally:
        stop_test_server(httpd, thread)


def test_delete_album_is_idempotent(tmp_path):
    httpd, thread, port = start_test_server(tmp_path)
    try:
        upload_album(port)
        before = sorted(os.listdir(group_dir(tmp_path, "Band") / "Albums"))

        status, _, body = request("DELETE", port, "/deleteAlbum/Band/Missing")
        assert status == 200
        assert "message" in json.loads(body)
        assert sorted(os.listdir(group_dir(tmp_path, "Band") / "Albums")) == before

        status, _, _ = request("DELETE", port, "/deleteAlbum/Band/First")
        assert status == 200
        assert not (group_dir(tmp_path, "Band") / "Albums" / "First").exists()
    finally:
        stop_test_server(httpd, thread)


def test_add_track_to_album(tmp_path):
    httpd, thread, port = start_test_server(tmp_path)
    try:
        status, _, _ = upload(port, "/addTrack/Band/First", files=[("track", "new.mp3", "audio/mpeg", b"n")])
        assert status == 404

        upload_album(port)
        status, _, body = upload(port, "/addTrack/Band/First", files=[("track", "new.mp3", "audio/mpeg", b"n")])
        assert status == 200
        track_url = json.loads(body)["trackUrl"]
        assert urllib.parse.urlsplit(track_url).path == "/groups/Band/Albums/First/new.mp3"
        assert (group_dir(tmp_path, "Band") / "Albums" / "First" / "new.mp3").read_bytes() == b"n"

        status, _, _ = upload(port, "/addTrack/Band/First")
        assert status == 400
    finally:
        stop_test_server(httpd, thread)


def test_delete_single_track_from_album(tmp_path):
    httpd, thread, port = start_test_server(tmp_path)
    try:
        upload_album(port)
        album = group_dir(tmp_path, "Band") / "Albums" / "First"

        status, _, _ = request("DELETE", port, "/deleteTrack/Band/First/a")
        assert status == 200
        files = set(os.listdir(album))
        assert "a.mp3" not in files
        assert {"b.mp3", "cover.png"} <= files

        status, _, _ = request("DELETE", port, "/deleteTrack/Band/First/a")
        assert status == 404
        status, _, _ = request("DELETE", port, "/deleteTrack/Band/Nope/b")
        assert status == 404
    finally:
        stop_test_server(httpd, thread)


def test_upload_album_with_duplicate_track_names(tmp_path):
    httpd, thread, port = start_test_server(tmp_path)
    try:
        status, _, body = upload_album(port, tracks=[("a.mp3", b"1"), ("a.mp3", b"2")])
        assert status == 400
        assert "error" in json.loads(body)
        assert not (group_dir(tmp_path, "Band") / "Albums" / "First").exists()
        assert os.listdir(tmp_path / "tmp") == []
    finally:
        stop_test_server(httpd, thread)
