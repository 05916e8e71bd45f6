"""Tests for the FileSystem facade used by the HTTP layer."""

import hashlib
import os
import threading

import pytest

from qloud.core.exceptions import (ConfinementError, EntryNotFoundError,
                                   NotFileError)
from qloud.services.file_system import FileSystem

from .conftest import touch


class TestResolve:
    @pytest.mark.asyncio
    async def test_creates_missing_root(self, tmp_path):
        fs = FileSystem(tmp_path / "fresh")
        result = await fs.resolve("/")
        assert result.ok
        assert result.type == "directory"
        assert result.title == "Home"
        assert result.entries == []
        assert (tmp_path / "fresh").is_dir()

    @pytest.mark.asyncio
    async def test_directory(self, file_system, root):
        touch(root / "movies" / "a.mp4")
        result = await file_system.resolve("%2Fmovies")
        assert result.ok
        assert result.title == "movies"
        assert [e.name for e in result.entries] == ["a.mp4"]
        assert [b.name for b in result.breadcrumbs] == ["Home", "movies"]
        assert result.breadcrumbs[-1].active

    @pytest.mark.asyncio
    async def test_file_with_related_media(self, file_system, root):
        touch(root / "movies" / "a.mp4", b"aaaa")
        touch(root / "movies" / "b.mkv")
        touch(root / "music" / "song.mp3")
        result = await file_system.resolve("%2Fmovies%2Fa.mp4")

        assert result.ok
        assert result.type == "file"
        assert result.file_info.size == 4
        assert result.classification.type == "video"
        assert result.media_url == "/api/file?fs=%252Fmovies%252Fa.mp4"
        assert sorted(f.name for f in result.related_files) == ["a.mp4", "b.mkv"]

    @pytest.mark.asyncio
    async def test_other_file_has_no_related_media(self, file_system, root):
        touch(root / "notes.txt")
        touch(root / "a.mp4")
        result = await file_system.resolve("%2Fnotes.txt")
        assert result.ok
        assert result.classification.type == "other"
        assert result.related_files == []

    @pytest.mark.asyncio
    async def test_missing(self, file_system):
        result = await file_system.resolve("%2Fnowhere")
        assert not result.ok
        assert result.message

    @pytest.mark.asyncio
    async def test_traversal(self, file_system):
        result = await file_system.resolve("%2F..%2F..%2Fetc")
        assert not result.ok


    @pytest.mark.asyncio
    async def test_related_files_are_capped(self, root):
        for i in range(6):
            touch(root / f"clip{i}.mp4")
        fs = FileSystem(root, related_limit=3)
        result = await fs.resolve("%2Fclip0.mp4")
        assert len(result.related_files) == 3

    @pytest.mark.asyncio
    async def test_related_walk_stops_when_cancelled(self, file_system, root):
        touch(root / "a.mp4")
        touch(root / "b.mp4")
        cancel = threading.Event()
        cancel.set()
        result = await file_system.resolve("%2Fa.mp4", cancel=cancel)
        assert result.ok
        assert result.related_files == []

    @pytest.mark.asyncio
    async def test_media_url_quotes_awkward_names(self, file_system, root):
        touch(root / "a #1 100%.mp4")
        result = await file_system.resolve(file_system.codec.encode("/a #1 100%.mp4"))
        assert result.media_url == "/api/file?fs=%252Fa%2520%25231%2520100%2525.mp4"


class TestSymlinks:
    @pytest.fixture
    def outside(self, tmp_path):
        return touch(tmp_path / "outside" / "secret.txt", b"secret")

    @pytest.mark.asyncio
    async def test_link_leaving_root_is_not_streamed(self, file_system, root, outside):
        os.symlink(outside, root / "leak.txt")
        with pytest.raises(ConfinementError):
            await file_system.open_file("%2Fleak.txt")
        assert not (await file_system.resolve("%2Fleak.txt")).ok

    @pytest.mark.asyncio
    async def test_link_to_outside_directory_is_refused(self, file_system, root, outside):
        os.symlink(outside.parent, root / "elsewhere")
        assert not (await file_system.resolve("%2Felsewhere")).ok
        assert not (await file_system.list_subfolders("%2Felsewhere")).ok
        assert not (await file_system.upload_chunk("%2Felsewhere", "x.bin", 0, 1, b"x")).ok
        assert not (outside.parent / "x.bin").exists()

    @pytest.mark.asyncio
    async def test_listing_hides_links_leaving_root(self, file_system, root, outside):
        touch(root / "real.txt", b"r")
        os.symlink(outside, root / "leak.txt")
        os.symlink(outside.parent, root / "elsewhere")
        os.symlink(root / "real.txt", root / "alias.txt")

        listing = await file_system.resolve("/")
        assert sorted(e.name for e in listing.entries) == ["alias.txt", "real.txt"]
        assert (await file_system.list_subfolders("/")).folders == []

    @pytest.mark.asyncio
    async def test_link_inside_root_is_streamed(self, file_system, root):
        touch(root / "real.txt", b"r")
        os.symlink(root / "real.txt", root / "alias.txt")
        assert await file_system.open_file("%2Falias.txt") == root / "alias.txt"


class TestOpenFile:
    @pytest.mark.asyncio
    async def test_file(self, file_system, root):
        touch(root / "a.txt")
        assert await file_system.open_file("%2Fa.txt") == root / "a.txt"

    @pytest.mark.asyncio
    async def test_errors(self, file_system, root):
        (root / "dir").mkdir()
        with pytest.raises(EntryNotFoundError):
            await file_system.open_file("%2Fmissing")
        with pytest.raises(NotFileError):
            await file_system.open_file("%2Fdir")
        with pytest.raises(ConfinementError):
            await file_system.open_file("..%2Fsecret")


class TestListSubfolders:
    @pytest.mark.asyncio
    async def test_lists(self, file_system, root):
        (root / "movies" / "b").mkdir(parents=True)
        (root / "movies" / "A").mkdir()
        touch(root / "movies" / "file.txt")
        listing = await file_system.list_subfolders("%2Fmovies")
        assert listing.ok
        assert [f.name for f in listing.folders] == ["A", "b"]
        assert [f.name for f in listing.breadcrumbs] == ["Home", "movies"]
        assert listing.current.name == "movies"
        assert listing.current.encoded_path == "%2Fmovies"

    @pytest.mark.asyncio
    async def test_not_a_directory(self, file_system, root):
        touch(root / "file.txt")
        listing = await file_system.list_subfolders("%2Ffile.txt")
        assert not listing.ok


class TestSearch:
    @pytest.mark.asyncio
    async def test_empty_query(self, file_system, root):
        touch(root / "a.txt")
        assert await file_system.search("   ") == []

    @pytest.mark.asyncio
    async def test_limit(self, root):
        for i in range(5):
            touch(root / f"match{i}.txt")
        fs = FileSystem(root, search_limit=3)
        assert len(await fs.search("match")) == 3
        assert len(await fs.search("match", limit=10)) == 5

    @pytest.mark.asyncio
    async def test_cancelled(self, file_system, root):
        touch(root / "match.txt")
        cancel = threading.Event()
        cancel.set()
        assert await file_system.search("match", cancel=cancel) == []

    @pytest.mark.asyncio
    async def test_find_media(self, file_system, root):
        touch(root / "a" / "pic.JPG")
        touch(root / "b.mp3")
        media = await file_system.find_media("image")
        assert [(m.name, m.type) for m in media] == [("pic.JPG", "image")]
        assert await file_system.find_media("nonsense") == []


class TestMutations:
    @pytest.mark.asyncio
    async def test_create_folder(self, file_system, root):
        result = await file_system.create_folder("movies", "/")
        assert result.ok
        assert (root / "movies").is_dir()

    @pytest.mark.asyncio
    async def test_create_folder_errors(self, file_system):
        assert not (await file_system.create_folder("", "/")).ok
        assert not (await file_system.create_folder("x", "%2F..")).ok
        assert not (await file_system.create_folder("../x", "/")).ok

    @pytest.mark.asyncio
    async def test_delete_partial_failure(self, file_system, root):
        touch(root / "a.txt")
        result = await file_system.delete(["%2Fa.txt", "%2F..%2Fescape", "%2Fmissing"])
        assert result.ok
        assert result.message == "Deleted 1 of 3 items."
        assert [r.ok for r in result.results] == [False, True, False]
        assert len(result.succeeded) == 1
        assert not (root / "a.txt").exists()

    @pytest.mark.asyncio
    async def test_delete_all_failed(self, file_system):
        result = await file_system.delete("%2Fmissing")
        assert not result.ok
        assert len(result.failed) == 1

    @pytest.mark.asyncio
    async def test_delete_root_refused(self, file_system, root):
        touch(root / "keep.txt")
        result = await file_system.delete("%2F")
        assert not result.ok
        assert (root / "keep.txt").exists()

    @pytest.mark.asyncio
    async def test_move(self, file_system, root):
        touch(root / "a.txt")
        (root / "dest").mkdir()
        result = await file_system.move(["%2Fa.txt"], "%2Fdest")
        assert result.ok
        assert result.results[0].destination == "%2Fdest%2Fa.txt"
        assert (root / "dest" / "a.txt").exists()

    @pytest.mark.asyncio
    async def test_move_into_own_subtree_reports_copy(self, file_system, root):
        touch(root / "A" / "f.txt")
        (root / "A" / "sub").mkdir()
        result = await file_system.move("%2FA", "%2FA%2Fsub")
        assert result.ok
        assert result.results[0].copied
        assert "copied" in result.message
        assert (root / "A" / "sub" / "A" / "f.txt").exists()

    @pytest.mark.asyncio
    async def test_move_invalid_destination(self, file_system, root):
        touch(root / "a.txt")
        result = await file_system.move(["%2Fa.txt"], "%2F..%2F..")
        assert not result.ok
        assert result.results == []
        assert (root / "a.txt").exists()

    @pytest.mark.asyncio
    async def test_rename(self, file_system, root):
        touch(root / "dir" / "old.txt")
        result = await file_system.rename("old.txt", "new.txt", "%2Fdir")
        assert result.ok
        assert (root / "dir" / "new.txt").exists()

    @pytest.mark.asyncio
    async def test_rename_collision(self, file_system, root):
        touch(root / "a.txt", b"a")
        touch(root / "b.txt", b"b")
        result = await file_system.rename("a.txt", "b.txt", "/")
        assert not result.ok
        assert "already exists" in result.message
        assert (root / "a.txt").read_bytes() == b"a"
        assert (root / "b.txt").read_bytes() == b"b"


class TestUploads:
    @pytest.mark.asyncio
    async def test_upload_failure_is_reported(self, file_system):
        result = await file_system.upload_chunk("/", "a.bin", 5, 2, b"x")
        assert not result.ok
        assert result.status == "failed"

    @pytest.mark.asyncio
    async def test_upload_outside_root(self, file_system, root):
        result = await file_system.upload_chunk("%2F..", "a.bin", 0, 1, b"x")
        assert not result.ok
        assert not (root.parent / "a.bin").exists()

    @pytest.mark.asyncio
    async def test_session_management(self, file_system, root):
        waiting = await file_system.upload_chunk("/", "a.bin", 0, 2, b"x")
        assert waiting.status == "waiting"
        assert [s.session_id for s in file_system.active_uploads()] == [waiting.session_id]

        assert (await file_system.abandon_upload(waiting.session_id)).ok
        assert file_system.active_uploads() == []
        assert not (await file_system.abandon_upload(waiting.session_id)).ok

    @pytest.mark.asyncio
    async def test_cleanup_stale_uploads(self, file_system):
        waiting = await file_system.upload_chunk("/", "a.bin", 0, 2, b"x")
        file_system.uploads.sessions[waiting.session_id].updated_at -= 120
        assert await file_system.cleanup_stale_uploads(max_age=60) == 1
        assert file_system.active_uploads() == []


@pytest.mark.asyncio
async def test_browse_upload_and_search(file_system, root):
    codec = file_system.codec
    token = codec.encode("/movies/Inception (2010)")
    assert token == "%2Fmovies%2FInception%20(2010)"
    assert codec.decode(token).absolute == root / "movies" / "Inception (2010)"

    assert (await file_system.create_folder("movies/Inception (2010)", "/")).ok
    assert (await file_system.create_folder("uploads", "/")).ok

    chunks = [b"\x00\x01" * 100, b"middle" * 50, b"end"]
    receipts = []
    for index in [2, 0, 1]:
        receipts.append(await file_system.upload_chunk("%2Fuploads", "movie.mp4", index, 3, chunks[index]))
    assert [r.status for r in receipts] == ["waiting", "waiting", "complete"]
    assert receipts[-1].file_info.name == "movie.mp4"
    assert receipts[-1].file_info.size == sum(len(c) for c in chunks)

    uploaded = (root / "uploads" / "movie.mp4").read_bytes()
    assert hashlib.sha256(uploaded).digest() == hashlib.sha256(b"".join(chunks)).digest()

    listing = await file_system.resolve("%2Fuploads")
    assert [(e.name, e.icon) for e in listing.entries] == [("movie.mp4", "video")]

    hits = await file_system.search("ince")
    assert [h.path for h in hits] == ["/movies/Inception (2010)"]
    assert hits[0].encoded_path == token

    failed = await file_system.resolve("%2F..%2Foutside")
    assert not failed.ok
    assert failed.message
