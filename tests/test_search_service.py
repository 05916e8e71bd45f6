import os
import threading
from unittest.mock import patch

import pytest

from qloud.services.search_service import SearchService

from .conftest import touch


@pytest.fixture
def searcher(codec):
    return SearchService(codec)


@pytest.fixture
def library(root):
    touch(root / "movies" / "Inception (2010)" / "inception.mkv")
    touch(root / "movies" / "Interstellar.mp4")
    touch(root / "music" / "album" / "track01.flac")
    touch(root / "music" / "cover.jpg")
    touch(root / "docs" / "notes.txt")
    touch(root / "docs" / "manual.pdf")
    return root


class TestWalkByKind:
    def test_yields_only_matching_files(self, searcher, library):
        found = sorted(p.name for p in searcher.walk_by_kind(library, "video"))
        assert found == ["Interstellar.mp4", "inception.mkv"]

    def test_never_yields_directories(self, searcher, library):
        assert all(p.is_file() for p in searcher.walk_by_kind(library, "audio"))

    def test_preview_kind(self, searcher, library):
        assert [p.name for p in searcher.walk_by_kind(library, "preview")] == ["manual.pdf"]

    def test_other_kind_yields_nothing(self, searcher, library):
        assert list(searcher.walk_by_kind(library, "other")) == []
        assert list(searcher.walk_by_kind(library, "bogus")) == []

    def test_is_lazy(self, searcher, library):
        walk = searcher.walk_by_kind(library, "video")
        first = next(walk)
        assert first.suffix in (".mkv", ".mp4")

    def test_restartable(self, searcher, library):
        first = sorted(searcher.walk_by_kind(library, "image"))
        second = sorted(searcher.walk_by_kind(library, "image"))
        assert first == second

    def test_skips_staging_directories(self, searcher, library):
        touch(library / "movies" / "__chunks__" / "abc" / "partial.mp4")
        assert "partial.mp4" not in [p.name for p in searcher.walk_by_kind(library, "video")]


class TestSearchByName:
    def test_case_insensitive_match(self, searcher, library):
        found = [p.name for p in searcher.search_by_name(library, "ince")]
        assert "Inception (2010)" in found
        assert "inception.mkv" in found

    def test_recurses_into_matched_directories(self, searcher, root):
        touch(root / "films" / "films-extra" / "films.txt")
        found = sorted(p.name for p in searcher.search_by_name(root, "films"))
        assert found == ["films", "films-extra", "films.txt"]

    def test_unreadable_directory_is_skipped(self, searcher, library):
        real_scandir = os.scandir

        def guarded_scandir(path):
            if str(path).endswith("music"):
                raise PermissionError(13, "Permission denied", str(path))
            return real_scandir(path)

        with patch("os.scandir", side_effect=guarded_scandir):
            found = [p.name for p in searcher.search_by_name(library, ".")]
        assert "notes.txt" in found
        assert "inception.mkv" in found
        assert "track01.flac" not in found
        assert "cover.jpg" not in found

    def test_missing_directory_yields_nothing(self, searcher, root):
        assert list(searcher.search_by_name(root / "missing", "x")) == []


class TestSearchAll:
    def test_hit_shape(self, searcher, codec, library):
        hits = searcher.search_all("INCEPTION")
        by_name = {h.name: h for h in hits}
        hit = by_name["Inception (2010)"]
        assert hit.path == "/movies/Inception (2010)"
        assert hit.encoded_path == codec.encode("/movies/Inception (2010)")

    def test_limit_stops_early(self, searcher, root):
        for i in range(25):
            touch(root / f"match{i:02d}.txt")
        assert len(searcher.search_all("match", limit=10)) == 10

    def test_empty_query(self, searcher, library):
        assert searcher.search_all("") == []

    def test_cancel_stops_walk(self, searcher, library):
        cancel = threading.Event()
        cancel.set()
        assert searcher.search_all("i", cancel=cancel) == []

    def test_cancel_mid_walk(self, searcher, root):
        for i in range(5):
            touch(root / f"dir{i}" / f"hit{i}.txt")
        cancel = threading.Event()
        walk = searcher.search_by_name(root, "hit", cancel)
        next(walk)
        cancel.set()
        assert list(walk) == []


class TestFindGlobalFiles:
    def test_gallery(self, searcher, codec, library):
        files = searcher.find_global_files("image")
        assert len(files) == 1
        assert files[0].name == "cover.jpg"
        assert files[0].path == "/music/cover.jpg"
        assert files[0].encoded_path == codec.encode("/music/cover.jpg")
        assert files[0].type == "image"
