import re
from pathlib import Path

import pytest

from plates.exceptions import LocalReadMiss, LocalWriteFailed
from plates.local_cache import LocalBlobCache


def test_write_and_read_canonical_file(cache):
    path = cache.write(b"image-bytes", ".jpg")
    assert Path(path).parent == cache.root
    assert re.fullmatch(r"\d+_[0-9a-f-]{36}\.jpg", Path(path).name)
    assert cache.read(path) == b"image-bytes"
    assert cache.size(path) == len(b"image-bytes")


def test_cache_copies_live_in_their_own_folder(cache):
    path = cache.write_cache(b"fetched", "png")
    assert Path(path).parent == cache.cache_dir
    assert path.endswith(".png")
    assert cache.read(path) == b"fetched"


def test_no_temp_files_left_behind(cache):
    cache.write(b"x")
    assert not list(cache.root.glob("*.tmp"))


def test_read_missing_or_empty_pointer_is_a_miss(cache, tmp_path):
    with pytest.raises(LocalReadMiss):
        cache.read(tmp_path / "nope.jpg")
    with pytest.raises(LocalReadMiss):
        cache.read(None)


def test_delete_missing_file_is_not_an_error(cache):
    path = cache.write(b"x")
    assert cache.delete(path) is True
    assert cache.delete(path) is False
    assert cache.delete(None) is False
    assert cache.size(path) == 0


def test_write_failure_raises_local_write_failed(tmp_path):
    cache = LocalBlobCache(tmp_path / "docs")
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory")
    cache.root = blocker
    with pytest.raises(LocalWriteFailed):
        cache.write(b"data")
