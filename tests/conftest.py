import os

import pytest

from qloud.services.file_system import FileSystem
from qloud.services.path_codec import PathCodec


@pytest.fixture
def root(tmp_path):
    data = tmp_path / "data"
    data.mkdir()
    return data.resolve()


@pytest.fixture
def codec(root):
    return PathCodec(root)


@pytest.fixture
def file_system(root):
    return FileSystem(root)


def touch(path, content=b"", mtime=None):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path
