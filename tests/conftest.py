import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from bandcatalog.store import CatalogStore, StagedFile


@pytest.fixture
def store(tmp_path):
    catalog = CatalogStore(str(tmp_path / "static" / "groups"), str(tmp_path / "tmp"))
    catalog.init_dirs()
    return catalog


@pytest.fixture
def staged_file(tmp_path):
    """Factory writing ``content`` to a scratch file and returning it as staged."""
    scratch = tmp_path / "scratch"
    counter = iter(range(1_000_000))

    def make(filename, content=b"data", content_type=None):
        directory = scratch / str(next(counter))
        directory.mkdir(parents=True)
        path = directory / filename
        path.write_bytes(content)
        return StagedFile(str(path), filename, content_type)

    return make
