import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from main import create_app

GIF_BYTES = b"GIF89a\x01\x00\x01\x00\x00\x00\x00;"
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


def write_badge(directory: pathlib.Path, name: str) -> pathlib.Path:
    path = directory / name
    path.write_bytes(PNG_BYTES if name.lower().endswith(".png") else GIF_BYTES)
    return path


@pytest.fixture
def badge_dir(tmp_path):
    directory = tmp_path / "badges"
    directory.mkdir()
    for name in ("a.gif", "b.png", "c.GIF"):
        write_badge(directory, name)
    return directory


@pytest.fixture
def app(badge_dir):
    return create_app(badges_dir=str(badge_dir))


@pytest.fixture
def client(app):
    return app.test_client()
