import shutil
import tempfile
from pathlib import Path

import pytest

from helpers import FakeClock, FakeLauncher


@pytest.fixture
def channel_dir():
    # Unix socket paths must stay short, pytest's tmp_path can be too long.
    path = Path(tempfile.mkdtemp(prefix="tt-"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def launcher():
    return FakeLauncher()
