from __future__ import annotations
from typing import Mapping

import hashlib
import io
import pathlib
import shutil
import tarfile

import pytest

from recipekit import errors


requires_patch = pytest.mark.skipif(
    shutil.which("patch") is None, reason="patch(1) is not installed"
)


def make_tarball(
    files: Mapping[str, bytes | str],
    root: str = "pkg-1.0",
    mode: str = "w:gz",
    symlinks: Mapping[str, str] | None = None,
) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode=mode) as tf:
        for name, content in files.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            info = tarfile.TarInfo(f"{root}/{name}" if root else name)
            info.size = len(content)
            info.mode = 0o644
            tf.addfile(info, io.BytesIO(content))
        for name, target in (symlinks or {}).items():
            info = tarfile.TarInfo(f"{root}/{name}" if root else name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tf.addfile(info)
    return buf.getvalue()


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FakeFetcher:
    def __init__(self, content: Mapping[str, bytes] | None = None) -> None:
        self.content = dict(content or {})
        self.calls: list[str] = []

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        try:
            return self.content[url]
        except KeyError:
            raise errors.FetchError(url, "HTTP status 404") from None


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def source_tree(tmp_path: pathlib.Path) -> pathlib.Path:
    root = tmp_path / "source"
    (root / "include").mkdir(parents=True)
    (root / "include" / "config.h").write_text(
        '/* config */\n#  define HACKDIR "/usr/games/lib/nethackdir"\n'
    )
    (root / "hello.txt").write_text("hello\n")
    return root
