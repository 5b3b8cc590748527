from __future__ import annotations
from typing import (
    TYPE_CHECKING,
    Protocol,
)

import hashlib
import io
import logging
import os
import pathlib
import tarfile

import requests

from cleo.io.null_io import NullIO
from cleo.ui import progress_bar

from recipekit import errors
from . import recipe as mpkg_recipe

if TYPE_CHECKING:
    from cleo.io import io as cleo_io


logger = logging.getLogger(__name__)

FETCH_TIMEOUT = float(os.environ.get("RECIPEKIT_FETCH_TIMEOUT", "60"))


class Fetcher(Protocol):
    def fetch(self, url: str) -> bytes: ...


class Extractor(Protocol):
    def extract(
        self,
        archive: bytes,
        dest: pathlib.Path,
        *,
        strip_components: int = 1,
    ) -> pathlib.Path: ...


class HashVerification:
    """Compare the digest of an artifact against an expected checksum.

    The algorithm is inferred from *checksum* unless given explicitly
    as an ``algo:hex`` pair.
    """

    def __init__(self, checksum: str) -> None:
        self.algorithm, self.hash_value = mpkg_recipe.parse_checksum(checksum)

    def hexdigest(self, data: bytes) -> str:
        hashfunc = hashlib.new(self.algorithm)
        hashfunc.update(data)
        return hashfunc.hexdigest()

    def verify(self, data: bytes) -> None:
        actual = self.hexdigest(data)
        if actual != self.hash_value:
            raise errors.ChecksumMismatch(
                self.algorithm, self.hash_value, actual
            )


def verify(data: bytes, checksum: str) -> None:
    """Raise :class:`~recipekit.errors.ChecksumMismatch` unless the
    digest of *data* equals *checksum* (case-insensitive)."""
    HashVerification(checksum).verify(data)


class HttpFetcher:
    def __init__(
        self,
        io: cleo_io.IO | None = None,
        *,
        timeout: float = FETCH_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self._io = io if io is not None else NullIO()
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()

    def fetch(self, url: str) -> bytes:
        try:
            req = self._session.get(url, stream=True, timeout=self._timeout)
        except requests.RequestException as e:
            raise errors.FetchError(url, str(e)) from e

        if req.status_code < 200 or req.status_code >= 300:
            raise errors.FetchError(url, f"HTTP status {req.status_code}")

        length = int(req.headers.get("content-length", 0))
        progress = progress_bar.ProgressBar(self._io, max=length)
        self._io.write_line(f"Downloading <info>{url}</>")
        logger.info(f"downloading {url}")
        progress.start(length)

        buf = io.BytesIO()
        try:
            for chunk in req.iter_content(chunk_size=4096):
                if chunk:
                    progress.advance(len(chunk))
                    buf.write(chunk)
        except requests.RequestException as e:
            raise errors.FetchError(url, str(e)) from e
        finally:
            progress.finish()
            self._io.write_line("")
            req.close()

        return buf.getvalue()


class TarballExtractor:
    def extract(
        self,
        archive: bytes,
        dest: pathlib.Path,
        *,
        strip_components: int = 1,
    ) -> pathlib.Path:
        try:
            tf = tarfile.open(fileobj=io.BytesIO(archive), mode="r:*")
        except tarfile.TarError as e:
            raise errors.FetchError(
                str(dest), f"not a tar archive: {e}"
            ) from e

        if hasattr(tarfile, "tar_filter"):
            tf.extraction_filter = tarfile.tar_filter

        try:
            dest.mkdir(parents=True, exist_ok=True)
            with tf:
                self._extract_members(tf, dest, strip_components)
        except (OSError, tarfile.TarError) as e:
            raise errors.FetchError(
                str(dest), f"cannot extract archive: {e}"
            ) from e

        return dest

    def _extract_members(
        self,
        tf: tarfile.TarFile,
        dest: pathlib.Path,
        strip_components: int,
    ) -> None:
        root = dest.resolve()
        for member in tf.getmembers():
            if strip_components:
                member_parts = pathlib.PurePosixPath(member.name).parts
                if len(member_parts) <= strip_components:
                    continue

                path = pathlib.PurePosixPath(
                    member_parts[strip_components]
                ).joinpath(*member_parts[strip_components + 1 :])
                member.name = str(path)
                if member.islnk():
                    link_parts = pathlib.PurePosixPath(
                        member.linkname
                    ).parts[strip_components:]
                    member.linkname = str(pathlib.PurePosixPath(*link_parts))

            target = (root / member.name).resolve()
            _ensure_inside(root, target, member.name, dest)

            if member.issym():
                # Symlink targets are relative to the link's own directory.
                link_target = target.parent / member.linkname
            elif member.islnk():
                link_target = root / member.linkname
            else:
                link_target = None

            if link_target is not None:
                _ensure_inside(
                    root,
                    pathlib.Path(os.path.normpath(link_target)),
                    f"{member.name} -> {member.linkname}",
                    dest,
                )

            tf.extract(member, path=dest)


def _ensure_inside(
    root: pathlib.Path,
    path: pathlib.Path,
    what: str,
    dest: pathlib.Path,
) -> None:
    if path != root and root not in path.parents:
        raise errors.FetchError(
            str(dest),
            f"archive member {what!r} escapes the destination directory",
        )
