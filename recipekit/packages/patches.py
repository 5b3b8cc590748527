from __future__ import annotations
from typing import (
    Iterator,
    Sequence,
)

import contextlib
import logging
import os
import pathlib
import shlex
import tempfile
import urllib.parse

from recipekit import errors
from recipekit import tools

from . import recipe as mpkg_recipe
from . import sources as mpkg_sources


logger = logging.getLogger(__name__)

PATCH = os.environ.get("RECIPEKIT_PATCH", "patch")


class PatchApplier:
    """Apply unified diffs to a source tree, strictly in declared order.

    Application is not transactional: when patch *k* fails, patches
    ``1..k-1`` stay applied and the tree must be considered unusable.
    """

    def __init__(
        self,
        fetcher: mpkg_sources.Fetcher,
        *,
        patch_cmd: str = PATCH,
    ) -> None:
        self._fetcher = fetcher
        self._patch_cmd = shlex.split(patch_cmd)

    def apply(
        self,
        source_root: pathlib.Path,
        patches: Sequence[mpkg_recipe.PatchRef],
        *,
        patches_dir: pathlib.Path | None = None,
    ) -> None:
        if not patches:
            return

        with self._patches_dir(patches_dir) as pdir:
            series = []
            for i, ref in enumerate(patches, start=1):
                patch = self._fetch(i, ref)
                filename = f"{i:04d}-{_patch_name(ref.url)}"
                series.append(filename)
                self._write(i, ref, pdir, filename, patch, series)
                self._apply_one(i, ref, source_root, pdir / filename)
                logger.info(f"applied patch #{i} {ref.url}")

    def _write(
        self,
        index: int,
        ref: mpkg_recipe.PatchRef,
        pdir: pathlib.Path,
        filename: str,
        patch: bytes,
        series: Sequence[str],
    ) -> None:
        try:
            pdir.mkdir(parents=True, exist_ok=True)
            with open(pdir / filename, "wb") as f:
                f.write(patch)
            with open(pdir / "series", "w") as f:
                print("\n".join(series), file=f)
        except OSError as e:
            raise errors.PatchApplyError(
                index, ref.url, f"cannot write patch file: {e}"
            ) from e

    def _fetch(self, index: int, ref: mpkg_recipe.PatchRef) -> bytes:
        try:
            patch = self._fetcher.fetch(ref.url)
        except errors.FetchError as e:
            raise errors.PatchFetchError(index, ref.url, e.reason) from e

        if ref.checksum is not None:
            try:
                mpkg_sources.verify(patch, ref.checksum)
            except errors.ChecksumMismatch as e:
                raise errors.PatchChecksumError(index, ref.url, str(e)) from e

        return patch

    def _apply_one(
        self,
        index: int,
        ref: mpkg_recipe.PatchRef,
        source_root: pathlib.Path,
        patch_file: pathlib.Path,
    ) -> None:
        try:
            tools.cmd(
                *self._patch_cmd,
                "-p1",
                "--forward",
                "--batch",
                "-i",
                patch_file,
                cwd=source_root,
            )
        except errors.ExecError as e:
            raise errors.PatchApplyError(index, ref.url, str(e)) from e

    @contextlib.contextmanager
    def _patches_dir(
        self, patches_dir: pathlib.Path | None
    ) -> Iterator[pathlib.Path]:
        if patches_dir is not None:
            yield patches_dir
        else:
            with tempfile.TemporaryDirectory(prefix="recipekit.") as t:
                yield pathlib.Path(t)


def _patch_name(url: str) -> str:
    name = pathlib.PurePosixPath(urllib.parse.urlparse(url).path).name
    return name or "patch"
