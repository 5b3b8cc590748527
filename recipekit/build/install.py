from __future__ import annotations
from typing import Iterable, Sequence

import logging
import os
import pathlib
import shutil
import stat

from recipekit import errors
from recipekit.packages import recipe as mpkg_recipe


logger = logging.getLogger(__name__)


class InstallStager:
    """Materialize the runtime layout of a package under its prefix."""

    def ensure_directory(self, path: pathlib.Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise errors.InstallError(
                path, f"cannot create directory: {e}"
            ) from e
        logger.info(f"mkdir {path}")

    def place_artifact(
        self, source: pathlib.Path, dest: pathlib.Path
    ) -> None:
        """Copy *source* (a file or a directory tree) to *dest*.

        Executable bits of *source* are preserved.
        """
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            if source.is_dir() and not source.is_symlink():
                shutil.copytree(
                    source, dest, symlinks=True, dirs_exist_ok=True
                )
            else:
                shutil.copyfile(source, dest, follow_symlinks=False)
                if not dest.is_symlink():
                    _copy_exec_bits(source, dest)
        except OSError as e:
            raise errors.InstallError(
                dest, f"failed copying {source} -> {dest}: {e}"
            ) from e
        logger.info(f"cp {source} -> {dest}")

    def touch(self, path: pathlib.Path) -> None:
        try:
            path.touch()
        except OSError as e:
            raise errors.InstallError(path, f"cannot touch: {e}") from e

    def install(
        self,
        source_root: pathlib.Path,
        install_prefix: pathlib.Path,
        entry: mpkg_recipe.InstallEntry,
    ) -> list[pathlib.Path]:
        """Place every file matching *entry* under *install_prefix*."""
        if entry.touch and not any(source_root.glob(entry.source)):
            self.touch(source_root / entry.source)

        matches = sorted(source_root.glob(entry.source))
        if not matches:
            raise errors.InstallError(
                source_root / entry.source, "no files match install pattern"
            )

        destdir = install_prefix / entry.destination
        self.ensure_directory(destdir)

        placed = []
        for src in matches:
            dest = destdir / src.name
            self.place_artifact(src, dest)
            placed.append(dest)

        return placed


def _copy_exec_bits(source: pathlib.Path, dest: pathlib.Path) -> None:
    stat_from = source.lstat()
    stat_to = dest.lstat()
    new_mode = stat_to.st_mode
    for mode in (stat.S_IXUSR, stat.S_IXGRP, stat.S_IXOTH):
        if stat_from.st_mode & mode:
            new_mode |= mode
    if new_mode != stat_to.st_mode:
        dest.chmod(new_mode)


class CleanupPolicy:
    """Decide which install prefix paths a cleanup pass must not touch.

    *protected* paths are relative to the install prefix.  A candidate
    is skipped if it is a protected path, lies inside one, or contains
    one (removing it recursively would take the protected path along).
    """

    def __init__(self, protected: Iterable[str] = ()) -> None:
        self.protected = tuple(pathlib.PurePath(p) for p in protected)

    @classmethod
    def for_recipe(cls, recipe: mpkg_recipe.Recipe) -> CleanupPolicy:
        return cls(recipe.get_protected_paths())

    def should_skip_clean(
        self,
        path: str | os.PathLike[str],
        install_prefix: str | os.PathLike[str],
    ) -> bool:
        prefix = pathlib.Path(os.path.abspath(install_prefix))
        candidate = pathlib.Path(os.path.abspath(path))
        for rel in self.protected:
            keep = prefix / rel
            if (
                candidate == keep
                or keep in candidate.parents
                or (
                    candidate in keep.parents
                    and (candidate == prefix or prefix in candidate.parents)
                )
            ):
                return True
        return False


class Cleaner:
    def __init__(self, policy: CleanupPolicy) -> None:
        self.policy = policy

    def get_candidates(
        self,
        install_prefix: pathlib.Path,
        patterns: Sequence[str] = (),
    ) -> list[pathlib.Path]:
        """Collect paths to clean: *patterns* matches plus empty directories.

        Directories are listed children first.
        """
        candidates: list[pathlib.Path] = []
        for pattern in patterns:
            candidates.extend(sorted(install_prefix.glob(pattern)))

        empty: set[pathlib.Path] = set()
        for root, dirs, files in os.walk(install_prefix, topdown=False):
            root_p = pathlib.Path(root)
            if root_p == install_prefix:
                continue
            if not files and all(root_p / d in empty for d in dirs):
                empty.add(root_p)
                if root_p not in candidates:
                    candidates.append(root_p)

        return candidates

    def clean(
        self,
        paths: Iterable[pathlib.Path],
        install_prefix: pathlib.Path,
    ) -> list[pathlib.Path]:
        """Remove *paths*, except those the policy protects.

        Returns the paths that were removed.
        """
        removed = []
        for path in paths:
            if self.policy.should_skip_clean(path, install_prefix):
                logger.info(f"Skipping {path}: protected from cleanup")
                continue
            if not path.exists() and not path.is_symlink():
                continue
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
            except OSError as e:
                raise errors.InstallError(path, f"cannot remove: {e}") from e
            logger.info(f"Removing {path}")
            removed.append(path)

        return removed
