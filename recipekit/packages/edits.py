from __future__ import annotations
from typing import Mapping, Sequence

import logging
import os
import pathlib

from recipekit import errors
from recipekit import tools

from . import recipe as mpkg_recipe


logger = logging.getLogger(__name__)


class SourceTextPatcher:
    """Literal find-and-replace edits on files of an extracted source tree.

    Matching is by exact text, never by regular expression.  Every
    occurrence of the pattern is replaced.  A pattern that is absent is
    an error: it usually means upstream changed and the edit is stale.
    """

    def apply_edits(
        self,
        source_root: pathlib.Path,
        edits: Sequence[mpkg_recipe.TextEdit],
        install_prefix: str | os.PathLike[str],
        *,
        variables: Mapping[str, str] | None = None,
    ) -> None:
        tpl_vars = {"prefix": str(install_prefix)}
        if variables:
            tpl_vars.update(variables)

        for edit in edits:
            self.apply_edit(source_root, edit, tpl_vars)

    def apply_edit(
        self,
        source_root: pathlib.Path,
        edit: mpkg_recipe.TextEdit,
        variables: Mapping[str, str],
    ) -> None:
        path = source_root / edit.path
        if not path.is_file():
            raise errors.EditTargetMissing(path, "file to edit does not exist")

        replacement = tools.format_template(edit.replacement, **variables)

        try:
            content = path.read_bytes()
        except OSError as e:
            raise errors.EditError(path, f"cannot read: {e}") from e

        match = edit.match.encode("utf-8")
        count = content.count(match)
        if not count:
            raise errors.EditPatternNotFound(
                path, f"pattern not found: {edit.match!r}"
            )

        try:
            path.write_bytes(
                content.replace(match, replacement.encode("utf-8"))
            )
        except OSError as e:
            raise errors.EditError(path, f"cannot write: {e}") from e
        logger.info(f"edited {edit.path}: {count} occurrence(s) replaced")
