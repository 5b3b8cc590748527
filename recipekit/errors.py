from __future__ import annotations
from typing import Sequence

import os


class RecipeError(Exception):
    """Base class for every error raised by recipekit."""


class InvalidRecipe(RecipeError):
    pass


class FetchError(RecipeError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class ChecksumMismatch(RecipeError):
    def __init__(self, algorithm: str, expected: str, actual: str) -> None:
        super().__init__(
            f"{algorithm} checksum verification failed: "
            f"expected={expected} found={actual}"
        )
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual


class PatchError(RecipeError):
    def __init__(self, index: int, url: str, reason: str) -> None:
        super().__init__(f"patch #{index} ({url}): {reason}")
        self.index = index
        self.url = url
        self.reason = reason


class PatchFetchError(PatchError):
    pass


class PatchChecksumError(PatchError):
    pass


class PatchApplyError(PatchError):
    pass


class EditError(RecipeError):
    def __init__(self, path: str | os.PathLike[str], message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class EditTargetMissing(EditError):
    pass


class EditPatternNotFound(EditError):
    pass


class ExecError(RecipeError):
    """A command could not be started or exited with a non-zero status.

    ``returncode`` is ``None`` when the program was not found.
    """

    def __init__(
        self,
        command: Sequence[str],
        returncode: int | None,
        reason: str = "",
    ) -> None:
        cmd_line = " ".join(command)
        if returncode is None:
            msg = f"{cmd_line} could not be executed: {reason}"
        else:
            msg = f"{cmd_line} failed with exit code {returncode}"
        super().__init__(msg)
        self.command = tuple(command)
        self.returncode = returncode


class InstallError(RecipeError):
    def __init__(self, path: str | os.PathLike[str], reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path


class Cancelled(RecipeError):
    pass


class ExecutionError(RecipeError):
    """A recipe execution stopped at *stage* because of *cause*."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.kind = type(cause).__name__
        self.cause = cause
        super().__init__(f"{stage}: {self.kind}: {cause}")
