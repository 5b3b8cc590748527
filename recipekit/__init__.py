from __future__ import annotations

from typing import Any

import os

from .errors import ExecutionError, RecipeError
from .packages import Recipe, load_recipe
from .build import BuildContext, RecipeExecutor, Stage


__version__ = "0.1.0"

__all__ = (
    "BuildContext",
    "ExecutionError",
    "Recipe",
    "RecipeError",
    "RecipeExecutor",
    "Stage",
    "execute",
    "load_recipe",
)


def execute(
    recipe: Recipe,
    install_prefix: str | os.PathLike[str],
    **kwargs: Any,
) -> BuildContext:
    """Build and install *recipe* into *install_prefix* with the default
    collaborators.

    Keyword arguments are passed to :class:`RecipeExecutor`.
    """
    return RecipeExecutor(**kwargs).execute(recipe, install_prefix)
