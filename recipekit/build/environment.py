from __future__ import annotations
from typing import Mapping, Sequence

import logging
import os
import pathlib

from recipekit import errors
from recipekit import tools
from recipekit.packages import recipe as mpkg_recipe


logger = logging.getLogger(__name__)


class BuildEnvironment:
    def prepare(
        self,
        base_env: Mapping[str, str],
        overrides: Mapping[str, mpkg_recipe.EnvOverride],
        *,
        variables: Mapping[str, str] | None = None,
        deparallelize: bool = False,
    ) -> dict[str, str]:
        """Return *base_env* overlaid with *overrides*.

        ``append`` and ``prepend`` keep the existing value and join it to
        the new one with the override's separator.  A variable missing
        from *base_env* counts as empty, in which case no separator is
        added.  *base_env* is not modified.
        """
        env = dict(base_env)

        for key, override in overrides.items():
            if variables:
                value = tools.format_template(override.value, **variables)
            else:
                value = override.value
            existing = env.get(key, "")
            if existing and override.how == "append":
                env[key] = override.sep.join([existing, value])
            elif existing and override.how == "prepend":
                env[key] = override.sep.join([value, existing])
            else:
                env[key] = value

        if deparallelize:
            env["MAKEFLAGS"] = "-j1"

        for key in sorted(overrides):
            logger.debug(f"{key}={env[key]}")

        return env

    def run(
        self,
        command: Sequence[str],
        environment: Mapping[str, str],
        cwd: str | os.PathLike[str],
    ) -> int:
        """Run a build command to completion.

        Returns the exit status, which is always 0: a non-zero status or
        a program that cannot be started raises
        :class:`~recipekit.errors.ExecError`.
        """
        if not pathlib.Path(cwd).is_dir():
            raise errors.ExecError(
                command, None, f"working directory {cwd} does not exist"
            )
        logger.info(f"running {' '.join(command)} in {cwd}")
        output = tools.cmd(*command, cwd=cwd, env=environment)
        if output:
            logger.debug(output)
        return 0
