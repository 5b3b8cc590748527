from __future__ import annotations
from typing import Any, Mapping

import logging
import os
import subprocess

from recipekit import errors


logger = logging.getLogger(__name__)


def cmd(
    *cmd: str | os.PathLike[str],
    cwd: str | os.PathLike[str] | None = None,
    env: Mapping[str, str] | None = None,
    **kwargs: Any,
) -> str:
    """Run *cmd* and return its stripped standard output.

    Raises :class:`~recipekit.errors.ExecError` if the program cannot be
    started or exits with a non-zero status.
    """
    default_kwargs: dict[str, Any] = {
        "stderr": subprocess.PIPE,
        "stdout": subprocess.PIPE,
    }

    default_kwargs.update(kwargs)

    str_cmd = [str(c) for c in cmd]
    cmd_line = " ".join(str_cmd)
    logger.debug(f"running {cmd_line} in {cwd or os.getcwd()}")

    try:
        p = subprocess.run(
            str_cmd,
            text=True,
            check=True,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            **default_kwargs,
        )
    except subprocess.CalledProcessError as e:
        if e.stdout:
            logger.error(e.stdout)
        if e.stderr:
            logger.error(e.stderr)
        logger.error(f"{cmd_line} failed with exit code {e.returncode}")
        raise errors.ExecError(str_cmd, e.returncode) from e
    except OSError as e:
        logger.error(f"{cmd_line} could not be executed: {e}")
        raise errors.ExecError(str_cmd, None, str(e)) from e
    else:
        output = p.stdout
        if output is not None:
            output = output.rstrip()
        return output  # type: ignore
