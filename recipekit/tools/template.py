from __future__ import annotations
from typing import Any

import string

from recipekit import errors


class Template(string.Template):
    delimiter = "@@"


def format_template(tpltext: str, **kwargs: Any) -> str:
    """Substitute ``@@name`` placeholders in *tpltext*.

    A literal ``@@`` is written as ``@@@@``.
    """
    template = Template(tpltext)
    try:
        return template.substitute(kwargs)
    except KeyError as e:
        known = ", ".join(f"@@{k}" for k in sorted(kwargs))
        raise errors.InvalidRecipe(
            f"unknown placeholder @@{e.args[0]} in {tpltext!r} "
            f"(available: {known})"
        ) from None
    except ValueError as e:
        raise errors.InvalidRecipe(
            f"malformed template {tpltext!r}: {e}"
        ) from None
