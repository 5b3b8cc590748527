from __future__ import annotations
from typing import (
    Any,
    Iterable,
    Literal,
    Mapping,
)

import dataclasses
import os
import pathlib
import re
import types

import packaging.utils
import tomli

from poetry.core.constraints.version import Version

from recipekit import errors


canonicalize_name = packaging.utils.canonicalize_name
NormalizedName = packaging.utils.NormalizedName

EnvHow = Literal["set", "append", "prepend"]

#: Digest algorithm keyed by the length of its hex representation.
HASH_LENGTHS = {
    32: "md5",
    40: "sha1",
    64: "sha256",
    128: "sha512",
}

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def parse_checksum(checksum: str) -> tuple[str, str]:
    """Split *checksum* into ``(algorithm, lowercase hex digest)``.

    Accepts either a bare hex digest, in which case the algorithm is
    inferred from its length, or an ``algo:hex`` pair.
    """
    algo, sep, value = checksum.strip().partition(":")
    if not sep:
        algo, value = "", algo

    if not value or not _HEX_RE.match(value):
        raise errors.InvalidRecipe(f"malformed checksum: {checksum!r}")

    inferred = HASH_LENGTHS.get(len(value))
    if not algo:
        if inferred is None:
            raise errors.InvalidRecipe(
                f"cannot infer digest algorithm for checksum {checksum!r} "
                f"of length {len(value)}"
            )
        algo = inferred
    elif algo.lower() != inferred:
        raise errors.InvalidRecipe(
            f"checksum {checksum!r} is not a valid {algo} digest"
        )

    return algo.lower(), value.lower()


@dataclasses.dataclass(frozen=True)
class PatchRef:
    url: str
    checksum: str | None = None

    def __post_init__(self) -> None:
        if not self.url:
            raise errors.InvalidRecipe("patch url must not be empty")
        if self.checksum is not None:
            parse_checksum(self.checksum)


@dataclasses.dataclass(frozen=True)
class TextEdit:
    #: Path of the file to edit, relative to the source root.
    path: str
    #: Literal text to look for.
    match: str
    #: Replacement text, may contain ``@@prefix``, ``@@version``
    #: and ``@@name``.
    replacement: str

    def __post_init__(self) -> None:
        if not self.match:
            raise errors.InvalidRecipe(
                f"text edit for {self.path} has an empty match pattern"
            )
        _ensure_relative(self.path, "text edit path")


@dataclasses.dataclass(frozen=True)
class EnvOverride:
    value: str
    how: EnvHow = "set"
    sep: str = " "

    def __post_init__(self) -> None:
        if self.how not in ("set", "append", "prepend"):
            raise errors.InvalidRecipe(
                f"invalid environment override mode: {self.how!r}"
            )


@dataclasses.dataclass(frozen=True)
class BuildStep:
    command: tuple[str, ...]
    #: Working directory relative to the source root.
    cwd: str = "."

    def __post_init__(self) -> None:
        if isinstance(self.command, str):
            raise errors.InvalidRecipe(
                f"build command must be a list of arguments, "
                f"got {self.command!r}"
            )
        object.__setattr__(self, "command", tuple(self.command))
        if not self.command:
            raise errors.InvalidRecipe("build command must not be empty")
        _ensure_relative(self.cwd, "build step cwd")


@dataclasses.dataclass(frozen=True)
class InstallEntry:
    #: Glob relative to the source root.
    source: str
    #: Directory relative to the install prefix.
    destination: str = "."
    #: Create *source* as an empty file if it does not exist.
    touch: bool = False

    def __post_init__(self) -> None:
        _ensure_relative(self.source, "install source")
        _ensure_relative(self.destination, "install destination")


@dataclasses.dataclass(frozen=True, kw_only=True)
class Recipe:
    """An immutable description of how to build and install one package."""

    name: str
    source_url: str
    version: str
    checksum: str
    homepage: str = ""
    patches: tuple[PatchRef, ...] = ()
    text_edits: tuple[TextEdit, ...] = ()
    env_overrides: Mapping[str, EnvOverride] = dataclasses.field(
        default_factory=dict
    )
    build_steps: tuple[BuildStep, ...] = ()
    install: tuple[InstallEntry, ...] = ()
    state_dirs: tuple[str, ...] = ()
    skip_clean: tuple[str, ...] = ()
    clean: tuple[str, ...] = ()
    deparallelize: bool = False
    strip_components: int = 1

    def __post_init__(self) -> None:
        if not self.name:
            raise errors.InvalidRecipe("recipe name must not be empty")
        if not self.source_url:
            raise errors.InvalidRecipe(f"{self.name}: source url is required")

        try:
            Version.parse(self.version)
        except ValueError as e:
            raise errors.InvalidRecipe(
                f"{self.name}: invalid version {self.version!r}: {e}"
            ) from e

        parse_checksum(self.checksum)

        if self.strip_components < 0:
            raise errors.InvalidRecipe(
                f"{self.name}: strip_components must not be negative"
            )

        for field in (
            "patches",
            "text_edits",
            "build_steps",
            "install",
            "state_dirs",
            "skip_clean",
            "clean",
        ):
            object.__setattr__(self, field, tuple(getattr(self, field)))

        for path in self.state_dirs + self.skip_clean + self.clean:
            _ensure_relative(path, "install prefix path")

        object.__setattr__(
            self,
            "env_overrides",
            types.MappingProxyType(dict(self.env_overrides)),
        )

    @property
    def canonical_name(self) -> NormalizedName:
        return canonicalize_name(self.name)

    def get_url_variables(self) -> dict[str, str]:
        version = self.version
        parts = version.split(".")
        return {
            "version": version,
            "nodot_version": version.replace(".", ""),
            "underscore_version": version.replace(".", "_"),
            "dash_version": version.replace(".", "-"),
            "major_v": parts[0],
            "major_minor_v": ".".join(parts[:2]),
        }

    def format_url(self, url: str) -> str:
        try:
            return url.format(**self.get_url_variables())
        except (KeyError, IndexError, ValueError) as e:
            raise errors.InvalidRecipe(
                f"{self.name}: cannot format url {url!r}: {e}"
            ) from e

    @property
    def url(self) -> str:
        return self.format_url(self.source_url)

    def get_template_variables(
        self, install_prefix: str | os.PathLike[str]
    ) -> dict[str, str]:
        return {
            "prefix": str(install_prefix),
            "version": self.version,
            "name": self.name,
        }

    def get_protected_paths(self) -> tuple[str, ...]:
        """Paths under the install prefix that cleanup must keep."""
        return self.state_dirs + tuple(
            p for p in self.skip_clean if p not in self.state_dirs
        )


def _ensure_relative(path: str, what: str) -> None:
    p = pathlib.PurePosixPath(path)
    if p.is_absolute() or ".." in p.parts:
        raise errors.InvalidRecipe(
            f"{what} must be a relative path inside its root: {path!r}"
        )


_RECIPE_KEYS = frozenset(
    {
        "name",
        "url",
        "homepage",
        "version",
        "checksum",
        "patches",
        "edits",
        "env",
        "build",
        "install",
        "state_dirs",
        "skip_clean",
        "clean",
        "deparallelize",
        "strip_components",
    }
)


def parse_recipe(data: Mapping[str, Any]) -> Recipe:
    """Build a :class:`Recipe` from a decoded descriptor mapping."""
    unknown = set(data) - _RECIPE_KEYS
    if unknown:
        raise errors.InvalidRecipe(
            f"unknown recipe keys: {', '.join(sorted(unknown))}"
        )

    required = ("name", "url", "version", "checksum")
    missing = [k for k in required if k not in data]
    if missing:
        raise errors.InvalidRecipe(
            f"missing required recipe keys: {', '.join(missing)}"
        )

    env: dict[str, EnvOverride] = {}
    for var, spec in data.get("env", {}).items():
        if isinstance(spec, str):
            env[var] = EnvOverride(spec)
        else:
            env[var] = EnvOverride(**_check_keys(spec, EnvOverride, "env"))

    try:
        return Recipe(
            name=data["name"],
            source_url=data["url"],
            homepage=data.get("homepage", ""),
            version=str(data["version"]),
            checksum=data["checksum"],
            patches=_parse_list(data.get("patches", ()), PatchRef, "patches"),
            text_edits=tuple(
                TextEdit(
                    path=e["file"],
                    match=e["match"],
                    replacement=e["replace"],
                )
                for e in _check_list(
                    data.get("edits", ()),
                    {"file", "match", "replace"},
                    "edits",
                )
            ),
            env_overrides=env,
            build_steps=_parse_list(data.get("build", ()), BuildStep, "build"),
            install=_parse_list(
                data.get("install", ()), InstallEntry, "install"
            ),
            state_dirs=tuple(data.get("state_dirs", ())),
            skip_clean=tuple(data.get("skip_clean", ())),
            clean=tuple(data.get("clean", ())),
            deparallelize=bool(data.get("deparallelize", False)),
            strip_components=int(data.get("strip_components", 1)),
        )
    except (KeyError, TypeError) as e:
        raise errors.InvalidRecipe(f"malformed recipe: {e}") from e


def load_recipe(path: str | os.PathLike[str]) -> Recipe:
    """Read a recipe descriptor from the TOML file at *path*."""
    with open(path, "rb") as f:
        try:
            data = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise errors.InvalidRecipe(f"{path}: {e}") from e

    return parse_recipe(data)


def _check_keys(
    spec: Mapping[str, Any], cls: type, section: str
) -> Mapping[str, Any]:
    names = {f.name for f in dataclasses.fields(cls)}
    _check_list([spec], names, section)
    return spec


def _check_list(
    items: Iterable[Mapping[str, Any]],
    allowed: set[str],
    section: str,
) -> list[Mapping[str, Any]]:
    result = []
    for item in items:
        if not isinstance(item, Mapping):
            raise errors.InvalidRecipe(
                f"entries of [{section}] must be tables, got {item!r}"
            )
        unknown = set(item) - allowed
        if unknown:
            raise errors.InvalidRecipe(
                f"unknown keys in [{section}]: {', '.join(sorted(unknown))}"
            )
        result.append(item)
    return result


def _parse_list(
    items: Iterable[Mapping[str, Any]], cls: type, section: str
) -> tuple[Any, ...]:
    names = {f.name for f in dataclasses.fields(cls)}
    return tuple(cls(**item) for item in _check_list(items, names, section))
