# flake8: noqa

from .recipe import (
    BuildStep,
    EnvOverride,
    InstallEntry,
    NormalizedName,
    PatchRef,
    Recipe,
    TextEdit,
    canonicalize_name,
    load_recipe,
    parse_checksum,
    parse_recipe,
)
from .sources import (
    Extractor,
    Fetcher,
    HashVerification,
    HttpFetcher,
    TarballExtractor,
    verify,
)
from .patches import PatchApplier
from .edits import SourceTextPatcher


__all__ = (
    "BuildStep",
    "EnvOverride",
    "Extractor",
    "Fetcher",
    "HashVerification",
    "HttpFetcher",
    "InstallEntry",
    "NormalizedName",
    "PatchApplier",
    "PatchRef",
    "Recipe",
    "SourceTextPatcher",
    "TarballExtractor",
    "TextEdit",
    "canonicalize_name",
    "load_recipe",
    "parse_checksum",
    "parse_recipe",
    "verify",
)
