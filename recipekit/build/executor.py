from __future__ import annotations
from typing import (
    Callable,
    Mapping,
)

import dataclasses
import enum
import logging
import os
import pathlib
import shutil
import tempfile
import threading

from recipekit import errors
from recipekit.packages import edits as mpkg_edits
from recipekit.packages import patches as mpkg_patches
from recipekit.packages import recipe as mpkg_recipe
from recipekit.packages import sources as mpkg_sources

from . import environment as build_env
from . import install as build_install


logger = logging.getLogger(__name__)


class Stage(str, enum.Enum):
    """Pipeline states, in the only order they can be reached."""

    FETCHED = "Fetched"
    VERIFIED = "Verified"
    PATCHED = "Patched"
    TEXT_EDITED = "TextEdited"
    ENV_PREPARED = "EnvPrepared"
    BUILT = "Built"
    STAGED = "Staged"
    CLEANED = "Cleaned"
    DONE = "Done"

    def __str__(self) -> str:
        return self.value


@dataclasses.dataclass
class BuildContext:
    """Mutable state of a single execution attempt.

    Owned by the executor that created it and never shared between
    executions.
    """

    workdir: pathlib.Path
    install_prefix: pathlib.Path
    environment: dict[str, str] = dataclasses.field(default_factory=dict)
    archive: bytes | None = None
    state: Stage | None = None
    history: list[Stage] = dataclasses.field(default_factory=list)
    staged: list[pathlib.Path] = dataclasses.field(default_factory=list)
    cleaned: list[pathlib.Path] = dataclasses.field(default_factory=list)

    @property
    def extracted_source_root(self) -> pathlib.Path:
        return self.workdir / "source"

    @property
    def patches_dir(self) -> pathlib.Path:
        return self.workdir / "patches"

    def advance(self, stage: Stage) -> None:
        self.state = stage
        self.history.append(stage)


class RecipeExecutor:
    """Run a :class:`~recipekit.packages.Recipe` through the fixed
    fetch, verify, patch, edit, build, stage and clean pipeline.

    Every failure stops the pipeline and is raised as
    :class:`~recipekit.errors.ExecutionError` carrying the stage that was
    being entered.  Nothing is rolled back: the source tree of an
    attempt is disposable.
    """

    def __init__(
        self,
        *,
        fetcher: mpkg_sources.Fetcher | None = None,
        extractor: mpkg_sources.Extractor | None = None,
        patch_applier: mpkg_patches.PatchApplier | None = None,
        text_patcher: mpkg_edits.SourceTextPatcher | None = None,
        environment: build_env.BuildEnvironment | None = None,
        stager: build_install.InstallStager | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.fetcher = fetcher if fetcher is not None else (
            mpkg_sources.HttpFetcher()
        )
        self.extractor = extractor if extractor is not None else (
            mpkg_sources.TarballExtractor()
        )
        self.patch_applier = patch_applier if patch_applier is not None else (
            mpkg_patches.PatchApplier(self.fetcher)
        )
        self.text_patcher = text_patcher if text_patcher is not None else (
            mpkg_edits.SourceTextPatcher()
        )
        self.environment = environment if environment is not None else (
            build_env.BuildEnvironment()
        )
        self.stager = stager if stager is not None else (
            build_install.InstallStager()
        )
        self._base_env = base_env
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Stop the running execution before its next stage."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def execute(
        self,
        recipe: mpkg_recipe.Recipe,
        install_prefix: str | os.PathLike[str],
        *,
        workdir: str | os.PathLike[str] | None = None,
    ) -> BuildContext:
        """Run *recipe* into *install_prefix*.

        An executor runs one recipe at a time: a pending :meth:`cancel`
        is forgotten when the next execution starts.  When *workdir* is
        not given, a temporary one is created and removed again once
        the recipe reaches ``Done``.  A failed attempt keeps it for
        inspection.
        """
        self._cancelled.clear()

        own_workdir = workdir is None
        if workdir is None:
            workdir = tempfile.mkdtemp(prefix="recipekit.")

        ctx = BuildContext(
            workdir=pathlib.Path(workdir),
            install_prefix=pathlib.Path(install_prefix).absolute(),
        )

        steps: list[tuple[Stage, Callable[[], None]]] = [
            (Stage.FETCHED, lambda: self._fetch(recipe, ctx)),
            (Stage.VERIFIED, lambda: self._verify(recipe, ctx)),
            (Stage.PATCHED, lambda: self._patch(recipe, ctx)),
            (Stage.TEXT_EDITED, lambda: self._edit(recipe, ctx)),
            (Stage.ENV_PREPARED, lambda: self._prepare_env(recipe, ctx)),
            (Stage.BUILT, lambda: self._build(recipe, ctx)),
            (Stage.STAGED, lambda: self._stage(recipe, ctx)),
            (Stage.CLEANED, lambda: self._clean(recipe, ctx)),
        ]

        logger.info(
            f"building {recipe.name} {recipe.version} "
            f"into {ctx.install_prefix}"
        )

        for stage, step in steps:
            if self._cancelled.is_set():
                logger.info(f"{recipe.name}: cancelled before {stage}")
                raise errors.ExecutionError(
                    str(stage), errors.Cancelled(f"cancelled before {stage}")
                )
            try:
                step()
            except (errors.RecipeError, OSError) as e:
                logger.error(f"{recipe.name}: {stage} failed: {e}")
                if own_workdir:
                    logger.info(f"work directory kept at {ctx.workdir}")
                raise errors.ExecutionError(str(stage), e) from e
            ctx.advance(stage)
            logger.info(f"{recipe.name}: {stage}")

        ctx.advance(Stage.DONE)
        logger.info(f"{recipe.name}: {Stage.DONE}")

        if own_workdir:
            try:
                shutil.rmtree(ctx.workdir)
            except OSError as e:
                logger.warning(f"cannot remove {ctx.workdir}: {e}")

        return ctx

    def _fetch(self, recipe: mpkg_recipe.Recipe, ctx: BuildContext) -> None:
        ctx.archive = self.fetcher.fetch(recipe.url)

    def _verify(self, recipe: mpkg_recipe.Recipe, ctx: BuildContext) -> None:
        assert ctx.archive is not None
        mpkg_sources.verify(ctx.archive, recipe.checksum)
        self.extractor.extract(
            ctx.archive,
            ctx.extracted_source_root,
            strip_components=recipe.strip_components,
        )
        ctx.archive = None

    def _patch(self, recipe: mpkg_recipe.Recipe, ctx: BuildContext) -> None:
        patches = [
            dataclasses.replace(ref, url=recipe.format_url(ref.url))
            for ref in recipe.patches
        ]
        self.patch_applier.apply(
            ctx.extracted_source_root,
            patches,
            patches_dir=ctx.patches_dir,
        )

    def _edit(self, recipe: mpkg_recipe.Recipe, ctx: BuildContext) -> None:
        self.text_patcher.apply_edits(
            ctx.extracted_source_root,
            recipe.text_edits,
            ctx.install_prefix,
            variables=recipe.get_template_variables(ctx.install_prefix),
        )

    def _prepare_env(
        self, recipe: mpkg_recipe.Recipe, ctx: BuildContext
    ) -> None:
        base_env = self._base_env if self._base_env is not None else os.environ
        ctx.environment = self.environment.prepare(
            base_env,
            recipe.env_overrides,
            variables=recipe.get_template_variables(ctx.install_prefix),
            deparallelize=recipe.deparallelize,
        )

    def _build(self, recipe: mpkg_recipe.Recipe, ctx: BuildContext) -> None:
        for step in recipe.build_steps:
            self.environment.run(
                step.command,
                ctx.environment,
                ctx.extracted_source_root / step.cwd,
            )

    def _stage(self, recipe: mpkg_recipe.Recipe, ctx: BuildContext) -> None:
        self.stager.ensure_directory(ctx.install_prefix)
        for entry in recipe.install:
            ctx.staged.extend(
                self.stager.install(
                    ctx.extracted_source_root, ctx.install_prefix, entry
                )
            )
        for state_dir in recipe.state_dirs:
            self.stager.ensure_directory(ctx.install_prefix / state_dir)

    def _clean(self, recipe: mpkg_recipe.Recipe, ctx: BuildContext) -> None:
        cleaner = build_install.Cleaner(
            build_install.CleanupPolicy.for_recipe(recipe)
        )
        candidates = cleaner.get_candidates(ctx.install_prefix, recipe.clean)
        ctx.cleaned = cleaner.clean(candidates, ctx.install_prefix)
