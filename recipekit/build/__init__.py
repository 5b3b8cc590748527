from .environment import BuildEnvironment
from .executor import BuildContext, RecipeExecutor, Stage
from .install import Cleaner, CleanupPolicy, InstallStager


__all__ = (
    "BuildContext",
    "BuildEnvironment",
    "Cleaner",
    "CleanupPolicy",
    "InstallStager",
    "RecipeExecutor",
    "Stage",
)
