"""buildmend – idempotent configuration reconciler for Flutter mobile CI builds"""

__version__ = "0.1.0"

from .artifacts import (
    Artifact,
    ArtifactFormat,
    ArtifactState,
    KeyMode,
    KeyPath,
    KeyRequirement,
    MissingKey,
    ReconciliationRequirement,
    ReconciliationResult,
    Severity,
    SourceSpec,
)
from .catalog import Catalog, load_catalog
from .config import EngineConfig, FeatureFlags, NetworkConfig, load_config
from .errors import (
    AcquisitionError,
    ArtifactNotFound,
    BuildmendError,
    CatalogError,
    CircularDependencyError,
    IllegalTransition,
    ReconciliationFailure,
    RequirementUnsatisfiable,
    SyntaxCorruption,
    ToolchainMismatch,
)
from .acquisition import Acquirer
from .policy import PolicyTable
from .reconciler import Reconciler
from .report import RunReport
from .resolver import DependencyResolver
from .runner import ReconciliationRunner
from .store import ArtifactStore
from .validators import check, validate_required_keys, validate_syntax

__all__ = [
    "Artifact",
    "ArtifactFormat",
    "ArtifactState",
    "KeyMode",
    "KeyPath",
    "KeyRequirement",
    "MissingKey",
    "ReconciliationRequirement",
    "ReconciliationResult",
    "Severity",
    "SourceSpec",
    "Catalog",
    "load_catalog",
    "EngineConfig",
    "FeatureFlags",
    "NetworkConfig",
    "load_config",
    "AcquisitionError",
    "ArtifactNotFound",
    "BuildmendError",
    "CatalogError",
    "CircularDependencyError",
    "IllegalTransition",
    "ReconciliationFailure",
    "RequirementUnsatisfiable",
    "SyntaxCorruption",
    "ToolchainMismatch",
    "Acquirer",
    "PolicyTable",
    "Reconciler",
    "RunReport",
    "DependencyResolver",
    "ReconciliationRunner",
    "ArtifactStore",
    "check",
    "validate_required_keys",
    "validate_syntax",
]
