"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core or
assembly. Settings classes are NOT re-exported here - import them from
monoci.core.config.
"""

from monoci.contracts.errors import (
    GLOBAL_FRAGMENT_OWNER,
    AssemblyError,
    DependencyGraphError,
    FragmentLoadError,
    MissingStepIdError,
    PipelineIntegrityError,
    UnknownPackageError,
)
from monoci.contracts.pipeline import (
    CUSTOM_STEP_KEYS,
    NIGHTLY_ONLY_KEY,
    START_IMMEDIATELY,
    WAITED_FOR_BY_PACKAGES_KEY,
    Fragment,
    PipelineDocument,
    SecretBlock,
    Selection,
    Step,
)
from monoci.contracts.types import PackageName, StepID

__all__ = [
    "CUSTOM_STEP_KEYS",
    "GLOBAL_FRAGMENT_OWNER",
    "NIGHTLY_ONLY_KEY",
    "START_IMMEDIATELY",
    "WAITED_FOR_BY_PACKAGES_KEY",
    "AssemblyError",
    "DependencyGraphError",
    "Fragment",
    "FragmentLoadError",
    "MissingStepIdError",
    "PackageName",
    "PipelineDocument",
    "PipelineIntegrityError",
    "SecretBlock",
    "Selection",
    "Step",
    "StepID",
    "UnknownPackageError",
]
