"""Step-graph assembly: selection, merge, ordering, linearization and secret pruning."""

from monoci.assembly.assembler import (
    AssemblyResult,
    FragmentSource,
    PipelineAssembler,
    prepare_global_steps,
    verify_pipeline,
)
from monoci.assembly.merge import MergedPackage, make_step_id, merge_fragment
from monoci.assembly.ordering import apply_package_ordering, package_wait_set
from monoci.assembly.secrets import prune_secrets, used_secret_names
from monoci.assembly.selection import check_targets, compute_selection, stale_exemptions

__all__ = [
    "AssemblyResult",
    "FragmentSource",
    "MergedPackage",
    "PipelineAssembler",
    "apply_package_ordering",
    "check_targets",
    "compute_selection",
    "make_step_id",
    "merge_fragment",
    "package_wait_set",
    "prepare_global_steps",
    "prune_secrets",
    "stale_exemptions",
    "used_secret_names",
    "verify_pipeline",
]
