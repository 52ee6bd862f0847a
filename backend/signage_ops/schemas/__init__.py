from .reconcile import (
    DEFAULT_BUCKET_RULES,
    DEFAULT_RECONCILE_TARGETS,
    BucketRule,
    ReconcileTarget,
    ReferenceStyle,
)

__all__ = [
    "DEFAULT_BUCKET_RULES",
    "DEFAULT_RECONCILE_TARGETS",
    "BucketRule",
    "ReconcileTarget",
    "ReferenceStyle",
]
