"""Filename to bucket classification.

Rules are evaluated in order and the first rule with a keyword contained in
the case-folded filename wins, so a file named `logo-shirt.png` lands in
`branding`, not `uniforms`. Default order:

1. branding      (logo, favicon, brand)
2. uniforms      (uniform, shirt, jersey, tunic, hat, pants, shorts)
3. ui-elements   (placeholder, icon)
4. announcements (announcement, exam, sale, term supplies, term-supplies)
5. products      (fallback)
"""

from __future__ import annotations

from typing import Iterable, Sequence

from ..schemas.reconcile import DEFAULT_BUCKET_RULES, BucketRule

DEFAULT_BUCKET = "products"


def classify(
    filename: str,
    rules: Sequence[BucketRule] = DEFAULT_BUCKET_RULES,
    *,
    default: str = DEFAULT_BUCKET,
) -> str:
    lowered = (filename or "").lower()
    for rule in rules:
        if any(keyword in lowered for keyword in rule.keywords):
            return rule.bucket
    return default


def rule_buckets(rules: Iterable[BucketRule], *, default: str = DEFAULT_BUCKET) -> list[str]:
    """Every bucket a classification can produce, in rule order."""

    buckets: list[str] = []
    for rule in rules:
        if rule.bucket not in buckets:
            buckets.append(rule.bucket)
    if default not in buckets:
        buckets.append(default)
    return buckets


__all__ = ["DEFAULT_BUCKET", "classify", "rule_buckets"]
