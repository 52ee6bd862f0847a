from __future__ import annotations

import re
from pathlib import PurePosixPath

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def normalize(name: str | None) -> str:
    """Return the canonical URL-safe slug for a display name or filename.

    `normalize("Back to School Sale!!") == "back-to-school-sale"`. The result
    only contains `[a-z0-9-]` without leading, trailing or doubled hyphens,
    which makes the function idempotent.
    """

    if not name:
        return ""
    return _NON_SLUG.sub("-", str(name).lower()).strip("-")


def split_extension(filename: str) -> tuple[str, str]:
    path = PurePosixPath(filename)
    suffix = path.suffix
    if not suffix or suffix == filename:
        return filename, ""
    return filename[: -len(suffix)], suffix


def stem(filename: str | None) -> str:
    if not filename:
        return ""
    base, _ = split_extension(PurePosixPath(filename).name)
    return base


def normalize_filename(filename: str) -> str:
    """Normalize the base name of `filename`, keeping its extension lowercased."""

    base, extension = split_extension(PurePosixPath(filename).name)
    return f"{normalize(base)}{extension.lower()}"


__all__ = ["normalize", "normalize_filename", "split_extension", "stem"]
