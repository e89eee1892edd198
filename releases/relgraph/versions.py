"""
Version string ordering for release facts.

Patch versions look like ``9.0.10`` or ``10.0.0-preview.7``. Ordering is
numeric on the dotted core; a prerelease sorts before its release, and
prerelease identifiers compare numerically when both are digits.
"""

from __future__ import annotations

from typing import Any


def version_key(version: str) -> tuple[Any, ...]:
    """Sort key for a dotted version with optional prerelease suffix.

    Raises:
        ValueError: If the core is not dot-separated integers
    """
    core, _, pre = version.partition("-")
    try:
        nums = tuple(int(p) for p in core.split("."))
    except ValueError:
        raise ValueError(f"Invalid version '{version}'") from None

    if not pre:
        return nums, (1,)

    idents = []
    for ident in pre.split("."):
        if ident.isdigit():
            idents.append((0, int(ident), ""))
        else:
            idents.append((1, 0, ident))
    return nums, (0, tuple(idents))


def is_prerelease(version: str) -> bool:
    return "-" in version


def latest(versions: list[str]) -> str | None:
    if not versions:
        return None
    return max(versions, key=version_key)
