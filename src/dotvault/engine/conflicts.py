"""Conflict resolution policies for restore.

A resolver is any callable taking a ConflictInfo and returning a
Resolution. The engine never prompts on its own; interactive front ends
pass an adapter through ``interactive(prompt)``.
"""

from __future__ import annotations

from collections.abc import Callable

from dotvault.core.models import ConflictInfo, Resolution

ConflictResolver = Callable[[ConflictInfo], Resolution]


def always_overwrite() -> ConflictResolver:
    return lambda conflict: Resolution.OVERWRITE


def always_skip() -> ConflictResolver:
    return lambda conflict: Resolution.SKIP


def always_rename() -> ConflictResolver:
    return lambda conflict: Resolution.RENAME


def interactive(prompt: ConflictResolver | None = None) -> ConflictResolver:
    """Defer to *prompt*; without one, behave like always_overwrite()."""
    return prompt if prompt is not None else always_overwrite()


_BUILTIN: dict[str, Callable[[], ConflictResolver]] = {
    Resolution.OVERWRITE.value: always_overwrite,
    Resolution.SKIP.value: always_skip,
    Resolution.RENAME.value: always_rename,
}


def resolver_for(name: str) -> ConflictResolver:
    """Built-in resolver by name: 'overwrite', 'skip' or 'rename'."""
    try:
        return _BUILTIN[name.strip().lower()]()
    except KeyError:
        raise ValueError(f"Unknown conflict policy: {name}") from None
