"""
Version helpers backed by semantic_version.

Only two questions are ever asked: is a string a valid release version,
and do two npm ranges share at least one version.
"""

from typing import Iterator, Set

import semantic_version
from semantic_version import base


def is_valid_version(text: str) -> bool:
    """Return True if ``text`` is a strict SemVer 2.0.0 version."""
    return isinstance(text, str) and semantic_version.validate(text)


def _bounds(clause) -> Iterator[semantic_version.Version]:
    if isinstance(clause, base.Range):
        yield clause.target
    for child in getattr(clause, "clauses", ()):
        yield from _bounds(child)


def _candidates(*specs: semantic_version.NpmSpec) -> Set[semantic_version.Version]:
    candidates = {semantic_version.Version("0.0.0")}
    for spec in specs:
        for target in _bounds(spec.clause):
            candidates.add(target)
            candidates.add(target.next_patch())
    return candidates


def ranges_intersect(first: str, second: str) -> bool:
    """
    Check whether two npm version ranges overlap.

    Every non-empty intersection of npm ranges contains one of the bounds
    the ranges mention, or the patch right after one of them, so only those
    versions are tested.

    Raises:
        ValueError: If either range cannot be parsed
    """
    first_spec = semantic_version.NpmSpec(first)
    second_spec = semantic_version.NpmSpec(second)
    return any(
        candidate in first_spec and candidate in second_spec
        for candidate in _candidates(first_spec, second_spec)
    )
