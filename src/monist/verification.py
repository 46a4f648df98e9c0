"""
Dependency verification.

Checks that external dependencies are declared once, in the devDependencies
of the root package.json, and that members agree with it. Violations are
collected and returned as messages; nothing here raises for a violation.
"""

from typing import TYPE_CHECKING, Any, List, Mapping, Set

from .dependency import NON_DEV_DEP_NAMES, STRICT_DEP_NAMES, DependencyKind, dependency_table
from .versioning import ranges_intersect

if TYPE_CHECKING:
    from .monorepo import Monorepo, MonorepoMember


def _missing(name: str, dep: str) -> str:
    return f"{name}: {dep} is missing from monorepo package.json"


def _inconsistent(name: str, dep: str) -> str:
    return f"{name}: {dep} version is inconsistent from the one in the monorepo package.json"


def _peer_versions_compatible(wanted: Any, available: Any) -> bool:
    if not isinstance(wanted, str) or not isinstance(available, str):
        return wanted == available
    try:
        return ranges_intersect(available, wanted)
    except ValueError:
        return False


def verify_member_deps(member: "MonorepoMember") -> List[str]:
    """
    Check the dependencies of one member against its monorepo.

    Returns:
        List[str]: Violation messages (empty if the member is consistent)
    """
    monorepo = member.monorepo
    name = member.get_name()
    json = member.get_json()
    errors: List[str] = []

    # devDependencies may only point to other members; external ones belong
    # in the root package.json.
    for dep in dependency_table(json, DependencyKind.DEV.value):
        if not monorepo.is_member(dep):
            errors.append(
                f"{name} has devDependencies referring to external packages; "
                "such dependencies should instead be in the top package.json"
            )

    monorepo_deps = dependency_table(monorepo.get_json(), DependencyKind.DEV.value)
    reported_missing: Set[str] = set()
    reported_inconsistent: Set[str] = set()

    def check(field_name: str, compatible) -> None:
        deps: Mapping[str, Any] = dependency_table(json, field_name)
        for dep, version in deps.items():
            if monorepo.is_member(dep):
                continue
            if dep not in monorepo_deps:
                if dep not in reported_missing:
                    errors.append(_missing(name, dep))
                    reported_missing.add(dep)
            elif version is not None and not compatible(version, monorepo_deps[dep]):
                if dep not in reported_inconsistent:
                    errors.append(_inconsistent(name, dep))
                    reported_inconsistent.add(dep)

    for field_name in STRICT_DEP_NAMES:
        check(field_name, lambda wanted, available: wanted == available)
    check(DependencyKind.PEER.value, _peer_versions_compatible)

    return errors


def verify_root_deps(monorepo: "Monorepo") -> List[str]:
    """Only devDependencies are allowed in the root package.json."""
    json = monorepo.get_json()
    return [
        f"{field_name} are not allowed in the monorepo package.json"
        for field_name in NON_DEV_DEP_NAMES
        if json.get(field_name) is not None
    ]


def verify_monorepo_deps(monorepo: "Monorepo") -> List[str]:
    """
    Verify the root package.json and every member.

    Returns:
        List[str]: All violations, root first, then members in name order
    """
    errors = verify_root_deps(monorepo)
    for member_errors in monorepo.map_members(verify_member_deps):
        errors.extend(member_errors)
    return errors
