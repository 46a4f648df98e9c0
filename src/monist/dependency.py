import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Mapping, Tuple


class DependencyKind(Enum):
    """Dependency tables of a package.json, by field name."""

    RUNTIME = "dependencies"
    OPTIONAL = "optionalDependencies"
    PEER = "peerDependencies"
    BUNDLED = "bundledDependencies"
    DEV = "devDependencies"


NON_DEV_DEP_NAMES: Tuple[str, ...] = (
    DependencyKind.RUNTIME.value,
    DependencyKind.OPTIONAL.value,
    DependencyKind.PEER.value,
    DependencyKind.BUNDLED.value,
)
DEP_NAMES: Tuple[str, ...] = NON_DEV_DEP_NAMES + (DependencyKind.DEV.value,)

# Kinds whose external entries must match the root devDependencies exactly.
STRICT_DEP_NAMES: Tuple[str, ...] = (
    DependencyKind.RUNTIME.value,
    DependencyKind.OPTIONAL.value,
    DependencyKind.BUNDLED.value,
)

_SCOPED_NAME_RE = re.compile(r"^@(.*?)/(.*)$")


@dataclass(frozen=True)
class Dependency:
    """One entry of a dependency table."""

    name: str
    version: str
    kind: DependencyKind
    source_file: str


def dependency_table(json: Mapping[str, Any], field_name: str) -> Mapping[str, Any]:
    """Return a dependency table, or an empty mapping when it is absent."""
    table = json.get(field_name)
    if isinstance(table, Mapping):
        return table
    # bundledDependencies may also be written as a list of names
    if isinstance(table, (list, tuple)):
        return {name: None for name in table}
    return {}


def iter_dependencies(json: Mapping[str, Any], source_file: str) -> Iterator[Dependency]:
    """Yield every declared dependency, table by table, in manifest order."""
    for kind in DependencyKind:
        for name, version in dependency_table(json, kind.value).items():
            yield Dependency(
                name=name,
                version=version if isinstance(version, str) else "",
                kind=kind,
                source_file=source_file,
            )


def parse_name(name: str) -> Tuple[str, str]:
    """Split a package name into ``(scope, local_name)``."""
    match = _SCOPED_NAME_RE.match(name)
    if match is None:
        return "", name
    return match.group(1), match.group(2)
