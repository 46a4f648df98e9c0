"""
Dependency trees and execution planning.

A package that appears several times in the forest is always represented by
the *same* ``DepTree`` node, so removing it once removes it everywhere.

Every walk below visits each node once and keeps its own stack, so the cost
follows the number of members and edges rather than the number of paths, and
long chains do not run into the interpreter's recursion limit.
"""

from typing import Any, Callable, Dict, Iterable, Iterator, List, Sequence, Set, Tuple, TypeVar

from .error_handling import CyclicDependency
from .manifest import Package

P = TypeVar("P", bound=Package)


class DepTree:
    """Models a node of a dependency tree."""

    __slots__ = ("pkg", "dependencies")

    def __init__(self, pkg: Package, dependencies: List["DepTree"]):
        self.pkg = pkg
        self.dependencies = dependencies

    def __repr__(self) -> str:
        names = ", ".join(dep.pkg.get_name() for dep in self.dependencies)
        return f"DepTree({self.pkg.get_name()!r}, [{names}])"


def iter_nodes(trees: Iterable[DepTree]) -> Iterator[DepTree]:
    """Yield every distinct node of a forest once, dependencies first."""
    seen: Set[int] = set()
    for tree in trees:
        if id(tree) in seen:
            continue
        seen.add(id(tree))
        stack = [(tree, iter(tree.dependencies))]
        while stack:
            node, pending = stack[-1]
            for dep in pending:
                if id(dep) not in seen:
                    seen.add(id(dep))
                    stack.append((dep, iter(dep.dependencies)))
                    break
            else:
                stack.pop()
                yield node


def build_dep_trees(
    members: Sequence[P], get_local_deps: Callable[[P], Iterable[P]]
) -> List[DepTree]:
    """
    Build the forest of local dependency trees.

    Roots are the members no other member depends on. Nodes are memoized,
    so diamond dependencies share one node.

    Raises:
        CyclicDependency: If the local dependencies contain a cycle
    """
    converted: Dict[int, DepTree] = {}

    def make_tree(start: P) -> DepTree:
        if id(start) in converted:
            return converted[id(start)]

        # Packages being converted, with the position of each on the path.
        path: List[Tuple[P, Iterator[P]]] = [(start, iter(get_local_deps(start)))]
        on_path: Dict[int, int] = {id(start): 0}
        while path:
            pkg, pending = path[-1]
            for dep in pending:
                if id(dep) in converted:
                    continue
                if id(dep) in on_path:
                    cycle = [item.get_name() for item, _ in path[on_path[id(dep)] :]]
                    raise CyclicDependency(cycle + [dep.get_name()])
                on_path[id(dep)] = len(path)
                path.append((dep, iter(get_local_deps(dep))))
                break
            else:
                path.pop()
                del on_path[id(pkg)]
                converted[id(pkg)] = DepTree(
                    pkg, [converted[id(dep)] for dep in get_local_deps(pkg)]
                )
        return converted[id(start)]

    non_roots: Set[int] = set()
    for member in members:
        for dep in get_local_deps(member):
            non_roots.add(id(dep))

    roots = [make_tree(member) for member in members if id(member) not in non_roots]

    # Members sitting only on cycles are unreachable from any root.
    for member in members:
        make_tree(member)

    return roots


def find_leaves_in_trees(trees: Iterable[DepTree]) -> List[DepTree]:
    """Find the nodes, across all trees, that have no dependencies."""
    return [node for node in iter_nodes(trees) if not node.dependencies]


def remove_nodes_from_trees(
    trees: Iterable[DepTree], to_remove: Iterable[DepTree]
) -> List[DepTree]:
    """
    Remove nodes from a forest.

    A tree whose root is removed is dropped entirely.
    """
    ids = {id(node) for node in to_remove}
    kept = [tree for tree in trees if id(tree) not in ids]
    for node in list(iter_nodes(kept)):
        node.dependencies = [dep for dep in node.dependencies if id(dep) not in ids]
    return kept


def make_plan(trees: Iterable[DepTree]) -> List[List[Package]]:
    """
    Turn a forest into batches by repeatedly peeling off its leaves.

    Each batch only depends on earlier batches. Batches are sorted by
    package name. A node joins the batch after its last dependency's, which
    is what removing the leaves round after round yields; the forest itself
    is left untouched.
    """
    nodes = list(iter_nodes(trees))
    waiting_on = {id(node): len(node.dependencies) for node in nodes}
    dependents: Dict[int, List[DepTree]] = {id(node): [] for node in nodes}
    for node in nodes:
        for dep in node.dependencies:
            dependents[id(dep)].append(node)

    plan: List[List[Package]] = []
    ready = [node for node in nodes if not waiting_on[id(node)]]
    while ready:
        plan.append(sorted((node.pkg for node in ready), key=lambda pkg: pkg.get_name()))
        unlocked = []
        for node in ready:
            for parent in dependents[id(node)]:
                waiting_on[id(parent)] -= 1
                if not waiting_on[id(parent)]:
                    unlocked.append(parent)
        ready = unlocked
    return plan


def dump_dep_trees(trees: Iterable[DepTree]) -> List[Dict[str, Any]]:
    """
    Render trees as nested ``{"name", "dependencies"}`` dictionaries.

    A shared node is rendered once and the same dictionary is reused
    wherever it appears.
    """
    trees = list(trees)
    dumped: Dict[int, Dict[str, Any]] = {}
    for node in iter_nodes(trees):
        dumped[id(node)] = {
            "name": node.pkg.get_name(),
            "dependencies": [dumped[id(dep)] for dep in node.dependencies],
        }
    return [dumped[id(tree)] for tree in trees]
