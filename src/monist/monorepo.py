"""
Monorepo model: members, local dependencies, plans and repository-wide edits.

Members are discovered from the ``workspaces`` globs of the root
package.json. Everything read from disk is cached; every write goes straight
to disk and leaves the cached snapshots untouched.
"""

import glob
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from .cli_config import MonistConfig
from .dependency import DEP_NAMES
from .error_handling import (
    DuplicateMemberName,
    InvalidVersion,
    ManifestError,
    MissingMemberDeclaration,
    ScriptConflict,
)
from .manifest import Package, read_json_document, write_json_file
from .structured_logging import get_graph_logger, log_plan_computed
from .tree import DepTree, build_dep_trees, make_plan
from .verification import verify_member_deps, verify_monorepo_deps
from .versioning import is_valid_version

T = TypeVar("T")


class MonorepoMember(Package):
    """Models a package inside a monorepo."""

    def __init__(self, top: str, monorepo: "Monorepo"):
        super().__init__(top)
        self.monorepo = monorepo
        self._local_deps: Optional[List["MonorepoMember"]] = None

    def get_local_deps(self) -> List["MonorepoMember"]:
        """
        The members of the same monorepo this member depends on.

        Dependencies of every kind count. The list is in member name order.
        """
        if self._local_deps is None:
            deps = self.get_deps()
            self._local_deps = [
                member
                for member in self.monorepo.get_members()
                if member is not self and member.get_name() in deps
            ]
        return self._local_deps

    def verify_deps(self) -> List[str]:
        """Check this member's dependencies against the monorepo."""
        return verify_member_deps(self)

    def update_local_versions(self, new_version: str) -> None:
        """
        Set this member's version, and its local dependencies, to ``new_version``.

        Raises:
            InvalidVersion: If ``new_version`` is not valid semver
        """
        if not is_valid_version(new_version):
            raise InvalidVersion(new_version)

        data = self.get_json_copy()
        data["version"] = new_version
        for field_name in DEP_NAMES:
            deps = data.get(field_name)
            if isinstance(deps, dict):
                for dep in deps:
                    if self.monorepo.is_member(dep):
                        deps[dep] = new_version

        self.write_json(data)


class Monorepo(Package):
    """Models a monorepo: the root package and its workspace members."""

    def __init__(self, top: str, config: Optional[MonistConfig] = None):
        super().__init__(top)
        self.config = config or MonistConfig()
        self._members_by_name: Optional[Dict[str, MonorepoMember]] = None
        self._members: Optional[List[MonorepoMember]] = None
        self._plan: Optional[List[List[MonorepoMember]]] = None

    def get_workspaces(self) -> List[str]:
        """
        The member location patterns declared in the root manifest.

        Raises:
            MissingMemberDeclaration: If no pattern is declared
        """
        workspaces = self.get_json().get("workspaces")
        # Yarn also allows {"packages": [...]}
        if isinstance(workspaces, Mapping):
            workspaces = workspaces.get("packages")
        if not workspaces or isinstance(workspaces, str):
            raise MissingMemberDeclaration()
        return [str(pattern) for pattern in workspaces]

    def find_member_dirs(self) -> List[str]:
        """Expand the workspace patterns to member directories, sorted."""
        found = set()
        for pattern in self.get_workspaces():
            for match in glob.glob(pattern, root_dir=self.top, recursive=True):
                path = os.path.normpath(os.path.join(self.top, match))
                if os.path.isdir(path):
                    found.add(path)
        return sorted(found)

    def get_members_by_name(self) -> Dict[str, MonorepoMember]:
        """
        A map from member name to member.

        Raises:
            MissingMemberDeclaration: If the root declares no workspaces
            DuplicateMemberName: If two members have the same name
        """
        if self._members_by_name is None:
            members: Dict[str, MonorepoMember] = {}
            for path in self.find_member_dirs():
                member = MonorepoMember(path, self)
                name = member.get_name()
                existing = members.get(name)
                if existing is not None:
                    raise DuplicateMemberName(name, member.top, existing.top)
                members[name] = member

            get_graph_logger().info(
                "members_discovered", root=self.top, members=sorted(members)
            )
            self._members_by_name = members
        return self._members_by_name

    def get_members(self) -> List[MonorepoMember]:
        """The members, in lexicographical order of name."""
        if self._members is None:
            members = self.get_members_by_name()
            self._members = [members[name] for name in sorted(members)]
        return self._members

    def map_members(self, callback: Callable[[MonorepoMember], T]) -> List[T]:
        """Call ``callback`` on every member, in name order."""
        return [callback(member) for member in self.get_members()]

    def get_member(self, name: str) -> Optional[MonorepoMember]:
        return self.get_members_by_name().get(name)

    def is_member(self, name: str) -> bool:
        return name in self.get_members_by_name()

    def get_local_dep_trees(self) -> List[DepTree]:
        """
        The local dependency forest.

        A member that appears several times in the forest is represented by
        the same node each time. A new forest is built on every call, so
        callers may prune it with ``remove_nodes_from_trees``.

        Raises:
            CyclicDependency: If local dependencies form a cycle
        """
        return build_dep_trees(self.get_members(), MonorepoMember.get_local_deps)

    def get_plan(self) -> List[List[MonorepoMember]]:
        """
        The build steps.

        Each step must be completely done before the next one starts, but the
        members of a step can be processed in parallel.
        """
        if self._plan is None:
            self._plan = make_plan(self.get_local_dep_trees())
            log_plan_computed(
                self.top, [[member.get_name() for member in step] for step in self._plan]
            )
        return self._plan

    def verify_deps(self) -> List[str]:
        """Verify the root manifest and every member's dependencies."""
        return verify_monorepo_deps(self)

    def update_local_versions(self, new_version: str) -> None:
        """
        Update the version of every package and of their local dependencies.

        Raises:
            InvalidVersion: If ``new_version`` is not valid semver
        """
        if not is_valid_version(new_version):
            raise InvalidVersion(new_version)

        self.map_members(lambda member: member.update_local_versions(new_version))

        data = self.get_json_copy()
        data["version"] = new_version
        self.write_json(data)

    def set_script(self, script_name: str, content: str, overwrite: bool = False) -> None:
        """
        Set a script in every member. The root package.json is not modified.

        Without ``overwrite`` all members are checked first, so either every
        member gets the script or nothing is written.

        Raises:
            ScriptConflict: If the script exists somewhere and overwrite is False
        """
        if not overwrite:
            conflicts = [
                member.get_name()
                for member in self.get_members()
                if member.has_script(script_name)
            ]
            if conflicts:
                raise ScriptConflict(
                    f"{self.get_name()}: trying to overwrite script {script_name} "
                    f"in {', '.join(conflicts)}",
                    conflicts,
                )

        self.map_members(lambda member: member.set_script(script_name, content, overwrite=True))

    def del_script(self, script_name: str) -> None:
        """Delete a script from every member that has it."""
        self.map_members(lambda member: member.del_script(script_name))

    def remove_local_from_file(self, file_path: str) -> None:
        """
        Remove the local packages from a lock file.

        The file is deleted if only local packages were listed in it.
        """
        path = Path(file_path)
        data: Any
        data, layout = read_json_document(path)
        if not isinstance(data, dict):
            raise ManifestError(f"{path} does not contain a JSON object")

        deps = data.get("dependencies")
        if not isinstance(deps, dict):
            return

        remaining = {name: value for name, value in deps.items() if not self.is_member(name)}
        if not remaining:
            path.unlink()
            get_graph_logger().info("lockfile_removed", path=str(path))
            return

        if len(remaining) != len(deps):
            data["dependencies"] = remaining
            write_json_file(path, data, layout)

    def remove_local_from_files(self, files: Sequence[str]) -> None:
        for file_path in files:
            self.remove_local_from_file(file_path)

