"""
Repository-level operations.

Each operation takes the root directory of a monorepo, loads its
configuration and works on a fresh ``Monorepo``.
"""

import asyncio
import uuid
from typing import List, Optional, Sequence

from .cli_config import MonistConfig, load_config
from .error_handling import ManifestError
from .executor import (
    ArgsSource,
    Command,
    ExecutionPolicy,
    LocalDepsStrategy,
    exec_for_all_packages,
)
from .monorepo import Monorepo
from .structured_logging import clear_run_context, set_run_context


def open_monorepo(root: str, config: Optional[MonistConfig] = None) -> Monorepo:
    """Create a ``Monorepo`` for ``root`` using its configuration."""
    return Monorepo(root, config if config is not None else load_config(root))


def default_policy(config: MonistConfig) -> ExecutionPolicy:
    """The execution policy described by the ``exec`` configuration section."""
    return ExecutionPolicy(
        serial=config.exec.serial,
        local_deps=LocalDepsStrategy.from_option(config.exec.local_deps),
        inhibit_subprocess_output=config.exec.inhibit_subprocess_output,
        max_parallel=config.exec.max_parallel,
    )


def compute_plan(root: str) -> List[List[str]]:
    """The plan of the monorepo, as member names per step."""
    plan = open_monorepo(root).get_plan()
    return [[member.get_name() for member in step] for step in plan]


async def execute_async(
    root: str,
    program: str,
    args: ArgsSource = (),
    policy: Optional[ExecutionPolicy] = None,
    config: Optional[MonistConfig] = None,
) -> None:
    """Run ``program`` with ``args`` in every member, following the plan."""
    monorepo = open_monorepo(root, config)
    if policy is None:
        policy = default_policy(monorepo.config)

    set_run_context(uuid.uuid4().hex[:12], monorepo.top, program)
    try:
        await exec_for_all_packages(monorepo, Command(program, args), policy)
    finally:
        clear_run_context()


def execute(
    root: str,
    program: str,
    args: ArgsSource = (),
    policy: Optional[ExecutionPolicy] = None,
    config: Optional[MonistConfig] = None,
) -> None:
    """
    Run ``program`` with ``args`` in every member, following the plan.

    Raises:
        StructuralError: If the plan cannot be computed; nothing is run
        ExecutionFailed: For the first command that fails
    """
    asyncio.run(execute_async(root, program, args, policy, config))


def verify_dependencies(root: str) -> List[str]:
    """The dependency violations of the monorepo (empty when consistent)."""
    return open_monorepo(root).verify_deps()


def update_versions(root: str, version: str) -> None:
    """Set every package version, and every local dependency, to ``version``."""
    open_monorepo(root).update_local_versions(version)


def set_script(root: str, name: str, content: str, overwrite: bool = False) -> None:
    open_monorepo(root).set_script(name, content, overwrite)


def del_script(root: str, name: str) -> None:
    open_monorepo(root).del_script(name)


def remove_local_from_lockfiles(root: str, files: Sequence[str]) -> None:
    """
    Remove members from lock files.

    A lock file that only lists members is deleted.
    """
    monorepo = open_monorepo(root)
    try:
        monorepo.remove_local_from_files(files)
    except OSError as e:
        raise ManifestError(f"cannot update lock file: {e}") from e
