"""
Execution of a command over every member of a monorepo.

Steps of the plan run strictly one after the other. Inside a step, members
run either one at a time or all concurrently. Before a member's command, its
local dependencies can be linked, installed or symlinked into its
node_modules.
"""

import asyncio
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .error_handling import (
    ErrorCategory,
    ExecutionFailed,
    InvalidCommand,
    get_error_handler,
)
from .monorepo import Monorepo, MonorepoMember
from .reporting import error, log
from .structured_logging import (
    log_command_finished,
    log_command_started,
    log_dependency_materialized,
)


class LocalDepsStrategy(Enum):
    """How local dependencies are made available to a member."""

    NONE = "none"
    LINK = "link"
    INSTALL = "install"
    SYMLINK = "symlink"

    @classmethod
    def from_option(cls, value: Optional[str]) -> "LocalDepsStrategy":
        if value is None:
            return cls.NONE
        try:
            return cls(value.lower())
        except ValueError:
            raise InvalidCommand(f"{value} is not a supported local-deps value")


@dataclass(frozen=True)
class ExecutionPolicy:
    """How a command is run across the plan."""

    serial: bool = False
    local_deps: LocalDepsStrategy = LocalDepsStrategy.NONE
    inhibit_subprocess_output: bool = False
    max_parallel: int = 0  # 0 means no limit


ArgsSource = Union[Sequence[str], Callable[[MonorepoMember], Sequence[str]]]


@dataclass(frozen=True)
class Command:
    """A program and its arguments, which may depend on the member."""

    program: str
    args: ArgsSource = ()

    def argv_for(self, member: MonorepoMember) -> List[str]:
        args = self.args(member) if callable(self.args) else self.args
        return [str(arg) for arg in args]


async def run_command(
    program: str,
    args: Sequence[str],
    cwd: str,
    inhibit_output: bool = False,
) -> None:
    """
    Run a program to completion.

    Raises:
        ExecutionFailed: If the program cannot start, exits non-zero or is
            killed by a signal
    """
    command = [program, *args]
    output = subprocess.DEVNULL if inhibit_output else None
    log_command_started(cwd, command)
    start_time = time.monotonic()

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=output,
            stderr=output,
        )
        returncode = await process.wait()
    except OSError as e:
        raise ExecutionFailed(cwd, command, reason=str(e)) from e

    log_command_finished(cwd, command, returncode, int((time.monotonic() - start_time) * 1000))

    if returncode < 0:
        try:
            signal_name = signal.Signals(-returncode).name
        except ValueError:
            signal_name = f"signal {-returncode}"
        raise ExecutionFailed(cwd, command, returncode=returncode, signal_name=signal_name)
    if returncode != 0:
        raise ExecutionFailed(cwd, command, returncode=returncode)


def dependency_path(member: MonorepoMember, dep: MonorepoMember) -> Path:
    """Where ``dep`` lives in ``member``'s node_modules."""
    # Scoped names keep their @scope directory.
    return Path(member.top, "node_modules", *dep.get_name().split("/"))


def build_output_path(dep: MonorepoMember) -> Path:
    return Path(dep.top, dep.monorepo.config.build_dir)


def _make_dirs(member: MonorepoMember, *paths: Path) -> None:
    for path in paths:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExecutionFailed(member.top, ["mkdir", str(path)], reason=str(e)) from e


async def _link(member: MonorepoMember, dep: MonorepoMember, policy: ExecutionPolicy) -> None:
    source = build_output_path(dep)
    _make_dirs(member, source)
    log(f"{member.top}: linking {dep.get_name()}")
    await run_command(
        member.monorepo.config.exec.npm_program,
        ["link", os.path.relpath(source, member.top)],
        member.top,
        policy.inhibit_subprocess_output,
    )
    log(f"{member.top}: linked {dep.get_name()}")


async def _install(member: MonorepoMember, dep: MonorepoMember, policy: ExecutionPolicy) -> None:
    log(f"{member.top}: installing {dep.get_name()}")
    await run_command(
        member.monorepo.config.exec.npm_program,
        ["install", "--no-save", os.path.relpath(build_output_path(dep), member.top)],
        member.top,
        policy.inhibit_subprocess_output,
    )
    log(f"{member.top}: installed {dep.get_name()}")


async def _symlink(member: MonorepoMember, dep: MonorepoMember, policy: ExecutionPolicy) -> None:
    source = build_output_path(dep)
    destination = dependency_path(member, dep)
    _make_dirs(member, source, destination.parent)
    target = os.path.relpath(source, destination.parent)
    log(f"{member.top}: symlinking {dep.get_name()}")
    try:
        os.symlink(target, destination, target_is_directory=True)
    except OSError as e:
        command = ["symlink", target, os.path.relpath(destination, member.top)]
        raise ExecutionFailed(member.top, command, reason=str(e)) from e
    log(f"{member.top}: symlinked {dep.get_name()}")


_ALREADY_DONE = {
    LocalDepsStrategy.LINK: "linked",
    LocalDepsStrategy.INSTALL: "installed",
    LocalDepsStrategy.SYMLINK: "symlinked",
}


async def prepare_local_deps(member: MonorepoMember, policy: ExecutionPolicy) -> None:
    """Make each local dependency of ``member`` available, one at a time."""
    strategy = policy.local_deps
    if strategy is LocalDepsStrategy.NONE:
        return
    if strategy is LocalDepsStrategy.LINK:
        action = _link
    elif strategy is LocalDepsStrategy.INSTALL:
        action = _install
    elif strategy is LocalDepsStrategy.SYMLINK:
        action = _symlink
    else:
        raise InvalidCommand(f"{strategy} is not a supported local-deps value")

    for dep in member.get_local_deps():
        present = os.path.lexists(dependency_path(member, dep))
        if present:
            log(f"{member.top}: {dep.get_name()} already {_ALREADY_DONE[strategy]}")
        else:
            await action(member, dep, policy)
        log_dependency_materialized(member.get_name(), dep.get_name(), strategy.value, present)


async def exec_for_package(
    member: MonorepoMember, command: Command, policy: ExecutionPolicy
) -> None:
    """Prepare the local dependencies of a member, then run the command in it."""
    await prepare_local_deps(member, policy)

    args = command.argv_for(member)
    pretty = " ".join([command.program, *args])
    log(f"{member.top}: started {pretty}")
    await run_command(command.program, args, member.top, policy.inhibit_subprocess_output)
    log(f"{member.top}: finished {pretty}")


async def _run_step_in_parallel(
    step: Sequence[MonorepoMember],
    command: Command,
    policy: ExecutionPolicy,
    semaphore: Optional[asyncio.Semaphore],
) -> None:
    async def limited(member: MonorepoMember) -> None:
        if semaphore is None:
            await exec_for_package(member, command, policy)
        else:
            async with semaphore:
                await exec_for_package(member, command, policy)

    # Tasks are created in step order, so they start in that order.
    tasks = [asyncio.create_task(limited(member)) for member in step]
    first_failure: Optional[Exception] = None
    for finished in asyncio.as_completed(tasks):
        try:
            await finished
        except Exception as e:
            if first_failure is None:
                first_failure = e
            else:
                error(str(e))
                get_error_handler().warning(
                    ErrorCategory.EXECUTION,
                    f"Additional failure in the same step: {e}",
                    "executor",
                    "_run_step_in_parallel",
                )

    if first_failure is not None:
        raise first_failure


async def exec_for_all_packages(
    monorepo: Monorepo, command: Command, policy: ExecutionPolicy
) -> None:
    """
    Run a command on every member, following the plan.

    The first failure stops the run: no later step starts. In parallel mode
    the other commands of the failing step are allowed to finish first.

    Raises:
        StructuralError: If the plan cannot be computed
        ExecutionFailed: For the first command that fails
    """
    if not command.program:
        raise InvalidCommand("a program to run is required")

    plan = monorepo.get_plan()
    semaphore = asyncio.Semaphore(policy.max_parallel) if policy.max_parallel > 0 else None

    for step in plan:
        if policy.serial:
            for member in step:
                await exec_for_package(member, command, policy)
        else:
            await _run_step_in_parallel(step, command, policy, semaphore)
