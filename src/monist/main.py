import functools
import sys
from pathlib import Path
from typing import Any, Dict, Tuple

import click
from click.core import ParameterSource
from rich.console import Console
from rich.panel import Panel

from . import operations
from .cli_config import (
    CONFIG_FILE_NAMES,
    LOCAL_DEPS_CHOICES,
    MonistConfig,
    apply_file_config,
    combine_common_options_with_config,
    create_sample_config,
    load_config,
    load_config_file,
    validate_config_values,
)
from .error_handling import (
    ErrorCategory,
    MonistError,
    VerificationFailed,
    category_for,
    get_error_handler,
)
from .executor import ExecutionPolicy, LocalDepsStrategy
from .reporting import PlanReporter, error, log
from .structured_logging import configure_logging
from .tree import dump_dep_trees

__version__ = "1.0.0"

console = Console()

EXEC_CONTEXT_SETTINGS = {
    "ignore_unknown_options": True,
    "allow_interspersed_args": False,
}


def reports_errors(func):
    """
    Print monist and filesystem errors as ``monist: Error: <message>``.

    The error is logged once, here, and the command exits with 1.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except MonistError as e:
            get_error_handler().error(
                category_for(e), str(e), "main", func.__name__, exception=e
            )
            error(f"Error: {e}")
            sys.exit(1)
        except OSError as e:
            get_error_handler().error(
                ErrorCategory.FILESYSTEM, str(e), "main", func.__name__, exception=e
            )
            error(f"Error: {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            Console(stderr=True).print("\n⚠️  Interrupted by user", style="yellow")
            sys.exit(130)

    return wrapper


def _root(ctx: click.Context) -> str:
    return ctx.find_root().obj["root"]


def _load(ctx: click.Context) -> MonistConfig:
    config = load_config(_root(ctx))
    configure_logging(config.logging.log_level)
    return config


def exec_options(func):
    """Options shared by the commands that run something in every member."""
    func = click.option(
        "--inhibit-subprocess-output",
        is_flag=True,
        help="Discard the output of the commands",
    )(func)
    func = click.option(
        "--local-deps",
        type=click.Choice(LOCAL_DEPS_CHOICES),
        default=None,
        help="Make local dependencies available before running",
    )(func)
    func = click.option(
        "--serial",
        is_flag=True,
        help="Run the members of a step one at a time",
    )(func)
    return func


def _given_options(ctx: click.Context, **values: Any) -> Dict[str, Any]:
    """Keep only the options the user actually passed."""
    return {
        name: value
        for name, value in values.items()
        if ctx.get_parameter_source(name) not in (None, ParameterSource.DEFAULT)
    }


def _run_everywhere(
    ctx: click.Context,
    config: MonistConfig,
    command_name: str,
    cmd: Tuple[str, ...],
    program: str,
    args: Tuple[str, ...],
    **options: Any,
) -> None:
    resolved = combine_common_options_with_config(
        command_name, {"cmd": list(cmd), **_given_options(ctx, **options)}, config
    )
    policy = ExecutionPolicy(
        serial=bool(resolved["serial"]),
        local_deps=LocalDepsStrategy.from_option(resolved["local_deps"]),
        inhibit_subprocess_output=bool(resolved["inhibit_subprocess_output"]),
        max_parallel=config.exec.max_parallel,
    )
    operations.execute(_root(ctx), program, args, policy, config)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option(
    "--root",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Root directory of the monorepo",
)
@click.pass_context
def cli(ctx, version, root):
    """
    Monist: run commands across the packages of an npm monorepo

    Packages are processed in dependency order: a package is only handled
    once every package it depends on is done.
    """
    if version:
        console.print(f"monist version {__version__}", style="bold blue")
        ctx.exit()

    ctx.ensure_object(dict)
    ctx.obj["root"] = root

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command(context_settings=EXEC_CONTEXT_SETTINGS)
@exec_options
@click.argument("cmd", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
@reports_errors
def run(ctx, serial, local_deps, inhibit_subprocess_output, cmd):
    """Run an npm script in every package."""
    config = _load(ctx)
    _run_everywhere(
        ctx,
        config,
        "run",
        cmd,
        config.exec.npm_program,
        ("run", *cmd),
        serial=serial,
        local_deps=local_deps,
        inhibit_subprocess_output=inhibit_subprocess_output,
    )


@cli.command(context_settings=EXEC_CONTEXT_SETTINGS)
@exec_options
@click.argument("cmd", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
@reports_errors
def npm(ctx, serial, local_deps, inhibit_subprocess_output, cmd):
    """Run an npm command in every package."""
    config = _load(ctx)
    _run_everywhere(
        ctx,
        config,
        "npm",
        cmd,
        config.exec.npm_program,
        cmd,
        serial=serial,
        local_deps=local_deps,
        inhibit_subprocess_output=inhibit_subprocess_output,
    )


@cli.command("exec", context_settings=EXEC_CONTEXT_SETTINGS)
@exec_options
@click.argument("cmd", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
@reports_errors
def exec_command(ctx, serial, local_deps, inhibit_subprocess_output, cmd):
    """Run an arbitrary program in every package."""
    _run_everywhere(
        ctx,
        _load(ctx),
        "exec",
        cmd,
        cmd[0],
        cmd[1:],
        serial=serial,
        local_deps=local_deps,
        inhibit_subprocess_output=inhibit_subprocess_output,
    )


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
@click.pass_context
@reports_errors
def plan(ctx, as_json):
    """Show the steps in which packages are processed."""
    _load(ctx)
    steps = operations.compute_plan(_root(ctx))
    reporter = PlanReporter(console)
    if as_json:
        reporter.print_plan_json(steps)
    else:
        reporter.print_plan(steps, _root(ctx))


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the forest as JSON")
@click.pass_context
@reports_errors
def tree(ctx, as_json):
    """Show the local dependency trees."""
    config = _load(ctx)
    monorepo = operations.open_monorepo(_root(ctx), config)
    trees = dump_dep_trees(monorepo.get_local_dep_trees())
    if as_json:
        console.print_json(data=trees)
    else:
        PlanReporter(console).print_trees(trees, _root(ctx))


def _verify(ctx: click.Context) -> None:
    violations = operations.verify_dependencies(_root(ctx))
    if violations:
        PlanReporter(console).print_violations(violations)
        raise VerificationFailed(violations)


@cli.command("verify-deps")
@click.pass_context
@reports_errors
def verify_deps(ctx):
    """Check that external dependencies are declared in the root package."""
    _load(ctx)
    _verify(ctx)
    log("dependencies are consistent")


@cli.command("update-versions")
@click.argument("version")
@click.pass_context
@reports_errors
def update_versions(ctx, version):
    """Set the version of every package and of its local dependencies."""
    _load(ctx)
    _verify(ctx)
    operations.update_versions(_root(ctx), version)
    log(f"updated versions to {version}")


@cli.command("set-script")
@click.option("--overwrite", is_flag=True, help="Replace the script where it exists")
@click.argument("name")
@click.argument("content")
@click.pass_context
@reports_errors
def set_script(ctx, overwrite, name, content):
    """Add a script to every package."""
    _load(ctx)
    operations.set_script(_root(ctx), name, content, overwrite)


@cli.command("del-script")
@click.argument("name")
@click.pass_context
@reports_errors
def del_script(ctx, name):
    """Delete a script from every package."""
    _load(ctx)
    operations.del_script(_root(ctx), name)


@cli.command("remove-local-from-lockfiles")
@click.argument("files", nargs=-1, required=True, type=click.Path(dir_okay=False))
@click.pass_context
@reports_errors
def remove_local_from_lockfiles(ctx, files):
    """Remove the packages of the monorepo from lock files."""
    _load(ctx)
    operations.remove_local_from_lockfiles(_root(ctx), files)


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=None,
    help=f"Path where to create the config file [default: <root>/{CONFIG_FILE_NAMES[0]}]",
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
@click.pass_context
def config_init(ctx, path, force):
    """Create a sample configuration file."""
    config_path = Path(path) if path else Path(_root(ctx)) / CONFIG_FILE_NAMES[0]

    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())
    except OSError as e:
        error(f"Error: cannot create {config_path}: {e}")
        sys.exit(1)

    console.print(f"✅ Created configuration file at {config_path}", style="green")


@config.command("show")
@click.pass_context
@reports_errors
def config_show(ctx):
    """Show the configuration in effect for the monorepo."""
    current_config = _load(ctx)

    console.print(Panel("[bold blue]🔧 Monist Configuration[/bold blue]", border_style="blue"))
    console.print(f"Source: {current_config.source or 'defaults'}", highlight=False)

    console.print("\n[bold cyan]⚙️  Exec Settings:[/bold cyan]")
    console.print(f"  Serial: {current_config.exec.serial}")
    console.print(f"  Local Deps: {current_config.exec.local_deps or 'none'}")
    console.print(f"  Inhibit Subprocess Output: {current_config.exec.inhibit_subprocess_output}")
    console.print(f"  Max Parallel: {current_config.exec.max_parallel or 'unlimited'}")
    console.print(f"  npm Program: {current_config.exec.npm_program}")

    console.print("\n[bold cyan]📦 Local Deps Settings:[/bold cyan]")
    console.print(f"  Build Dir: {current_config.local_deps.build_dir}")

    console.print("\n[bold cyan]📝 Logging Settings:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")

    if current_config.cli_options:
        console.print("\n[bold cyan]🎯 Command Options:[/bold cyan]")
        console.print_json(data=current_config.cli_options)


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
@reports_errors
def config_validate(config_file):
    """Validate a configuration file."""
    candidate = MonistConfig()
    config_data = load_config_file(Path(config_file))
    if config_data:
        apply_file_config(candidate, config_data)

    errors = validate_config_values(candidate)
    if errors:
        for message in errors:
            error(message)
        error(f"Error: {config_file} is not valid")
        sys.exit(1)

    console.print(f"✅ Configuration file {config_file} is valid", style="green")


if __name__ == "__main__":
    cli()
