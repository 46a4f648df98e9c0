"""
Console output for monist.

Informational messages go to stdout and errors to stderr, each prefixed
with the tool name. Plans and dependency trees are rendered with Rich.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

TOOL_NAME = "monist"

console = Console(highlight=False)
error_console = Console(stderr=True, highlight=False)


def log(message: str) -> None:
    """Print an informational message."""
    console.print(f"{TOOL_NAME}: {message}", markup=False, soft_wrap=True)


def error(message: str) -> None:
    """Print an error message."""
    error_console.print(f"{TOOL_NAME}: {message}", markup=False, soft_wrap=True)


class PlanReporter:
    """Formats plans and dependency forests."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(highlight=False)

    def print_plan(self, plan: Sequence[Sequence[str]], root: str) -> None:
        """
        Print the batches of a plan.

        Args:
            plan: Member names, batch by batch
            root: Repository root the plan was computed for
        """
        table = Table(
            title=f"Execution plan for {root}",
            box=box.ROUNDED,
            title_style="bold cyan",
        )
        table.add_column("Step", justify="center", style="bold")
        table.add_column("Packages")
        for index, step in enumerate(plan, 1):
            table.add_row(str(index), ", ".join(step))
        self.console.print(table)

    def print_plan_json(self, plan: Sequence[Sequence[str]]) -> None:
        self.console.print_json(json.dumps([list(step) for step in plan]))

    def print_trees(self, trees: List[Dict[str, Any]], root: str) -> None:
        """Print a forest produced by ``dump_dep_trees``."""
        forest = Tree(f"[bold blue]{root}[/bold blue]")

        def add(parent: Tree, node: Dict[str, Any]) -> None:
            branch = parent.add(node["name"])
            for dep in node["dependencies"]:
                add(branch, dep)

        for node in trees:
            add(forest, node)
        self.console.print(forest)

    def print_violations(self, violations: Sequence[str]) -> None:
        """Print dependency violations, one per line, to stderr."""
        for violation in violations:
            error(violation)
