"""
Shared fixtures: monorepo layouts written into temporary directories.
"""

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from monist.cli_config import reset_config
from monist.error_handling import setup_error_handling

setup_error_handling()

ROOT_JSON = {
    "name": "@abc/monorepo",
    "version": "0.0.0",
    "private": True,
    "workspaces": ["packages/*"],
    "devDependencies": {
        "lodash": "^4.17.21",
        "react": "^18.2.0",
        "typescript": "~5.0.0",
    },
}

GOOD_MEMBERS = {
    "package-a": {
        "name": "@abc/package-a",
        "version": "0.0.0",
        "dependencies": {"lodash": "^4.17.21"},
        "scripts": {"build": "tsc"},
    },
    "package-b": {
        "name": "@abc/package-b",
        "version": "0.0.0",
        "dependencies": {"@abc/package-a": "0.0.0"},
    },
    "package-c": {
        "name": "@abc/package-c",
        "version": "0.0.0",
        "dependencies": {"@abc/package-a": "0.0.0"},
        "devDependencies": {"@abc/package-b": "0.0.0"},
        "peerDependencies": {"react": "^18.0.0"},
    },
    "package-d": {
        "name": "@abc/package-d",
        "version": "0.0.0",
    },
}


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def make_monorepo(root: Path, root_json: Dict[str, Any], members: Dict[str, Dict[str, Any]]) -> Path:
    """Write a root package.json and one package.json per member under packages/."""
    write_json(root / "package.json", root_json)
    for directory, manifest in members.items():
        write_json(root / "packages" / directory / "package.json", manifest)
    return root


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test loads configuration from scratch."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_dir(tmp_path):
    """Create a temporary directory for test files."""
    return tmp_path


@pytest.fixture
def good_repo(tmp_path) -> Path:
    """
    A consistent monorepo.

    b depends on a, c depends on a and b, d stands alone.
    """
    return make_monorepo(tmp_path / "monorepo-good", ROOT_JSON, GOOD_MEMBERS)


@pytest.fixture
def dep_errors_repo(tmp_path) -> Path:
    """A monorepo breaking every dependency rule."""
    root_json = dict(ROOT_JSON, dependencies={"express": "^4.0.0"})
    members = {
        "package-a": {
            "name": "@abc/package-a",
            "version": "0.0.0",
            "dependencies": {"lodash": "^4.0.0", "left-pad": "1.0.0"},
            "optionalDependencies": {"left-pad": "1.0.0"},
            "devDependencies": {"jest": "^29.0.0"},
            "peerDependencies": {"react": "^17.0.0"},
        },
        "package-b": {
            "name": "@abc/package-b",
            "version": "0.0.0",
            "dependencies": {"@abc/package-a": "0.0.0", "lodash": "^4.17.21"},
        },
    }
    return make_monorepo(tmp_path / "monorepo-dep-errors", root_json, members)


@pytest.fixture
def duplicate_repo(tmp_path) -> Path:
    """Two members declaring the same name."""
    members = {
        "one": {"name": "@abc/same", "version": "0.0.0"},
        "two": {"name": "@abc/same", "version": "0.0.0"},
    }
    return make_monorepo(tmp_path / "monorepo-duplicate", ROOT_JSON, members)


@pytest.fixture
def cyclic_repo(tmp_path) -> Path:
    """a -> b -> c -> a, plus d depending on a."""
    members = {
        "package-a": {"name": "a", "version": "0.0.0", "dependencies": {"b": "0.0.0"}},
        "package-b": {"name": "b", "version": "0.0.0", "dependencies": {"c": "0.0.0"}},
        "package-c": {"name": "c", "version": "0.0.0", "dependencies": {"a": "0.0.0"}},
        "package-d": {"name": "d", "version": "0.0.0", "dependencies": {"a": "0.0.0"}},
    }
    return make_monorepo(tmp_path / "monorepo-cyclic", ROOT_JSON, members)
