"""
package.json access for monist.

A ``Package`` caches what it reads off the disk. The cached document is
deeply immutable and is never altered: methods that modify the on-disk
manifest do not update it. To observe a write, build a new ``Package``.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Set, Tuple, Union

from .dependency import iter_dependencies
from .error_handling import ManifestError, ScriptConflict
from .structured_logging import log_manifest_written

MANIFEST_NAME = "package.json"

_INDENT_RE = re.compile(r"^([ \t]+)\S", re.MULTILINE)


def freeze(value: Any) -> Any:
    """Return a deeply immutable view of parsed JSON."""
    if isinstance(value, dict):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Return a mutable deep copy of (possibly frozen) JSON data."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class JsonLayout:
    """How a JSON document was laid out on the disk."""

    indent: Union[int, str] = 2
    trailing_newline: bool = False

    @classmethod
    def detect(cls, text: str) -> "JsonLayout":
        match = _INDENT_RE.search(text)
        indent: Union[int, str] = 2
        if match:
            whitespace = match.group(1)
            indent = whitespace if "\t" in whitespace else len(whitespace)
        return cls(indent=indent, trailing_newline=text.endswith("\n"))


def read_json_document(path: Path) -> Tuple[Any, JsonLayout]:
    """Read a JSON document and its layout, raising ManifestError on failure."""
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
        return json.loads(text), JsonLayout.detect(text)
    except (OSError, ValueError) as e:
        raise ManifestError(f"cannot read {path}: {e}") from e


def write_json_file(path: Path, data: Any, layout: Optional[JsonLayout] = None) -> None:
    """
    Write JSON keeping key order.

    Without a layout the document gets two-space indentation and no trailing
    newline.
    """
    layout = layout or JsonLayout()
    text = json.dumps(thaw(data), indent=layout.indent, ensure_ascii=False)
    if layout.trailing_newline:
        text += "\n"
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        raise ManifestError(f"cannot write {path}: {e}") from e
    log_manifest_written(str(path))


class Package:
    """Models an npm package rooted at ``top``."""

    def __init__(self, top: str):
        self.top = str(Path(top))
        self.json_path = Path(self.top) / MANIFEST_NAME
        self._json: Optional[Mapping[str, Any]] = None
        self._layout: Optional[JsonLayout] = None
        self._name: Optional[str] = None
        self._deps: Optional[Set[str]] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.top!r})"

    def get_json(self) -> Mapping[str, Any]:
        """The manifest contents, read once and deeply frozen."""
        if self._json is None:
            data, self._layout = read_json_document(self.json_path)
            if not isinstance(data, dict):
                raise ManifestError(f"{self.json_path} does not contain a JSON object")
            self._json = freeze(data)
        return self._json

    def get_json_copy(self) -> Dict[str, Any]:
        """A mutable copy of the manifest, independent from the cache."""
        return thaw(self.get_json())

    def write_json(self, data: Mapping[str, Any]) -> None:
        """
        Write new contents to the manifest.

        The indentation and final newline found when the manifest was read
        are kept. The cached data is NOT updated.
        """
        if self._layout is None and self.json_path.exists():
            self.get_json()
        write_json_file(self.json_path, data, self._layout)

    def get_name(self) -> str:
        """The package name, read from the manifest."""
        if self._name is None:
            name = self.get_json().get("name")
            if not isinstance(name, str) or not name:
                raise ManifestError(f"{self.json_path} has no name")
            self._name = name
        return self._name

    def get_deps(self) -> Set[str]:
        """Names of all declared dependencies, of every kind."""
        if self._deps is None:
            self._deps = {
                dep.name
                for dep in iter_dependencies(self.get_json(), str(self.json_path))
            }
        return self._deps

    def has_script(self, script_name: str) -> bool:
        scripts = self.get_json().get("scripts")
        return isinstance(scripts, Mapping) and script_name in scripts

    def set_script(self, script_name: str, content: str, overwrite: bool = False) -> None:
        """
        Set an entry in the ``scripts`` table.

        Args:
            script_name: Name of the script
            content: Command line of the script
            overwrite: Replace the script if it already exists

        Raises:
            ScriptConflict: If the script exists and overwrite is False
        """
        if self.has_script(script_name) and not overwrite:
            raise ScriptConflict(
                f"{self.get_name()}: trying to overwrite script {script_name}",
                [self.get_name()],
            )

        data = self.get_json_copy()
        scripts = data.get("scripts")
        if not isinstance(scripts, dict):
            scripts = data["scripts"] = {}
        scripts[script_name] = content
        self.write_json(data)

    def del_script(self, script_name: str) -> bool:
        """Remove a script. Returns False, writing nothing, if it is absent."""
        if not self.has_script(script_name):
            return False

        data = self.get_json_copy()
        del data["scripts"][script_name]
        self.write_json(data)
        return True
