"""
Tests for package.json access and dependency tables.
"""

import pytest

from conftest import read_json, write_json
from monist.dependency import DependencyKind, dependency_table, iter_dependencies, parse_name
from monist.error_handling import ManifestError, ScriptConflict
from monist.manifest import JsonLayout, Package


class TestPackage:
    """Test reading and writing a single package.json."""

    def test_reads_name_and_deps(self, temp_dir):
        write_json(
            temp_dir / "package.json",
            {
                "name": "pkg",
                "dependencies": {"x": "1.0.0"},
                "devDependencies": {"y": "2.0.0"},
                "bundledDependencies": ["z"],
            },
        )
        pkg = Package(str(temp_dir))

        assert pkg.get_name() == "pkg"
        assert pkg.get_deps() == {"x", "y", "z"}

    def test_cached_json_is_immutable(self, temp_dir):
        write_json(temp_dir / "package.json", {"name": "pkg", "scripts": {"a": "b"}})
        pkg = Package(str(temp_dir))

        with pytest.raises(TypeError):
            pkg.get_json()["name"] = "other"
        with pytest.raises(TypeError):
            pkg.get_json()["scripts"]["a"] = "c"

    def test_write_does_not_update_cache(self, temp_dir):
        write_json(temp_dir / "package.json", {"name": "pkg", "version": "1.0.0"})
        pkg = Package(str(temp_dir))
        pkg.get_json()

        data = pkg.get_json_copy()
        data["version"] = "2.0.0"
        pkg.write_json(data)

        assert pkg.get_json()["version"] == "1.0.0"
        assert Package(str(temp_dir)).get_json()["version"] == "2.0.0"

    def test_written_format(self, temp_dir):
        pkg_dir = temp_dir
        write_json(pkg_dir / "package.json", {"name": "pkg", "version": "1.0.0"})
        pkg = Package(str(pkg_dir))

        pkg.write_json({"name": "pkg", "version": "1.0.1"})

        text = (pkg_dir / "package.json").read_text(encoding="utf-8")
        assert text == '{\n  "name": "pkg",\n  "version": "1.0.1"\n}'

    def test_keeps_trailing_newline(self, temp_dir):
        path = temp_dir / "package.json"
        path.write_text(
            '{\n  "name": "a",\n  "scripts": {\n    "test": "x"\n  }\n}\n', encoding="utf-8"
        )

        assert Package(str(temp_dir)).del_script("test") is True
        assert path.read_text(encoding="utf-8") == '{\n  "name": "a",\n  "scripts": {}\n}\n'

    def test_keeps_indentation(self, temp_dir):
        path = temp_dir / "package.json"
        path.write_text('{\n    "name": "a"\n}\n', encoding="utf-8")

        Package(str(temp_dir)).set_script("build", "tsc")

        assert path.read_text(encoding="utf-8") == (
            '{\n    "name": "a",\n    "scripts": {\n        "build": "tsc"\n    }\n}\n'
        )

    def test_keeps_tab_indentation(self, temp_dir):
        path = temp_dir / "package.json"
        path.write_text('{\n\t"name": "a",\n\t"version": "1.0.0"\n}', encoding="utf-8")
        pkg = Package(str(temp_dir))

        data = pkg.get_json_copy()
        data["version"] = "2.0.0"
        pkg.write_json(data)

        assert path.read_text(encoding="utf-8") == '{\n\t"name": "a",\n\t"version": "2.0.0"\n}'

    def test_layout_detection(self):
        assert JsonLayout.detect('{"name": "a"}') == JsonLayout(2, False)
        assert JsonLayout.detect('{\n   "name": "a"\n}\n') == JsonLayout(3, True)

    def test_write_failure(self, temp_dir):
        write_json(temp_dir / "package.json", {"name": "pkg"})
        pkg = Package(str(temp_dir))
        pkg.get_json()
        (temp_dir / "package.json").unlink()
        (temp_dir / "package.json").mkdir()

        with pytest.raises(ManifestError) as exc_info:
            pkg.write_json({"name": "pkg"})
        assert "cannot write" in str(exc_info.value)

    def test_missing_manifest(self, temp_dir):
        with pytest.raises(ManifestError):
            Package(str(temp_dir)).get_json()

    def test_malformed_manifest(self, temp_dir):
        (temp_dir / "package.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(ManifestError):
            Package(str(temp_dir)).get_json()

    def test_missing_name(self, temp_dir):
        write_json(temp_dir / "package.json", {"version": "1.0.0"})
        with pytest.raises(ManifestError):
            Package(str(temp_dir)).get_name()


class TestScripts:
    """Test script editing on a single package."""

    def test_set_script_creates_table(self, temp_dir):
        write_json(temp_dir / "package.json", {"name": "pkg"})
        Package(str(temp_dir)).set_script("build", "tsc")

        assert read_json(temp_dir / "package.json")["scripts"] == {"build": "tsc"}

    def test_set_script_refuses_overwrite(self, temp_dir):
        write_json(temp_dir / "package.json", {"name": "pkg", "scripts": {"build": "tsc"}})

        with pytest.raises(ScriptConflict) as exc_info:
            Package(str(temp_dir)).set_script("build", "babel")

        assert "pkg: trying to overwrite script build" in str(exc_info.value)
        assert read_json(temp_dir / "package.json")["scripts"]["build"] == "tsc"

    def test_set_script_overwrite(self, temp_dir):
        write_json(temp_dir / "package.json", {"name": "pkg", "scripts": {"build": "tsc"}})
        Package(str(temp_dir)).set_script("build", "babel", overwrite=True)

        assert read_json(temp_dir / "package.json")["scripts"]["build"] == "babel"

    def test_del_script_absent_leaves_file_untouched(self, temp_dir):
        path = temp_dir / "package.json"
        path.write_text('{"name":   "pkg"}', encoding="utf-8")

        assert Package(str(temp_dir)).del_script("build") is False
        assert path.read_text(encoding="utf-8") == '{"name":   "pkg"}'

    def test_del_script(self, temp_dir):
        write_json(
            temp_dir / "package.json",
            {"name": "pkg", "scripts": {"build": "tsc", "test": "jest"}},
        )

        assert Package(str(temp_dir)).del_script("build") is True
        assert read_json(temp_dir / "package.json")["scripts"] == {"test": "jest"}


class TestDependencyTables:
    """Test dependency table helpers."""

    def test_absent_table(self):
        assert dependency_table({}, "dependencies") == {}

    def test_list_form(self):
        table = dependency_table({"bundledDependencies": ["a", "b"]}, "bundledDependencies")
        assert dict(table) == {"a": None, "b": None}

    def test_iter_dependencies_kinds(self):
        deps = list(
            iter_dependencies(
                {"dependencies": {"a": "1"}, "peerDependencies": {"b": "^2"}},
                "package.json",
            )
        )

        assert [(dep.name, dep.kind) for dep in deps] == [
            ("a", DependencyKind.RUNTIME),
            ("b", DependencyKind.PEER),
        ]
        assert deps[1].version == "^2"

    def test_parse_name(self):
        assert parse_name("@abc/package-a") == ("abc", "package-a")
        assert parse_name("lodash") == ("", "lodash")
