"""
Tests for member discovery and repository-wide edits.
"""

import pytest

from conftest import ROOT_JSON, make_monorepo, read_json, write_json
from monist.error_handling import (
    DuplicateMemberName,
    InvalidVersion,
    MissingMemberDeclaration,
    ScriptConflict,
)
from monist.monorepo import Monorepo


class TestMembers:
    """Test member discovery."""

    def test_members_in_name_order(self, good_repo):
        monorepo = Monorepo(str(good_repo))
        assert [m.get_name() for m in monorepo.get_members()] == [
            "@abc/package-a",
            "@abc/package-b",
            "@abc/package-c",
            "@abc/package-d",
        ]

    def test_member_lookup(self, good_repo):
        monorepo = Monorepo(str(good_repo))
        assert monorepo.is_member("@abc/package-b")
        assert not monorepo.is_member("lodash")
        assert monorepo.get_member("@abc/package-b").top == str(good_repo / "packages" / "package-b")
        assert monorepo.get_member("lodash") is None

    def test_local_deps(self, good_repo):
        monorepo = Monorepo(str(good_repo))
        c = monorepo.get_member("@abc/package-c")
        assert [dep.get_name() for dep in c.get_local_deps()] == [
            "@abc/package-a",
            "@abc/package-b",
        ]
        assert monorepo.get_member("@abc/package-d").get_local_deps() == []

    def test_self_dependency_ignored(self, temp_dir):
        repo = make_monorepo(
            temp_dir, ROOT_JSON, {"a": {"name": "a", "devDependencies": {"a": "1.0.0"}}}
        )
        member = Monorepo(str(repo)).get_member("a")
        assert member.get_local_deps() == []

    def test_duplicate_names(self, duplicate_repo):
        with pytest.raises(DuplicateMemberName) as exc_info:
            Monorepo(str(duplicate_repo)).get_members()

        one = duplicate_repo / "packages" / "one"
        two = duplicate_repo / "packages" / "two"
        assert str(exc_info.value) == f"duplicate package name @abc/same at {one} and {two}"

    def test_missing_workspaces(self, temp_dir):
        write_json(temp_dir / "package.json", {"name": "root"})
        with pytest.raises(MissingMemberDeclaration) as exc_info:
            Monorepo(str(temp_dir)).get_members()
        assert str(exc_info.value) == "workspaces must be defined"

    def test_empty_workspaces(self, temp_dir):
        write_json(temp_dir / "package.json", {"name": "root", "workspaces": []})
        with pytest.raises(MissingMemberDeclaration):
            Monorepo(str(temp_dir)).get_members()

    def test_yarn_workspaces_object(self, temp_dir):
        root_json = dict(ROOT_JSON, workspaces={"packages": ["packages/*"]})
        repo = make_monorepo(temp_dir, root_json, {"a": {"name": "a"}})
        assert [m.get_name() for m in Monorepo(str(repo)).get_members()] == ["a"]

    def test_files_matching_pattern_are_skipped(self, good_repo):
        (good_repo / "packages" / "README.md").write_text("docs", encoding="utf-8")
        assert len(Monorepo(str(good_repo)).get_members()) == 4


class TestUpdateVersions:
    """Test version synchronization."""

    def test_update(self, good_repo):
        Monorepo(str(good_repo)).update_local_versions("1.2.3")

        assert read_json(good_repo / "package.json")["version"] == "1.2.3"
        a = read_json(good_repo / "packages" / "package-a" / "package.json")
        assert a["version"] == "1.2.3"
        assert a["dependencies"] == {"lodash": "^4.17.21"}

        c = read_json(good_repo / "packages" / "package-c" / "package.json")
        assert c["version"] == "1.2.3"
        assert c["dependencies"] == {"@abc/package-a": "1.2.3"}
        assert c["devDependencies"] == {"@abc/package-b": "1.2.3"}
        assert c["peerDependencies"] == {"react": "^18.0.0"}

    def test_prerelease(self, good_repo):
        Monorepo(str(good_repo)).update_local_versions("2.0.0-rc.1")
        b = read_json(good_repo / "packages" / "package-b" / "package.json")
        assert b["dependencies"]["@abc/package-a"] == "2.0.0-rc.1"

    @pytest.mark.parametrize("version", ["1.2", "v1.2.3", "latest", ""])
    def test_invalid_version_writes_nothing(self, good_repo, version):
        before = (good_repo / "packages" / "package-b" / "package.json").read_text()

        with pytest.raises(InvalidVersion) as exc_info:
            Monorepo(str(good_repo)).update_local_versions(version)

        assert str(exc_info.value) == f"{version} is not a valid semver version"
        assert (good_repo / "packages" / "package-b" / "package.json").read_text() == before
        assert read_json(good_repo / "package.json")["version"] == "0.0.0"


class TestScripts:
    """Test script editing across members."""

    def test_set_script_everywhere(self, good_repo):
        Monorepo(str(good_repo)).set_script("lint", "eslint .")

        for directory in ("package-a", "package-b", "package-c", "package-d"):
            manifest = read_json(good_repo / "packages" / directory / "package.json")
            assert manifest["scripts"]["lint"] == "eslint ."
        assert "scripts" not in read_json(good_repo / "package.json")

    def test_conflict_writes_nothing(self, good_repo):
        b_before = (good_repo / "packages" / "package-b" / "package.json").read_text()

        with pytest.raises(ScriptConflict) as exc_info:
            Monorepo(str(good_repo)).set_script("build", "babel")

        assert str(exc_info.value) == (
            "@abc/monorepo: trying to overwrite script build in @abc/package-a"
        )
        assert exc_info.value.conflicts == ["@abc/package-a"]
        assert (good_repo / "packages" / "package-b" / "package.json").read_text() == b_before
        a = read_json(good_repo / "packages" / "package-a" / "package.json")
        assert a["scripts"]["build"] == "tsc"

    def test_conflicts_in_several_members(self, good_repo):
        c_path = good_repo / "packages" / "package-c" / "package.json"
        c = read_json(c_path)
        c["scripts"] = {"build": "webpack"}
        write_json(c_path, c)
        before = {
            directory: (good_repo / "packages" / directory / "package.json").read_bytes()
            for directory in ("package-a", "package-b", "package-c", "package-d")
        }

        with pytest.raises(ScriptConflict) as exc_info:
            Monorepo(str(good_repo)).set_script("build", "babel")

        assert exc_info.value.conflicts == ["@abc/package-a", "@abc/package-c"]
        assert str(exc_info.value) == (
            "@abc/monorepo: trying to overwrite script build in "
            "@abc/package-a, @abc/package-c"
        )
        for directory, content in before.items():
            assert (good_repo / "packages" / directory / "package.json").read_bytes() == content

    def test_overwrite(self, good_repo):
        Monorepo(str(good_repo)).set_script("build", "babel", overwrite=True)
        for directory in ("package-a", "package-d"):
            manifest = read_json(good_repo / "packages" / directory / "package.json")
            assert manifest["scripts"]["build"] == "babel"

    def test_del_script(self, good_repo):
        d_before = (good_repo / "packages" / "package-d" / "package.json").read_text()

        Monorepo(str(good_repo)).del_script("build")

        a = read_json(good_repo / "packages" / "package-a" / "package.json")
        assert a["scripts"] == {}
        assert (good_repo / "packages" / "package-d" / "package.json").read_text() == d_before


class TestLockFiles:
    """Test removing members from lock files."""

    def test_only_local_deps_deletes_file(self, good_repo):
        lock = good_repo / "packages" / "package-c" / "package-lock.json"
        write_json(
            lock,
            {"name": "@abc/package-c", "dependencies": {"@abc/package-a": {"version": "0.0.0"}}},
        )

        Monorepo(str(good_repo)).remove_local_from_file(str(lock))

        assert not lock.exists()

    def test_mixed_deps_rewrites_file(self, good_repo):
        lock = good_repo / "packages" / "package-c" / "package-lock.json"
        write_json(
            lock,
            {
                "name": "@abc/package-c",
                "dependencies": {
                    "@abc/package-a": {"version": "0.0.0"},
                    "lodash": {"version": "4.17.21"},
                },
            },
        )

        Monorepo(str(good_repo)).remove_local_from_files([str(lock)])

        assert read_json(lock)["dependencies"] == {"lodash": {"version": "4.17.21"}}

    def test_no_local_deps_untouched(self, good_repo):
        lock = good_repo / "package-lock.json"
        lock.write_text('{"dependencies": {"lodash": {}}}', encoding="utf-8")

        Monorepo(str(good_repo)).remove_local_from_file(str(lock))

        assert lock.read_text(encoding="utf-8") == '{"dependencies": {"lodash": {}}}'

    def test_rewrite_keeps_layout(self, good_repo):
        lock = good_repo / "package-lock.json"
        lock.write_text(
            '{\n    "dependencies": {\n        "@abc/package-a": {},\n        "lodash": {}\n    }\n}\n',
            encoding="utf-8",
        )

        Monorepo(str(good_repo)).remove_local_from_file(str(lock))

        assert lock.read_text(encoding="utf-8") == (
            '{\n    "dependencies": {\n        "lodash": {}\n    }\n}\n'
        )
