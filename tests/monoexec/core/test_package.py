"""Tests for manifest parsing and local dependency resolution."""

from pathlib import Path

import pytest

from monoexec.core.package import Package, read_manifest, resolve_local_dependencies
from monoexec.errors import ValidationError


class TestReadManifest:
    """read_manifest() over pyproject.toml and package.json."""

    def test_reads_pyproject(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text(
            "[project]\n"
            'name = "alpha"\n'
            'version = "0.3.0"\n'
            'dependencies = ["beta>=1.0", "requests[socks]; python_version > \'3.8\'"]\n'
            "[project.optional-dependencies]\n"
            'test = ["gamma"]\n',
            encoding="utf-8",
        )

        pkg = read_manifest(tmp_path)

        assert pkg is not None
        assert pkg.name == "alpha"
        assert pkg.version == "0.3.0"
        assert pkg.location == tmp_path.resolve()
        assert pkg.manifest_path == tmp_path / "pyproject.toml"
        assert pkg.declared_dependencies == ("beta", "requests", "gamma")
        assert pkg.local_dependencies == frozenset()

    def test_reads_package_json_dependency_groups(self, tmp_path):
        (tmp_path / "package.json").write_text(
            '{"name": "web", "version": "2.0.0",'
            ' "dependencies": {"api": "^1.0.0"},'
            ' "devDependencies": {"build-tools": "*", "api": "^1.0.0"},'
            ' "peerDependencies": {"react": ">=18"}}',
            encoding="utf-8",
        )

        pkg = read_manifest(tmp_path)

        assert pkg.name == "web"
        assert pkg.declared_dependencies == ("api", "build-tools", "react")

    def test_pyproject_preferred_over_package_json(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "py-name"\n', encoding="utf-8")
        (tmp_path / "package.json").write_text('{"name": "js-name"}', encoding="utf-8")

        assert read_manifest(tmp_path).name == "py-name"

    def test_directory_without_manifest(self, tmp_path):
        assert read_manifest(tmp_path) is None

    def test_missing_name_is_invalid(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[project]\nversion = "1"\n', encoding="utf-8")

        with pytest.raises(ValidationError, match="no \\[project\\].name"):
            read_manifest(tmp_path)

    def test_broken_json_is_invalid(self, tmp_path):
        (tmp_path / "package.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(ValidationError, match="Invalid manifest"):
            read_manifest(tmp_path)

    def test_unparsable_requirement_is_skipped(self, tmp_path, caplog):
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "alpha"\ndependencies = ["beta", "not a valid !! spec"]\n',
            encoding="utf-8",
        )

        pkg = read_manifest(tmp_path)

        assert pkg.declared_dependencies == ("beta",)
        assert "Skipping unparsable requirement" in caplog.text


class TestResolveLocalDependencies:
    """Only declared names that are workspace packages become local dependencies."""

    def _pkg(self, name: str, *deps: str) -> Package:
        return Package(name=name, location=Path("/ws") / name, declared_dependencies=deps)

    def test_keeps_only_workspace_names(self):
        packages = [self._pkg("app", "lib", "requests"), self._pkg("lib")]

        resolved = resolve_local_dependencies(packages)

        assert resolved[0].local_dependencies == frozenset({"lib"})
        assert resolved[1].local_dependencies == frozenset()

    def test_python_names_compare_canonicalized(self):
        packages = [self._pkg("app", "My_Lib"), self._pkg("my-lib")]

        resolved = resolve_local_dependencies(packages)

        assert resolved[0].local_dependencies == frozenset({"my-lib"})

    def test_self_dependency_is_kept(self):
        resolved = resolve_local_dependencies([self._pkg("loop", "loop")])

        assert resolved[0].local_dependencies == frozenset({"loop"})

    def test_order_and_records_preserved(self):
        packages = [self._pkg("b"), self._pkg("a", "b")]

        resolved = resolve_local_dependencies(packages)

        assert [pkg.name for pkg in resolved] == ["b", "a"]
        assert packages[1].local_dependencies == frozenset()
