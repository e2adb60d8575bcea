"""Package records and manifest parsing.

A package is a directory holding either a ``pyproject.toml`` or a
``package.json``. Only the name, version and the names of declared
dependencies are read; versions and ranges are never resolved.
"""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from monoexec.errors import ValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "Package",
    "MANIFEST_NAMES",
    "read_manifest",
    "resolve_local_dependencies",
]

# Preference order when a directory carries more than one manifest
MANIFEST_NAMES = ("pyproject.toml", "package.json")

_NPM_DEPENDENCY_KEYS = (
    "dependencies",
    "devDependencies",
    "optionalDependencies",
    "peerDependencies",
)


@dataclass(frozen=True)
class Package:
    """A workspace member.

    Attributes:
        name: Unique package name within the workspace
        location: Absolute path of the package directory
        local_dependencies: Names of other workspace packages this one depends on
        version: Declared version, if any
        manifest_path: Manifest the record was read from
        declared_dependencies: Every dependency name from the manifest,
            local or not
    """

    name: str
    location: Path
    local_dependencies: frozenset[str] = field(default_factory=frozenset)
    version: str | None = None
    manifest_path: Path | None = None
    declared_dependencies: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.name


def _read_pyproject(path: Path) -> tuple[str, str | None, list[str]]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ValidationError(f"Invalid manifest {path}: {e}") from e

    project = data.get("project") or {}
    name = project.get("name")
    if not isinstance(name, str) or not name:
        raise ValidationError(f"Manifest {path} has no [project].name")

    specs: list[str] = list(project.get("dependencies") or [])
    for group in (project.get("optional-dependencies") or {}).values():
        specs.extend(group or [])

    names: list[str] = []
    for spec in specs:
        try:
            names.append(Requirement(spec).name)
        except InvalidRequirement:
            logger.warning(f"Skipping unparsable requirement {spec!r} in {path}")
    version = project.get("version")
    return name, str(version) if version is not None else None, names


def _read_package_json(path: Path) -> tuple[str, str | None, list[str]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Invalid manifest {path}: {e}") from e

    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise ValidationError(f"Manifest {path} has no name")

    names: list[str] = []
    for key in _NPM_DEPENDENCY_KEYS:
        names.extend((data.get(key) or {}).keys())
    return name, data.get("version"), names


def read_manifest(location: Path) -> Package | None:
    """Read the package manifest in ``location``.

    Returns:
        Package with ``local_dependencies`` still empty, or None when the
        directory has no manifest.

    Raises:
        ValidationError: If the manifest exists but cannot be parsed.
    """
    for manifest_name in MANIFEST_NAMES:
        manifest = location / manifest_name
        if not manifest.is_file():
            continue
        if manifest_name == "pyproject.toml":
            name, version, deps = _read_pyproject(manifest)
        else:
            name, version, deps = _read_package_json(manifest)
        return Package(
            name=name,
            location=location.resolve(),
            version=version,
            manifest_path=manifest,
            declared_dependencies=tuple(dict.fromkeys(deps)),
        )
    return None


def resolve_local_dependencies(packages: list[Package]) -> list[Package]:
    """Fill ``local_dependencies`` with the declared names that are workspace packages.

    Python names are compared canonicalized (``My_Pkg`` == ``my-pkg``); the
    stored dependency is always the workspace package's own spelling.
    """
    by_canonical = {canonicalize_name(pkg.name): pkg.name for pkg in packages}
    by_exact = {pkg.name for pkg in packages}

    resolved: list[Package] = []
    for pkg in packages:
        local: set[str] = set()
        for dep in pkg.declared_dependencies:
            if dep in by_exact:
                target = dep
            else:
                target = by_canonical.get(canonicalize_name(dep))
            if target is not None:
                local.add(target)
        resolved.append(replace(pkg, local_dependencies=frozenset(local)))
    return resolved
