"""Workspace discovery: package globs to ordered Package records."""

from __future__ import annotations

import logging
from pathlib import Path

from monoexec.core.config import WorkspaceConfig
from monoexec.core.package import Package, read_manifest, resolve_local_dependencies
from monoexec.errors import ValidationError

logger = logging.getLogger(__name__)

__all__ = ["collect_packages", "load_packages"]


def collect_packages(root: Path, globs: list[str]) -> list[Package]:
    """Collect packages matched by ``globs`` under ``root``.

    Packages are ordered by glob, then by location within each glob. A
    directory matched by more than one glob is kept at its first position.

    Raises:
        ValidationError: If two packages share a name.
    """
    seen_locations: set[Path] = set()
    packages: list[Package] = []
    names: dict[str, Path] = {}

    for pattern in globs:
        for location in sorted(root.glob(pattern)):
            if not location.is_dir():
                continue
            location = location.resolve()
            if location in seen_locations:
                continue
            seen_locations.add(location)

            package = read_manifest(location)
            if package is None:
                logger.debug(f"Skipping {location}: no package manifest")
                continue
            if package.name in names:
                raise ValidationError(
                    f"Package name '{package.name}' is used by both "
                    f"{names[package.name]} and {location}"
                )
            names[package.name] = location
            packages.append(package)

    return resolve_local_dependencies(packages)


def load_packages(config: WorkspaceConfig) -> list[Package]:
    """Load every workspace package described by ``config``."""
    packages = collect_packages(config.root, config.packages)
    logger.debug(f"Found {len(packages)} packages in {config.root}")
    return packages
