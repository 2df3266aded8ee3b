"""Environment validation utilities.

Checks the interpreter and installed packages against pyproject.toml before
the services are built, so a broken install fails with a readable message
instead of an ImportError deep inside a coordinator.
"""

import logging
import sys
import tomllib
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Any

from packaging.requirements import InvalidRequirement, Requirement
from packaging.specifiers import InvalidSpecifier, SpecifierSet

logger = logging.getLogger(__name__)

# Go up from utils/ to src/ to project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def _load_project_table(project_root: Path) -> dict[str, Any] | None:
    pyproject_path = project_root / "pyproject.toml"
    if not pyproject_path.exists():
        logger.debug("No pyproject.toml at %s, skipping environment check", project_root)
        return None
    try:
        with open(pyproject_path, "rb") as f:
            config = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        logger.warning("Could not read pyproject.toml: %s", e)
        return None
    project = config.get("project")
    return project if isinstance(project, dict) else None


def find_environment_problems(project_root: Path = PROJECT_ROOT) -> list[str]:
    """List mismatches between the running environment and pyproject.toml.

    Returns:
        Human-readable problems; empty when everything is satisfied.
    """
    project = _load_project_table(project_root)
    if project is None:
        return []

    problems: list[str] = []
    running = ".".join(str(part) for part in sys.version_info[:3])
    requires_python = project.get("requires-python")
    if requires_python:
        try:
            if not SpecifierSet(requires_python).contains(running):
                problems.append(f"Python {requires_python} is required, running {running}")
        except InvalidSpecifier:
            logger.warning("Ignoring invalid requires-python: %s", requires_python)

    for dep_string in project.get("dependencies", []):
        try:
            req = Requirement(dep_string)
        except InvalidRequirement:
            continue
        try:
            installed = get_version(req.name)
        except PackageNotFoundError:
            problems.append(f"{req.name}{req.specifier} is not installed")
            continue
        if req.specifier and not req.specifier.contains(installed, prereleases=True):
            problems.append(f"{req.name}: installed {installed}, requires {req.specifier}")

    return problems


def check_environment(project_root: Path = PROJECT_ROOT) -> None:
    """Exit with a readable message if the environment cannot run the app.

    Raises:
        SystemExit: If Python or a dependency does not satisfy pyproject.toml.
    """
    problems = find_environment_problems(project_root)
    if not problems:
        return
    for problem in problems:
        logger.error("Environment problem: %s", problem)
    print("Error: Missing or outdated dependencies:", file=sys.stderr)
    print("\n".join(f"  {problem}" for problem in problems), file=sys.stderr)
    print("\nRun: pip install .", file=sys.stderr)
    sys.exit(1)
