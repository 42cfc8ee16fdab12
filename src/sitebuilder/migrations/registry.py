"""Discovery of versioned step modules.

Step modules live in migrations/versions/ and follow the layout alembic uses
for its revision files::

    revision = "20250831042618"
    down_revision = "20250830000000"
    name = "AddPerroTable"

    def upgrade() -> list[Operation]:
        ...

Only the forward operations are declared; backward operations are derived.
"""

from __future__ import annotations

import importlib.util
from pathlib import Path
from types import ModuleType

from .errors import MigrationDefinitionError
from .step import MigrationStep

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"


def _load_module(path: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(f"sitebuilder_step_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise MigrationDefinitionError(f"cannot load step module {path.name}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def step_from_module(module: ModuleType) -> MigrationStep:
    """Build a MigrationStep from a loaded step module."""
    missing = [
        attr for attr in ("revision", "down_revision", "name", "upgrade") if not hasattr(module, attr)
    ]
    if missing:
        raise MigrationDefinitionError(
            f"step module {module.__name__} is missing {', '.join(missing)}"
        )
    operations = tuple(module.upgrade())
    return MigrationStep(
        id=module.revision,
        name=module.name,
        parent=module.down_revision,
        operations=operations,
    )


def validate_chain(steps: list[MigrationStep]) -> None:
    """Check that steps form one linear chain in ascending id order.

    Raises:
        MigrationDefinitionError: On duplicate ids, unsorted steps, or a parent
            that is not the immediately preceding step.
    """
    seen: set[str] = set()
    previous: MigrationStep | None = None
    for step in steps:
        if step.id in seen:
            raise MigrationDefinitionError(f"duplicate step id {step.id}", step_id=step.id)
        seen.add(step.id)
        expected_parent = previous.id if previous else None
        if step.parent != expected_parent:
            raise MigrationDefinitionError(
                f"{step.label} builds on {step.parent}, expected {expected_parent}",
                step_id=step.id,
            )
        previous = step


def load_steps(directory: Path | None = None) -> list[MigrationStep]:
    """Load and validate all step modules, sorted by id."""
    directory = directory or VERSIONS_DIR
    steps = [
        step_from_module(_load_module(path))
        for path in sorted(directory.glob("*.py"))
        if not path.name.startswith("_")
    ]
    steps.sort(key=lambda s: s.id)
    validate_chain(steps)
    return steps
