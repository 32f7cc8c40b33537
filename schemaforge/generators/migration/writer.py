"""File writer for migration generation."""
import logging
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from schemaforge.generators.migration.ddl import schema_sql
from schemaforge.generators.migration.generator import migration_path
from schemaforge.generators.migration.render import (
    render_change_migration,
    render_create_migration,
    render_drop_migration,
)
from schemaforge.generators.migration.types import ChangeMigration, GeneratedFile, OrderedTable, TableBlueprint

log = logging.getLogger(__name__)


def build_migration_files(
    ordered: Iterable[OrderedTable] = (),
    changes: Iterable[ChangeMigration] = (),
    schema_paths: Optional[Mapping[str, str]] = None,
    dropped_blueprints: Optional[Mapping[str, TableBlueprint]] = None,
    include_sql: bool = False,
    dialect: Optional[str] = None,
) -> List[GeneratedFile]:
    """
    Render migrations as files, chaining each revision onto the previous one.

    Create migrations come first, then change migrations, each group in the
    order given. `dropped_blueprints` maps a removed schema name to its last
    known blueprint so the drop can be reversed.
    """
    ordered = list(ordered)
    files: List[GeneratedFile] = []
    previous: Optional[str] = None

    for item in ordered:
        path = migration_path(item, ".", schema_paths)
        files.append(GeneratedFile(path=path.as_posix(), content=render_create_migration(item, previous)))
        previous = item.timestamp

    for migration in changes:
        path = migration_path(migration, ".", schema_paths)
        if migration.verb == "drop":
            blueprint = (dropped_blueprints or {}).get(migration.schema_name)
            content = render_drop_migration(migration, previous, blueprint)
        else:
            content = render_change_migration(migration, previous)
        files.append(GeneratedFile(path=path.as_posix(), content=content))
        previous = migration.timestamp

    if include_sql and ordered:
        files.append(GeneratedFile(path="schema.sql", content=schema_sql(ordered, dialect)))

    log.info("Rendered %d migration files", len(files))
    return files


def write_files(files: List[GeneratedFile], out_dir: Path) -> None:
    """
    Write generated files to the output directory.

    Args:
        files: List of GeneratedFile objects to write
        out_dir: Base output directory path
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    for file in files:
        file_path = out_dir / file.path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(file.content, encoding="utf-8")
        log.debug("Wrote %s", file_path)
