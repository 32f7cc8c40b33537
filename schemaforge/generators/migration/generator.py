"""
Migration generation entry points.

Full generation builds every entity table plus derived join tables and orders
them by dependency. Change generation turns schema change records into update
and drop migrations.
"""
import logging
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Union

from schemaforge.core.config import settings
from schemaforge.schemas.changes import SchemaChange
from schemaforge.schemas.entities import EntityCollection
from schemaforge.generators.migration.alter import build_change_operations, drop_table_operations
from schemaforge.generators.migration.blueprint import BlueprintOptions, build_blueprint, resolve_table_name
from schemaforge.generators.migration.ordering import increment_timestamp, order_tables, resolve_base_timestamp
from schemaforge.generators.migration.relationships import (
    extract_many_to_many,
    extract_morph_to_many,
    morph_to_many_pivot_blueprint,
    pivot_table_blueprint,
)
from schemaforge.generators.migration.types import (
    ChangeMigration,
    OrderedTable,
    TableEntry,
    TableKind,
)

log = logging.getLogger(__name__)


def collect_tables(
    entities: EntityCollection,
    options: Optional[BlueprintOptions] = None,
) -> List[TableEntry]:
    """Entity tables in declaration order, followed by derived join tables."""
    entries: List[TableEntry] = []
    for name, entity in entities.items():
        if not entity.is_table:
            continue
        partners = tuple(resolve_table_name(p, entities) for p in entity.pivot_for or ())
        entries.append(TableEntry(
            identity_name=name,
            blueprint=build_blueprint(entity, entities, options),
            schema_name=name,
            kind=TableKind.ENTITY,
            depends_on=partners,
        ))

    # A derived join table never shadows an entity table or an earlier join table
    seen = {entry.table_name for entry in entries}
    for name, entity in entities.items():
        if not entity.is_table:
            continue
        for pivot in extract_many_to_many(entity, entities):
            if pivot.table_name in seen:
                log.debug("Join table %s already generated", pivot.table_name, extra={"schema": name})
                continue
            seen.add(pivot.table_name)
            entries.append(TableEntry(
                identity_name=pivot.table_name,
                blueprint=pivot_table_blueprint(pivot),
                kind=TableKind.PIVOT,
            ))
        for morph_pivot in extract_morph_to_many(entity, entities):
            if morph_pivot.table_name in seen:
                log.debug("Join table %s already generated", morph_pivot.table_name, extra={"schema": name})
                continue
            seen.add(morph_pivot.table_name)
            entries.append(TableEntry(
                identity_name=morph_pivot.table_name,
                blueprint=morph_to_many_pivot_blueprint(morph_pivot),
                kind=TableKind.MORPH_PIVOT,
            ))
    return entries


def generate_migrations(
    entities: EntityCollection,
    options: Optional[BlueprintOptions] = None,
    timestamp: Optional[str] = None,
) -> List[OrderedTable]:
    """All tables for a collection in creation order, each with its own timestamp."""
    entries = collect_tables(entities, options)
    log.info("Generating create migrations for %d tables", len(entries))
    return order_tables(entries, timestamp=timestamp)


def generate_change_migrations(
    changes: Iterable[SchemaChange],
    all_entities: Optional[EntityCollection] = None,
    timestamp: Optional[str] = None,
    options: Optional[BlueprintOptions] = None,
) -> List[ChangeMigration]:
    """
    Update migrations for modified entities and drop migrations for removed ones.

    Added entities are left to full generation. Timestamps follow input order.
    """
    base = resolve_base_timestamp(timestamp)
    migrations: List[ChangeMigration] = []

    for change in changes:
        if change.change_type == "modified":
            operations = build_change_operations(change, all_entities, options)
            if operations is None:
                continue
            verb = "update"
        elif change.change_type == "removed":
            operations = drop_table_operations(change.schema_name, all_entities)
            verb = "drop"
        else:
            log.debug("Skipping added schema", extra={"schema": change.schema_name})
            continue
        migrations.append(ChangeMigration(
            operations=operations,
            timestamp=increment_timestamp(base, len(migrations)),
            verb=verb,
        ))

    return migrations


def migration_path(
    item: Union[OrderedTable, ChangeMigration],
    output_dir: Optional[Union[str, Path]] = None,
    schema_paths: Optional[Mapping[str, str]] = None,
) -> Path:
    """
    Where a migration file goes.

    Files produced by an entity listed in `schema_paths` go into that entity's
    directory (relative to `output_dir`); everything else goes to `output_dir`.
    """
    base = Path(output_dir or settings.migrations_dir)
    if schema_paths and item.schema_name in schema_paths:
        base = base / schema_paths[item.schema_name]
    return base / item.file_name
