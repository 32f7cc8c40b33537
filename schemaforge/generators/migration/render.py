"""
Alembic migration module rendering.

Blueprints and operation lists are turned into `op.*` calls. Column types are
rendered from the same SQLAlchemy types the DDL preview uses.
"""
import logging
from typing import List, Optional

from schemaforge.generators.migration.ddl import column_comment, column_type, server_default
from schemaforge.generators.migration.ordering import parse_timestamp
from schemaforge.generators.migration.types import (
    ChangeMigration,
    ColumnMethod,
    MigrationOperation,
    OperationType,
    OrderedTable,
    TableBlueprint,
)
from schemaforge.generators.migration.blueprint import soft_delete_column, timestamp_columns
from schemaforge.generators.migration.utils import foreign_key_name, index_name, primary_key_name

log = logging.getLogger(__name__)

INDENT = "    "


def render_type(column: ColumnMethod) -> str:
    return f"sa.{column_type(column)!r}"


def render_server_default(column: ColumnMethod) -> Optional[str]:
    default = server_default(column)
    if default is None:
        return None
    if isinstance(default, str):
        return repr(default)
    return f"sa.text({default.text!r})"


def render_column(column: ColumnMethod) -> str:
    """`sa.Column(...)` expression for one column."""
    parts = [repr(column.name), render_type(column)]
    if column.method in ("increments", "id"):
        parts.append("autoincrement=True")
    parts.append(f"nullable={column.has_modifier('nullable')}")
    default = render_server_default(column)
    if default is not None:
        parts.append(f"server_default={default}")
    comment = column_comment(column)
    if comment:
        parts.append(f"comment={comment!r}")
    return f"sa.Column({', '.join(parts)})"


def _header(message: str, revision: str, down_revision: Optional[str]) -> List[str]:
    create_date = parse_timestamp(revision).strftime('%Y-%m-%d %H:%M:%S')
    return [
        f'"""{message}',
        "",
        f"Revision ID: {revision}",
        f"Revises: {down_revision or ''}",
        f"Create Date: {create_date}",
        '"""',
        "",
        "from alembic import op",
        "import sqlalchemy as sa",
        "",
        f"revision = {revision!r}",
        f"down_revision = {down_revision!r}",
        "branch_labels = None",
        "depends_on = None",
        "",
    ]


def _create_table_lines(blueprint: TableBlueprint) -> List[str]:
    table_name = blueprint.table_name
    lines = [f"{INDENT}op.create_table(", f"{INDENT * 2}{table_name!r},"]
    for column in blueprint.columns:
        lines.append(f"{INDENT * 2}{render_column(column)},")

    primary_key = blueprint.primary_key or [c.name for c in blueprint.columns if c.has_modifier("primary")]
    if primary_key:
        columns = ", ".join(repr(c) for c in primary_key)
        lines.append(f"{INDENT * 2}sa.PrimaryKeyConstraint({columns}, name={primary_key_name(table_name)!r}),")

    for column in blueprint.columns:
        if column.has_modifier("unique"):
            name = index_name(table_name, [column.name], True)
            lines.append(f"{INDENT * 2}sa.UniqueConstraint({column.name!r}, name={name!r}),")

    for fk in blueprint.foreign_keys:
        lines.append(
            f"{INDENT * 2}sa.ForeignKeyConstraint("
            f"{list(fk.columns)!r}, {[f'{fk.on}.{fk.references}' for _ in fk.columns]!r}, "
            f"name={foreign_key_name(table_name, fk.columns[0])!r}"
            f"{_referential_actions(fk.on_delete, fk.on_update)}),"
        )
    lines.append(f"{INDENT})")

    for index in blueprint.indexes:
        name = index.name or index_name(table_name, index.columns, index.unique)
        lines.append(
            f"{INDENT}op.create_index({name!r}, {table_name!r}, {list(index.columns)!r}, unique={index.unique})"
        )
    return lines


def _referential_actions(on_delete: Optional[str], on_update: Optional[str]) -> str:
    text = ""
    if on_delete:
        text += f", ondelete={on_delete.upper()!r}"
    if on_update:
        text += f", onupdate={on_update.upper()!r}"
    return text


def render_operation(table_name: str, op: MigrationOperation) -> List[str]:
    """Alembic statements for one structural operation."""
    t = repr(table_name)
    if op.type == OperationType.ADD_COLUMN:
        return [f"op.add_column({t}, {render_column(op.column)})"]
    if op.type == OperationType.CHANGE_COLUMN:
        column = op.column
        parts = [t, repr(op.column_name), f"type_={render_type(column)}",
                 f"nullable={column.has_modifier('nullable')}"]
        default = render_server_default(column)
        if default is not None:
            parts.append(f"server_default={default}")
        comment = column_comment(column)
        if comment:
            parts.append(f"comment={comment!r}")
        return [f"op.alter_column({', '.join(parts)})"]
    if op.type == OperationType.DROP_COLUMN:
        return [f"op.drop_column({t}, {op.column_name!r})"]
    if op.type == OperationType.RENAME_COLUMN:
        return [f"op.alter_column({t}, {op.column_name!r}, new_column_name={op.new_name!r})"]
    if op.type == OperationType.ADD_FOREIGN:
        fk = op.foreign_key
        return [
            f"op.create_foreign_key({op.name!r}, {t}, {fk.on!r}, {list(fk.columns)!r}, "
            f"{[fk.references for _ in fk.columns]!r}{_referential_actions(fk.on_delete, fk.on_update)})"
        ]
    if op.type == OperationType.DROP_FOREIGN:
        return [f"op.drop_constraint({op.name!r}, {t}, type_='foreignkey')"]
    if op.type == OperationType.ADD_INDEX:
        return [f"op.create_index({op.name!r}, {t}, {list(op.columns)!r}, unique={op.index.unique})"]
    if op.type == OperationType.DROP_INDEX:
        return [f"op.drop_index({op.name!r}, table_name={t})"]
    if op.type == OperationType.ADD_TIMESTAMPS:
        return [f"op.add_column({t}, {render_column(c)})" for c in timestamp_columns()]
    if op.type == OperationType.DROP_TIMESTAMPS:
        return [f"op.drop_column({t}, 'created_at')", f"op.drop_column({t}, 'updated_at')"]
    if op.type == OperationType.ADD_SOFT_DELETES:
        return [f"op.add_column({t}, {render_column(soft_delete_column())})"]
    if op.type == OperationType.DROP_SOFT_DELETES:
        return [f"op.drop_column({t}, 'deleted_at')"]
    if op.type == OperationType.ADD_PRIMARY:
        return [f"op.create_primary_key({op.name!r}, {t}, {list(op.columns)!r})"]
    if op.type == OperationType.DROP_PRIMARY:
        return [f"op.drop_constraint({op.name!r}, {t}, type_='primary')"]
    if op.type == OperationType.DROP_TABLE:
        return [f"op.drop_table({t})"]
    log.warning("No rendering for operation %s", op.type, extra={"table": table_name})
    return []


def _body(statements: List[str]) -> List[str]:
    if not statements:
        return [f"{INDENT}pass"]
    return [f"{INDENT}{statement}" for statement in statements]


def render_create_migration(item: OrderedTable, down_revision: Optional[str] = None) -> str:
    """Alembic module creating one table."""
    blueprint = item.blueprint
    lines = _header(f"create {item.table_name} table", item.timestamp, down_revision)
    lines.append("")
    lines.append("def upgrade():")
    lines.extend(_create_table_lines(blueprint))
    lines.append("")
    lines.append("")
    lines.append("def downgrade():")
    for index in reversed(blueprint.indexes):
        name = index.name or index_name(item.table_name, index.columns, index.unique)
        lines.append(f"{INDENT}op.drop_index({name!r}, table_name={item.table_name!r})")
    lines.append(f"{INDENT}op.drop_table({item.table_name!r})")
    lines.append("")
    return "\n".join(lines)


def render_change_migration(migration: ChangeMigration, down_revision: Optional[str] = None) -> str:
    """Alembic module applying a change's forward operations, undone by its backward ones."""
    operations = migration.operations
    table_name = operations.table_name
    upgrade: List[str] = []
    for op in operations.forward:
        upgrade.extend(render_operation(table_name, op))
    downgrade: List[str] = []
    for op in operations.backward:
        downgrade.extend(render_operation(table_name, op))

    lines = _header(f"{migration.verb} {table_name} table", migration.timestamp, down_revision)
    lines.append("")
    lines.append("def upgrade():")
    lines.extend(_body(upgrade))
    lines.append("")
    lines.append("")
    lines.append("def downgrade():")
    lines.extend(_body(downgrade))
    lines.append("")
    return "\n".join(lines)


def render_drop_migration(
    migration: ChangeMigration,
    down_revision: Optional[str] = None,
    blueprint: Optional[TableBlueprint] = None,
) -> str:
    """
    Alembic module dropping a table.

    With the dropped table's last known blueprint the downgrade recreates it;
    without one the downgrade is empty.
    """
    table_name = migration.table_name
    lines = _header(f"drop {table_name} table", migration.timestamp, down_revision)
    lines.append("")
    lines.append("def upgrade():")
    lines.append(f"{INDENT}op.drop_table({table_name!r})")
    lines.append("")
    lines.append("")
    lines.append("def downgrade():")
    if blueprint is not None:
        lines.extend(_create_table_lines(blueprint))
    else:
        lines.append(f"{INDENT}pass")
    lines.append("")
    return "\n".join(lines)
