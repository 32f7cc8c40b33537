"""SQLAlchemy translation of table blueprints, used for DDL previews and Alembic rendering."""
import logging
from typing import Iterable, List, Optional, Set

import sqlalchemy as sa
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.schema import CreateIndex, CreateTable

from schemaforge.core.config import settings
from schemaforge.generators.migration.types import ColumnMethod, OrderedTable, TableBlueprint
from schemaforge.generators.migration.utils import foreign_key_name, index_name, primary_key_name

log = logging.getLogger(__name__)

DIALECTS = {
    "postgresql": postgresql.dialect,
    "mysql": mysql.dialect,
    "sqlite": sqlite.dialect,
}

SIMPLE_TYPES = {
    "tinyInteger": sa.SmallInteger,
    "integer": sa.Integer,
    "unsignedInteger": sa.Integer,
    "increments": sa.Integer,
    "bigInteger": sa.BigInteger,
    "unsignedBigInteger": sa.BigInteger,
    "id": sa.BigInteger,
    "double": sa.Double,
    "boolean": sa.Boolean,
    "text": sa.Text,
    "mediumText": sa.Text,
    "longText": sa.Text,
    "date": sa.Date,
    "time": sa.Time,
    "dateTime": sa.DateTime,
    "timestamp": sa.TIMESTAMP,
    "json": sa.JSON,
    "uuid": sa.Uuid,
}

AUTOINCREMENT_METHODS = {"increments", "id"}

DEFAULT_STRING_LENGTH = 255


def get_dialect(name: Optional[str] = None):
    name = name or settings.sql_dialect
    if name not in DIALECTS:
        raise ValueError(f"Unsupported SQL dialect: {name}")
    return DIALECTS[name]()


def column_type(column: ColumnMethod) -> sa.types.TypeEngine:
    """SQLAlchemy type for a column's storage method and arguments."""
    args = column.args[1:]
    if column.method == "string":
        length = args[0] if args and isinstance(args[0], int) else DEFAULT_STRING_LENGTH
        return sa.String(length)
    if column.method == "decimal":
        precision = args[0] if len(args) > 0 else 8
        scale = args[1] if len(args) > 1 else 2
        return sa.Numeric(precision, scale)
    if column.method == "enum":
        values = list(args[0]) if args else []
        return sa.Enum(*values, native_enum=False)
    type_class = SIMPLE_TYPES.get(column.method)
    if type_class is None:
        log.debug("No SQL type for method %s, using String", column.method)
        return sa.String(DEFAULT_STRING_LENGTH)
    return type_class()


def server_default(column: ColumnMethod):
    """Server default clause for a column, or None."""
    default = column.modifier("default")
    if default is not None and default.args:
        value = default.args[0]
        if isinstance(value, bool):
            return sa.text("true" if value else "false")
        if isinstance(value, (int, float)):
            return sa.text(str(value))
        return str(value)
    if column.has_modifier("useCurrent"):
        return sa.text("CURRENT_TIMESTAMP")
    return None


def column_comment(column: ColumnMethod) -> Optional[str]:
    comment = column.modifier("comment")
    return comment.args[0] if comment is not None and comment.args else None


def to_sqlalchemy_column(column: ColumnMethod) -> sa.Column:
    return sa.Column(
        column.name,
        column_type(column),
        nullable=column.has_modifier("nullable"),
        autoincrement=column.method in AUTOINCREMENT_METHODS,
        server_default=server_default(column),
        comment=column_comment(column),
    )


def _primary_key_columns(blueprint: TableBlueprint) -> List[str]:
    if blueprint.primary_key:
        return list(blueprint.primary_key)
    return [c.name for c in blueprint.columns if c.has_modifier("primary")]


def to_sqlalchemy_table(
    blueprint: TableBlueprint,
    metadata: sa.MetaData,
    known_tables: Optional[Set[str]] = None,
) -> sa.Table:
    """
    Build a Table in `metadata` from a blueprint.

    Foreign keys pointing outside `known_tables` are left out, since the
    referenced table cannot be resolved at compile time.
    """
    table_name = blueprint.table_name
    known_tables = set(known_tables or ()) | {table_name}
    extra = {"table": table_name}

    elements: list = [to_sqlalchemy_column(column) for column in blueprint.columns]

    primary_key = _primary_key_columns(blueprint)
    if primary_key:
        elements.append(sa.PrimaryKeyConstraint(*primary_key, name=primary_key_name(table_name)))

    for column in blueprint.columns:
        if column.has_modifier("unique"):
            elements.append(sa.UniqueConstraint(column.name, name=index_name(table_name, [column.name], True)))

    for fk in blueprint.foreign_keys:
        if fk.on not in known_tables:
            log.warning("Foreign key to %s left out of preview, table not compiled", fk.on, extra=extra)
            continue
        elements.append(sa.ForeignKeyConstraint(
            list(fk.columns),
            [f"{fk.on}.{fk.references}"] * len(fk.columns),
            name=foreign_key_name(table_name, fk.columns[0]),
            ondelete=fk.on_delete.upper() if fk.on_delete else None,
            onupdate=fk.on_update.upper() if fk.on_update else None,
        ))

    table = sa.Table(table_name, metadata, *elements)

    for index in blueprint.indexes:
        missing = [c for c in index.columns if c not in table.c]
        if missing:
            log.warning("Index over unknown columns %s skipped", missing, extra=extra)
            continue
        sa.Index(
            index.name or index_name(table_name, index.columns, index.unique),
            *[table.c[c] for c in index.columns],
            unique=index.unique,
        )
    return table


def _compile(statement, dialect) -> str:
    return str(statement.compile(dialect=dialect)).strip() + ";"


def _table_statements(table: sa.Table, dialect) -> List[str]:
    statements = [_compile(CreateTable(table), dialect)]
    for index in sorted(table.indexes, key=lambda ix: ix.name):
        statements.append(_compile(CreateIndex(index), dialect))
    return statements


def create_table_sql(blueprint: TableBlueprint, dialect: Optional[str] = None) -> str:
    """CREATE TABLE and CREATE INDEX statements for one blueprint."""
    table = to_sqlalchemy_table(blueprint, sa.MetaData())
    return "\n\n".join(_table_statements(table, get_dialect(dialect)))


def schema_sql(ordered: Iterable[OrderedTable], dialect: Optional[str] = None) -> str:
    """DDL for a whole ordered table list, in creation order."""
    ordered = list(ordered)
    metadata = sa.MetaData()
    known_tables = {item.table_name for item in ordered}
    tables = [to_sqlalchemy_table(item.blueprint, metadata, known_tables) for item in ordered]

    compiled_dialect = get_dialect(dialect)
    statements: List[str] = []
    for table in tables:
        statements.extend(_table_statements(table, compiled_dialect))
    return "\n\n".join(statements) + "\n"
