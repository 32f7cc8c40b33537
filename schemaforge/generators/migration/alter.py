"""
Diff migration engine.

Turns one entity's change record into a pair of structural operation lists:
`forward` applies the change, `backward` undoes it. Columns are built through
the same blueprint mapping as full table creation, so an incremental change
and a fresh build agree on types and modifiers.
"""
import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from schemaforge.schemas.changes import ColumnChange, IndexChange, OptionChanges, SchemaChange
from schemaforge.schemas.entities import EntityCollection, EntityDefinition, IdType, PropertyDefinition
from schemaforge.generators.migration.blueprint import (
    BlueprintOptions,
    ForeignKeyResult,
    association_column_name,
    primary_key_column,
    property_columns,
    resolve_table_name,
    soft_delete_column,
    timestamp_columns,
)
from schemaforge.generators.migration.types import (
    ChangeOperations,
    ColumnMethod,
    IndexDefinition,
    MigrationOperation,
    OperationType,
    TableBlueprint,
)
from schemaforge.generators.migration.utils import (
    foreign_key_name,
    index_name,
    primary_key_name,
    to_column_name,
)

log = logging.getLogger(__name__)

# Key families that cannot be converted in place
REBUILD_ID_TYPES = {IdType.UUID, IdType.STRING}

PhysicalColumns = Tuple[List[ColumnMethod], Optional[ForeignKeyResult]]

NO_COLUMNS: PhysicalColumns = ([], None)


class _ChangeContext:
    """Everything needed to map one change record onto physical columns."""

    def __init__(self, change: SchemaChange, all_entities: EntityCollection, options: BlueprintOptions):
        self.change = change
        self.all_entities = all_entities
        self.options = options
        self.entity: Optional[EntityDefinition] = all_entities.get(change.schema_name)
        self.table_name = resolve_table_name(change.schema_name, all_entities)
        self.extra = {"schema": change.schema_name, "table": self.table_name}

    def columns(self, property_name: str, prop: Optional[PropertyDefinition]) -> PhysicalColumns:
        if prop is None:
            return NO_COLUMNS
        return property_columns(property_name, prop, self.all_entities, self.options)

    def index_columns(self, names: Iterable[str]) -> Tuple[str, ...]:
        if self.entity is None:
            return tuple(to_column_name(name) for name in names)
        return tuple(association_column_name(self.entity, name) for name in names)


def _drop_foreign(table_name: str, fk: ForeignKeyResult) -> MigrationOperation:
    column = fk.foreign_key.columns[0]
    return MigrationOperation(
        OperationType.DROP_FOREIGN,
        foreign_key=fk.foreign_key,
        columns=fk.foreign_key.columns,
        name=foreign_key_name(table_name, column),
    )


def _add_foreign(table_name: str, fk: ForeignKeyResult) -> MigrationOperation:
    column = fk.foreign_key.columns[0]
    return MigrationOperation(
        OperationType.ADD_FOREIGN,
        foreign_key=fk.foreign_key,
        columns=fk.foreign_key.columns,
        name=foreign_key_name(table_name, column),
    )


def _index_op(op_type: OperationType, table_name: str, index: IndexDefinition) -> MigrationOperation:
    name = index.name or index_name(table_name, index.columns, index.unique)
    return MigrationOperation(
        op_type,
        index=replace(index, name=name),
        columns=index.columns,
        name=name,
    )


def transition_operations(
    table_name: str,
    before: PhysicalColumns,
    after: PhysicalColumns,
) -> List[MigrationOperation]:
    """
    Operations turning the `before` columns of one property into the `after` columns.

    Constraints are dropped before the columns they depend on and created after
    them. Columns present on both sides are altered, not recreated.
    """
    before_columns, before_fk = before
    after_columns, after_fk = after
    before_names = {c.name for c in before_columns}
    after_names = {c.name for c in after_columns}
    fk_changed = (
        before_fk is not None
        and after_fk is not None
        and before_fk.foreign_key != after_fk.foreign_key
    )

    ops: List[MigrationOperation] = []
    if before_fk is not None and (after_fk is None or fk_changed):
        ops.append(_drop_foreign(table_name, before_fk))
        if after_fk is None:
            ops.append(_index_op(OperationType.DROP_INDEX, table_name, before_fk.index))

    for column in after_columns:
        op_type = OperationType.CHANGE_COLUMN if column.name in before_names else OperationType.ADD_COLUMN
        ops.append(MigrationOperation(op_type, column=column, column_name=column.name))
    for column in before_columns:
        if column.name not in after_names:
            ops.append(MigrationOperation(OperationType.DROP_COLUMN, column_name=column.name))

    if after_fk is not None and (before_fk is None or fk_changed):
        ops.append(_add_foreign(table_name, after_fk))
        if before_fk is None:
            ops.append(_index_op(OperationType.ADD_INDEX, table_name, after_fk.index))
    return ops


def _rename_operations(old: List[ColumnMethod], new: List[ColumnMethod], fallback: Tuple[str, str]):
    if not old or not new:
        return [MigrationOperation(OperationType.RENAME_COLUMN, column_name=fallback[0], new_name=fallback[1])]
    return [
        MigrationOperation(OperationType.RENAME_COLUMN, column_name=a.name, new_name=b.name)
        for a, b in zip(old, new)
        if a.name != b.name
    ]


def column_change_operations(
    column_change: ColumnChange,
    context: _ChangeContext,
) -> Optional[Tuple[List[MigrationOperation], List[MigrationOperation]]]:
    """Forward/backward operations for one column change; None when the record is unusable."""
    name = column_change.column
    previous = column_change.previous_def
    current = column_change.current_def
    table_name = context.table_name

    if column_change.change_type == "added":
        if current is None:
            return None
        after = context.columns(name, current)
        return (
            transition_operations(table_name, NO_COLUMNS, after),
            transition_operations(table_name, after, NO_COLUMNS),
        )

    if column_change.change_type == "removed":
        if previous is None:
            return None
        before = context.columns(name, previous)
        return (
            transition_operations(table_name, before, NO_COLUMNS),
            transition_operations(table_name, NO_COLUMNS, before),
        )

    if column_change.change_type == "modified":
        if previous is None or current is None:
            return None
        before = context.columns(name, previous)
        after = context.columns(name, current)
        return (
            transition_operations(table_name, before, after),
            transition_operations(table_name, after, before),
        )

    # renamed
    old_name = column_change.previous_column
    if not old_name:
        return None
    shape = previous or current
    old_columns, _ = context.columns(old_name, shape)
    new_columns, _ = context.columns(name, current or previous)
    fallback = (to_column_name(old_name), to_column_name(name))

    forward = _rename_operations(old_columns, new_columns, fallback)
    backward = _rename_operations(new_columns, old_columns, (fallback[1], fallback[0]))
    if column_change.modifications and previous is not None and current is not None:
        forward.extend(transition_operations(
            table_name, context.columns(name, previous), context.columns(name, current),
        ))
        backward.extend(transition_operations(
            table_name, context.columns(old_name, current), context.columns(old_name, previous),
        ))
    return forward, backward


def index_change_operations(index_change: IndexChange, context: _ChangeContext):
    snapshot = index_change.index
    index = IndexDefinition(
        columns=context.index_columns(snapshot.columns),
        unique=snapshot.unique,
        name=snapshot.name,
    )
    add = _index_op(OperationType.ADD_INDEX, context.table_name, index)
    drop = _index_op(OperationType.DROP_INDEX, context.table_name, index)
    if index_change.change_type == "added":
        return [add], [drop]
    return [drop], [add]


def id_type_operations(table_name: str, from_type: IdType, to_type: IdType) -> List[MigrationOperation]:
    """Operations moving the `id` column from one key strategy to another."""
    target = primary_key_column(to_type)
    if from_type in REBUILD_ID_TYPES or to_type in REBUILD_ID_TYPES:
        return [
            MigrationOperation(OperationType.DROP_PRIMARY, columns=("id",), name=primary_key_name(table_name)),
            MigrationOperation(OperationType.CHANGE_COLUMN, column=target, column_name="id"),
            MigrationOperation(OperationType.ADD_PRIMARY, columns=("id",), name=primary_key_name(table_name)),
        ]
    return [MigrationOperation(OperationType.CHANGE_COLUMN, column=target, column_name="id")]


def option_change_operations(option_changes: OptionChanges, table_name: str):
    forward: List[MigrationOperation] = []
    backward: List[MigrationOperation] = []

    toggles = (
        (option_changes.timestamps, OperationType.ADD_TIMESTAMPS, OperationType.DROP_TIMESTAMPS),
        (option_changes.soft_delete, OperationType.ADD_SOFT_DELETES, OperationType.DROP_SOFT_DELETES),
    )
    for flag, enable, disable in toggles:
        if flag is None or not flag.transitions:
            continue
        if flag.to:
            forward.append(MigrationOperation(enable))
            backward.append(MigrationOperation(disable))
        else:
            forward.append(MigrationOperation(disable))
            backward.append(MigrationOperation(enable))

    id_change = option_changes.id_type
    if id_change is not None:
        from_type = id_change.from_ or IdType.BIG_INT
        to_type = id_change.to or IdType.BIG_INT
        if from_type != to_type:
            forward.extend(id_type_operations(table_name, from_type, to_type))
            backward.extend(id_type_operations(table_name, to_type, from_type))

    return forward, backward


def build_change_operations(
    change: SchemaChange,
    all_entities: Optional[EntityCollection] = None,
    options: Optional[BlueprintOptions] = None,
) -> Optional[ChangeOperations]:
    """
    Forward and backward operations for a modified entity.

    Returns None when the record carries no column, index or option delta.
    Unusable column records are skipped individually.
    """
    context = _ChangeContext(change, all_entities or {}, options or BlueprintOptions())
    forward: List[MigrationOperation] = []
    backward: List[MigrationOperation] = []

    for column_change in change.column_changes:
        result = column_change_operations(column_change, context)
        if result is None:
            log.warning(
                "Skipping %s change for column %s: missing definition",
                column_change.change_type, column_change.column, extra=context.extra,
            )
            continue
        forward.extend(result[0])
        backward.extend(result[1])

    for index_change in change.index_changes:
        index_forward, index_backward = index_change_operations(index_change, context)
        forward.extend(index_forward)
        backward.extend(index_backward)

    if change.option_changes is not None:
        option_forward, option_backward = option_change_operations(change.option_changes, context.table_name)
        forward.extend(option_forward)
        backward.extend(option_backward)

    if not forward and not backward:
        log.debug("No structural changes", extra=context.extra)
        return None
    return ChangeOperations(
        schema_name=change.schema_name,
        table_name=context.table_name,
        forward=forward,
        backward=backward,
    )


def drop_table_operations(schema_name: str, all_entities: Optional[EntityCollection] = None) -> ChangeOperations:
    table_name = resolve_table_name(schema_name, all_entities)
    return ChangeOperations(
        schema_name=schema_name,
        table_name=table_name,
        forward=[MigrationOperation(OperationType.DROP_TABLE, name=table_name)],
        backward=[],
    )


def _rename_in(names: Iterable[str], old: str, new: str) -> Tuple[str, ...]:
    return tuple(new if name == old else name for name in names)


def apply_operations(blueprint: TableBlueprint, operations: Iterable[MigrationOperation]) -> TableBlueprint:
    """Return the blueprint that results from running `operations` against `blueprint`."""
    columns = list(blueprint.columns)
    foreign_keys = list(blueprint.foreign_keys)
    indexes = list(blueprint.indexes)
    primary_key = list(blueprint.primary_key) if blueprint.primary_key else None

    def drop_columns(names):
        nonlocal columns
        columns = [c for c in columns if c.name not in names]

    for op in operations:
        if op.type == OperationType.ADD_COLUMN:
            columns.append(op.column)
        elif op.type == OperationType.CHANGE_COLUMN:
            position = next((i for i, c in enumerate(columns) if c.name == op.column_name), None)
            if position is None:
                columns.append(op.column)
            else:
                columns[position] = op.column
        elif op.type == OperationType.DROP_COLUMN:
            drop_columns({op.column_name})
        elif op.type == OperationType.RENAME_COLUMN:
            columns = [c.renamed(op.new_name) if c.name == op.column_name else c for c in columns]
            foreign_keys = [
                replace(fk, columns=_rename_in(fk.columns, op.column_name, op.new_name)) for fk in foreign_keys
            ]
            indexes = [
                replace(ix, columns=_rename_in(ix.columns, op.column_name, op.new_name)) for ix in indexes
            ]
            if primary_key:
                primary_key = list(_rename_in(primary_key, op.column_name, op.new_name))
        elif op.type == OperationType.ADD_FOREIGN:
            foreign_keys.append(op.foreign_key)
        elif op.type == OperationType.DROP_FOREIGN:
            foreign_keys = [fk for fk in foreign_keys if fk.columns != op.columns]
        elif op.type == OperationType.ADD_INDEX:
            indexes.append(op.index)
        elif op.type == OperationType.DROP_INDEX:
            indexes = [ix for ix in indexes if ix.key != op.index.key]
        elif op.type == OperationType.ADD_TIMESTAMPS:
            columns.extend(timestamp_columns())
        elif op.type == OperationType.DROP_TIMESTAMPS:
            drop_columns({"created_at", "updated_at"})
        elif op.type == OperationType.ADD_SOFT_DELETES:
            columns.append(soft_delete_column())
        elif op.type == OperationType.DROP_SOFT_DELETES:
            drop_columns({"deleted_at"})
        elif op.type == OperationType.ADD_PRIMARY:
            primary_key = list(op.columns)
        elif op.type == OperationType.DROP_PRIMARY:
            primary_key = None
        elif op.type == OperationType.DROP_TABLE:
            return TableBlueprint(table_name=blueprint.table_name)

    return TableBlueprint(
        table_name=blueprint.table_name,
        columns=columns,
        primary_key=primary_key,
        foreign_keys=foreign_keys,
        indexes=indexes,
    )
