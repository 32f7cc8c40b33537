"""Dataclasses for migration generation."""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, List, Optional, Tuple

from schemaforge.generators.migration.utils import migration_file_name


@dataclass(frozen=True)
class ColumnModifier:
    """Chained column modifier (nullable, unique, default, comment, ...)."""
    method: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class ColumnMethod:
    """One physical column: storage method, constructor args and modifiers."""
    name: str
    method: str
    args: Tuple[Any, ...] = ()
    modifiers: Tuple[ColumnModifier, ...] = ()

    def has_modifier(self, method: str) -> bool:
        return any(m.method == method for m in self.modifiers)

    def modifier(self, method: str) -> Optional[ColumnModifier]:
        return next((m for m in self.modifiers if m.method == method), None)

    def without_modifier(self, method: str) -> "ColumnMethod":
        return replace(self, modifiers=tuple(m for m in self.modifiers if m.method != method))

    def renamed(self, new_name: str) -> "ColumnMethod":
        args = self.args
        if args and args[0] == self.name:
            args = (new_name,) + args[1:]
        return replace(self, name=new_name, args=args)


@dataclass(frozen=True)
class ForeignKeyDefinition:
    columns: Tuple[str, ...]
    on: str  # referenced table
    references: str = "id"
    on_delete: Optional[str] = None
    on_update: Optional[str] = None


@dataclass(frozen=True)
class IndexDefinition:
    columns: Tuple[str, ...]
    unique: bool = False
    name: Optional[str] = None

    @property
    def key(self) -> Tuple[Tuple[str, ...], bool]:
        return (self.columns, self.unique)


@dataclass
class TableBlueprint:
    """Fully resolved description of one physical table."""
    table_name: str
    columns: List[ColumnMethod] = field(default_factory=list)
    primary_key: Optional[List[str]] = None
    foreign_keys: List[ForeignKeyDefinition] = field(default_factory=list)
    indexes: List[IndexDefinition] = field(default_factory=list)

    def column(self, name: str) -> Optional[ColumnMethod]:
        return next((c for c in self.columns if c.name == name), None)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


@dataclass(frozen=True)
class PivotFieldInfo:
    name: str
    type: str
    nullable: bool = False
    default: Any = None
    length: Optional[int] = None
    unsigned: bool = False
    values: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PivotTableInfo:
    """Derived join table for a ManyToMany relationship."""
    table_name: str
    source_schema: str
    target_schema: str
    source_table: str
    target_table: str
    source_column: str
    target_column: str
    source_pk_type: str
    target_pk_type: str
    on_delete: Optional[str] = None
    on_update: Optional[str] = None
    pivot_fields: Tuple[PivotFieldInfo, ...] = ()


@dataclass(frozen=True)
class MorphToManyPivotInfo:
    """Derived polymorphic join table for a MorphToMany relationship."""
    table_name: str
    target_schema: str
    target_table: str
    target_column: str
    target_pk_type: str
    morph_name: str
    morph_targets: Tuple[str, ...]
    morph_id_method: str = "unsignedBigInteger"
    morph_id_args: Tuple[Any, ...] = ()
    on_delete: Optional[str] = None
    on_update: Optional[str] = None


class TableKind(str, Enum):
    ENTITY = "entity"
    PIVOT = "pivot"
    MORPH_PIVOT = "morph_pivot"


@dataclass
class TableEntry:
    """A table waiting to be ordered."""
    identity_name: str
    blueprint: TableBlueprint
    schema_name: Optional[str] = None
    kind: TableKind = TableKind.ENTITY
    depends_on: Tuple[str, ...] = ()  # extra table names that must exist first

    @property
    def table_name(self) -> str:
        return self.blueprint.table_name


@dataclass
class OrderedTable:
    """A table in its resolved creation order, with its migration timestamp."""
    identity_name: str
    table_name: str
    blueprint: TableBlueprint
    timestamp: str
    schema_name: Optional[str] = None
    kind: TableKind = TableKind.ENTITY

    @property
    def file_name(self) -> str:
        return migration_file_name(self.table_name, "create", self.timestamp)


class OperationType(str, Enum):
    DROP_TABLE = "drop_table"
    ADD_COLUMN = "add_column"
    CHANGE_COLUMN = "change_column"
    DROP_COLUMN = "drop_column"
    RENAME_COLUMN = "rename_column"
    ADD_FOREIGN = "add_foreign"
    DROP_FOREIGN = "drop_foreign"
    ADD_INDEX = "add_index"
    DROP_INDEX = "drop_index"
    ADD_TIMESTAMPS = "add_timestamps"
    DROP_TIMESTAMPS = "drop_timestamps"
    ADD_SOFT_DELETES = "add_soft_deletes"
    DROP_SOFT_DELETES = "drop_soft_deletes"
    ADD_PRIMARY = "add_primary"
    DROP_PRIMARY = "drop_primary"


@dataclass(frozen=True)
class MigrationOperation:
    """One structural step of an incremental migration."""
    type: OperationType
    column: Optional[ColumnMethod] = None
    column_name: Optional[str] = None
    new_name: Optional[str] = None
    foreign_key: Optional[ForeignKeyDefinition] = None
    index: Optional[IndexDefinition] = None
    columns: Tuple[str, ...] = ()
    name: Optional[str] = None  # constraint name


@dataclass
class ChangeOperations:
    """Symmetric forward/backward operation lists for one changed table."""
    schema_name: str
    table_name: str
    forward: List[MigrationOperation] = field(default_factory=list)
    backward: List[MigrationOperation] = field(default_factory=list)


@dataclass
class ChangeMigration:
    """A change operation pair with its migration timestamp."""
    operations: ChangeOperations
    timestamp: str
    verb: str  # "update" or "drop"

    @property
    def table_name(self) -> str:
        return self.operations.table_name

    @property
    def schema_name(self) -> str:
        return self.operations.schema_name

    @property
    def file_name(self) -> str:
        return migration_file_name(self.table_name, self.verb, self.timestamp)


@dataclass
class GeneratedFile:
    """A generated file with path and content."""
    path: str
    content: str
