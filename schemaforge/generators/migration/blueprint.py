"""
Blueprint builder: converts one entity's property map into a table blueprint.

Columns are described as storage methods with constructor arguments and
chained modifiers, independent of any rendering target.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Set, Tuple, Union

from schemaforge.core.config import settings
from schemaforge.core.locale import resolve_localized_string
from schemaforge.schemas.entities import (
    AssociationProperty,
    CompoundProperty,
    CompoundTypeDefinition,
    EntityCollection,
    EntityDefinition,
    EnumProperty,
    EnumRefProperty,
    IdType,
    IndexOption,
    PivotFieldDefinition,
    PropertyDefinition,
    RelationKind,
    ScalarProperty,
)
from schemaforge.generators.migration.types import (
    ColumnMethod,
    ColumnModifier,
    ForeignKeyDefinition,
    IndexDefinition,
    TableBlueprint,
)
from schemaforge.generators.migration.utils import to_column_name, to_table_name

log = logging.getLogger(__name__)

TYPE_METHOD_MAP = {
    "String": "string",
    "TinyInt": "tinyInteger",
    "Int": "integer",
    "BigInt": "bigInteger",
    "Float": "double",
    "Decimal": "decimal",
    "Boolean": "boolean",
    "Text": "text",
    "MediumText": "mediumText",
    "LongText": "longText",
    "Date": "date",
    "Time": "time",
    "DateTime": "dateTime",
    "Timestamp": "timestamp",
    "Json": "json",
    "Email": "string",
    "Password": "string",
    "Enum": "enum",
    "EnumRef": "string",
}

# Stored outside the table (uploads table); no column
EXTERNAL_STORAGE_TYPES = {"File", "MultiFile"}

INTEGER_METHODS = {"tinyInteger", "integer", "bigInteger"}

PK_METHOD_MAP = {
    IdType.INT: "increments",
    IdType.BIG_INT: "id",
    IdType.UUID: "uuid",
    IdType.STRING: "string",
}

FK_METHOD_MAP = {
    IdType.INT: "unsignedInteger",
    IdType.BIG_INT: "unsignedBigInteger",
    IdType.UUID: "uuid",
    IdType.STRING: "string",
}

DEFAULT_DECIMAL_PRECISION = 8
DEFAULT_DECIMAL_SCALE = 2

SQL_TYPE_MAP = {
    "VARCHAR": "String",
    "CHAR": "String",
    "STRING": "String",
    "TINYINT": "TinyInt",
    "INT": "Int",
    "INTEGER": "Int",
    "BIGINT": "BigInt",
    "TEXT": "Text",
    "BOOLEAN": "Boolean",
    "BOOL": "Boolean",
    "DECIMAL": "Decimal",
    "DATE": "Date",
    "TIMESTAMP": "Timestamp",
    "DATETIME": "Timestamp",
}

ColumnSource = Union[ScalarProperty, EnumProperty, EnumRefProperty]


@dataclass
class BlueprintOptions:
    """Collaborators the builder reads: compound-type and enum registries, locale."""
    compound_types: Mapping[str, CompoundTypeDefinition] = field(default_factory=dict)
    enums: Mapping[str, Sequence[str]] = field(default_factory=dict)
    locale: Optional[str] = None


@dataclass
class ForeignKeyResult:
    column: ColumnMethod
    foreign_key: ForeignKeyDefinition
    index: IndexDefinition


@dataclass
class PolymorphicColumns:
    type_column: ColumnMethod
    id_column: ColumnMethod
    indexes: List[IndexDefinition]


def id_type_of(entity: Optional[EntityDefinition]) -> IdType:
    """Primary-key type of an entity; unknown entities fall back to the default."""
    if entity is None:
        return IdType(settings.default_id_type)
    return entity.id_type


def has_auto_id(entity: EntityDefinition) -> bool:
    return entity.options.id is not False


def resolve_table_name(schema_name: str, all_entities: Optional[EntityCollection] = None) -> str:
    """Table name of a schema: its explicit table name, else derived from the name."""
    entity = (all_entities or {}).get(schema_name)
    if entity is not None and entity.options.table_name:
        return entity.options.table_name
    return to_table_name(schema_name)


def _comment_modifier(display_name, locale: Optional[str]) -> Optional[ColumnModifier]:
    if not display_name:
        return None
    resolved = resolve_localized_string(display_name, locale)
    if resolved:
        return ColumnModifier("comment", (resolved,))
    return None


def property_to_column(
    property_name: str,
    prop: PropertyDefinition,
    locale: Optional[str] = None,
) -> Optional[ColumnMethod]:
    """Map a scalar, enum or enum-ref property to its column; other kinds return None."""
    if isinstance(prop, (AssociationProperty, CompoundProperty)):
        return None
    if isinstance(prop, ScalarProperty) and prop.type in EXTERNAL_STORAGE_TYPES:
        return None

    column_name = to_column_name(property_name)
    args: List = [column_name]
    modifiers: List[ColumnModifier] = []

    if isinstance(prop, EnumProperty):
        method = "enum"
        if prop.values:
            args.append(tuple(prop.values))
    elif isinstance(prop, EnumRefProperty):
        method = "string"
        args.append(settings.enum_ref_length)
    else:
        method = TYPE_METHOD_MAP.get(prop.type)
        if method is None:
            log.debug("Unknown property type %r for %s, using string", prop.type, property_name)
            method = "string"
        if method == "string" and prop.length:
            args.append(prop.length)
        if prop.type == "Decimal":
            args.append(prop.precision if prop.precision is not None else DEFAULT_DECIMAL_PRECISION)
            args.append(prop.scale if prop.scale is not None else DEFAULT_DECIMAL_SCALE)

    if getattr(prop, "primary", False):
        modifiers.append(ColumnModifier("primary"))
    if prop.nullable:
        modifiers.append(ColumnModifier("nullable"))
    if prop.unique:
        modifiers.append(ColumnModifier("unique"))
    if prop.default is not None:
        # Native value type is kept (False stays a bool, not "false")
        modifiers.append(ColumnModifier("default", (prop.default,)))

    if isinstance(prop, ScalarProperty):
        if prop.unsigned and method in INTEGER_METHODS:
            modifiers.append(ColumnModifier("unsigned"))
        if method == "timestamp":
            if prop.use_current:
                modifiers.append(ColumnModifier("useCurrent"))
            if prop.use_current_on_update:
                modifiers.append(ColumnModifier("useCurrentOnUpdate"))

    comment = _comment_modifier(prop.display_name, locale)
    if comment:
        modifiers.append(comment)

    return ColumnMethod(name=column_name, method=method, args=tuple(args), modifiers=tuple(modifiers))


def pivot_field_to_column(name: str, pivot_field: PivotFieldDefinition) -> ColumnMethod:
    """Pivot fields go through the same type table as ordinary properties."""
    if pivot_field.type == "Enum":
        prop: ColumnSource = EnumProperty(
            values=list(pivot_field.values),
            nullable=pivot_field.nullable,
            default=pivot_field.default,
        )
    else:
        prop = ScalarProperty(
            type=pivot_field.type,
            length=pivot_field.length,
            nullable=pivot_field.nullable,
            default=pivot_field.default,
            unsigned=pivot_field.unsigned,
        )
    return property_to_column(name, prop)


def primary_key_column(id_type: IdType = IdType.BIG_INT) -> ColumnMethod:
    """Primary key column for an id strategy."""
    id_type = IdType(id_type)
    if id_type == IdType.UUID:
        return ColumnMethod("id", "uuid", ("id",), (ColumnModifier("primary"),))
    if id_type == IdType.STRING:
        return ColumnMethod("id", "string", ("id", 255), (ColumnModifier("primary"),))
    method = PK_METHOD_MAP[id_type]
    # `id` needs no args, `increments` takes the column name
    return ColumnMethod("id", method, () if method == "id" else ("id",))


def foreign_key_column_method(id_type: IdType) -> Tuple[str, Tuple]:
    """Storage method and extra args for a column referencing a key of `id_type`."""
    method = FK_METHOD_MAP.get(IdType(id_type), "unsignedBigInteger")
    return method, ()


def timestamp_columns() -> List[ColumnMethod]:
    return [
        ColumnMethod("created_at", "timestamp", ("created_at",), (ColumnModifier("nullable"),)),
        ColumnMethod("updated_at", "timestamp", ("updated_at",), (ColumnModifier("nullable"),)),
    ]


def soft_delete_column() -> ColumnMethod:
    return ColumnMethod("deleted_at", "timestamp", ("deleted_at",), (ColumnModifier("nullable"),))


def morph_id_column_method(
    targets: Sequence[str],
    all_entities: EntityCollection,
) -> Tuple[str, Tuple]:
    """
    Storage for a polymorphic id column given every declared morph target.

    Uniform target key types keep their own storage; mixed types fall back to
    a 36-character string able to hold any of them.
    """
    id_types: List[IdType] = []
    for target_name in targets:
        target = all_entities.get(target_name)
        if target is not None and target.id_type not in id_types:
            id_types.append(target.id_type)

    if len(id_types) == 1:
        single = id_types[0]
        if single == IdType.UUID:
            return "string", (36,)
        if single == IdType.STRING:
            return "string", (255,)
        if single == IdType.INT:
            return "unsignedInteger", ()
        return "unsignedBigInteger", ()
    if len(id_types) > 1:
        return "string", (36,)
    return "unsignedBigInteger", ()


def polymorphic_columns(
    property_name: str,
    prop: PropertyDefinition,
    all_entities: EntityCollection,
) -> Optional[PolymorphicColumns]:
    """`{name}_type` / `{name}_id` columns for a MorphTo association."""
    if not isinstance(prop, AssociationProperty) or prop.relation != RelationKind.MORPH_TO:
        return None
    if not prop.targets:
        return None

    nullable = prop.nullable is not False
    modifiers = (ColumnModifier("nullable"),) if nullable else ()
    base = to_column_name(property_name)
    type_name = f"{base}_type"
    id_name = f"{base}_id"

    type_column = ColumnMethod(type_name, "enum", (type_name, tuple(prop.targets)), modifiers)
    id_method, id_args = morph_id_column_method(prop.targets, all_entities)
    id_column = ColumnMethod(id_name, id_method, (id_name,) + id_args, modifiers)

    return PolymorphicColumns(
        type_column=type_column,
        id_column=id_column,
        indexes=[IndexDefinition((type_name, id_name), unique=False)],
    )


def foreign_key_for(
    property_name: str,
    prop: PropertyDefinition,
    all_entities: EntityCollection,
    locale: Optional[str] = None,
) -> Optional[ForeignKeyResult]:
    """FK column, constraint and index for an owning ManyToOne/OneToOne association."""
    if not isinstance(prop, AssociationProperty) or not prop.creates_foreign_key():
        return None

    column_name = to_column_name(property_name) + "_id"
    target = all_entities.get(prop.target) if prop.target else None
    if prop.target and target is None:
        log.warning("Association %s targets unknown schema %r", property_name, prop.target)
    target_table = resolve_table_name(prop.target, all_entities) if prop.target else "unknown"
    method, extra_args = foreign_key_column_method(id_type_of(target))

    modifiers: List[ColumnModifier] = []
    # Only an explicit `nullable: true` makes the FK column nullable
    if prop.nullable is True:
        modifiers.append(ColumnModifier("nullable"))
    if prop.default is not None:
        modifiers.append(ColumnModifier("default", (prop.default,)))
    comment = _comment_modifier(prop.display_name, locale)
    if comment:
        modifiers.append(comment)

    column = ColumnMethod(column_name, method, (column_name,) + extra_args, tuple(modifiers))
    foreign_key = ForeignKeyDefinition(
        columns=(column_name,),
        on=target_table,
        references="id",
        on_delete=prop.on_delete or settings.fk_on_delete,
        on_update=prop.on_update or settings.fk_on_update,
    )
    index = IndexDefinition((column_name,), unique=False)
    return ForeignKeyResult(column=column, foreign_key=foreign_key, index=index)


def expand_compound_type(
    property_name: str,
    prop: PropertyDefinition,
    options: BlueprintOptions,
) -> Optional[List[Tuple[str, ColumnSource]]]:
    """
    Expand a compound-type property into one property per physical column.

    Nullability is layered: per-field override, then the compound field's own
    SQL default, then the parent property.
    """
    if not isinstance(prop, CompoundProperty):
        return None
    type_def = options.compound_types.get(prop.type)
    if type_def is None or not type_def.fields:
        log.debug("Compound type %r not registered, %s gets no columns", prop.type, property_name)
        return None

    display_name = resolve_localized_string(prop.display_name, options.locale) if prop.display_name else None
    expanded: List[Tuple[str, ColumnSource]] = []

    for compound_field in type_def.fields:
        column_name = f"{to_column_name(property_name)}_{to_column_name(compound_field.suffix)}"
        override = prop.fields.get(compound_field.suffix)
        comment = f"{display_name} ({compound_field.suffix})" if display_name else None

        nullable = prop.nullable
        if compound_field.sql is not None and compound_field.sql.nullable is not None:
            nullable = compound_field.sql.nullable
        if override is not None and override.nullable is not None:
            nullable = override.nullable

        if compound_field.enum_ref:
            values = options.enums.get(compound_field.enum_ref)
            if values:
                expanded.append((column_name, EnumProperty(
                    values=list(values), nullable=bool(nullable), display_name=comment,
                )))
            else:
                expanded.append((column_name, EnumRefProperty(
                    enum_name=compound_field.enum_ref, nullable=bool(nullable), display_name=comment,
                )))
            continue

        sql = compound_field.sql
        prop_type = "String"
        length = precision = scale = None
        unsigned = False
        default = None
        if sql is not None:
            prop_type = SQL_TYPE_MAP.get(sql.sql_type.upper(), "String")
            if prop_type == "String":
                length = override.length if override is not None and override.length else sql.length
            if prop_type == "Decimal":
                precision, scale = sql.precision, sql.scale
            unsigned = sql.unsigned
            default = sql.default

        expanded.append((column_name, ScalarProperty(
            type=prop_type,
            length=length,
            precision=precision,
            scale=scale,
            unsigned=unsigned,
            default=default,
            nullable=bool(nullable),
            display_name=comment,
        )))

    return expanded


def association_column_name(entity: EntityDefinition, property_name: str) -> str:
    column_name = to_column_name(property_name)
    prop = entity.properties.get(property_name)
    if isinstance(prop, AssociationProperty) and prop.creates_foreign_key():
        return column_name + "_id"
    return column_name


def _custom_indexes(entity: EntityDefinition) -> List[IndexDefinition]:
    indexes: List[IndexDefinition] = []
    for index in entity.options.indexes:
        if isinstance(index, IndexOption):
            indexes.append(IndexDefinition(
                columns=tuple(association_column_name(entity, c) for c in index.columns),
                unique=index.unique,
                name=index.name,
            ))
        else:
            indexes.append(IndexDefinition((association_column_name(entity, index),), unique=False))
    for constraint in entity.options.unique:
        indexes.append(IndexDefinition(
            columns=tuple(association_column_name(entity, c) for c in constraint),
            unique=True,
        ))
    return indexes


def dedupe_indexes(indexes: Sequence[IndexDefinition]) -> List[IndexDefinition]:
    """Keep the first index for each (columns, uniqueness) pair."""
    seen: Set[Tuple[Tuple[str, ...], bool]] = set()
    result = []
    for index in indexes:
        if index.key in seen:
            continue
        seen.add(index.key)
        result.append(index)
    return result


def dedupe_foreign_keys(foreign_keys: Sequence[ForeignKeyDefinition]) -> List[ForeignKeyDefinition]:
    """Keep the first constraint declared for each column set."""
    seen: Set[Tuple[str, ...]] = set()
    result = []
    for foreign_key in foreign_keys:
        if foreign_key.columns in seen:
            continue
        seen.add(foreign_key.columns)
        result.append(foreign_key)
    return result


def build_blueprint(
    entity: EntityDefinition,
    all_entities: EntityCollection,
    options: Optional[BlueprintOptions] = None,
) -> TableBlueprint:
    """Generate the table blueprint for one entity."""
    options = options or BlueprintOptions()
    table_name = entity.options.table_name or to_table_name(entity.name)
    columns: List[ColumnMethod] = []
    foreign_keys: List[ForeignKeyDefinition] = []
    indexes: List[IndexDefinition] = []
    extra = {"schema": entity.name, "table": table_name}

    # Explicitly declared columns win over synthesized FK columns of the same name
    explicit_columns: Set[str] = {
        to_column_name(name)
        for name, prop in entity.properties.items()
        if not isinstance(prop, AssociationProperty)
    }

    if has_auto_id(entity):
        columns.append(primary_key_column(entity.id_type))

    # Explicit join entity: one FK per partner
    if entity.pivot_for:
        for partner in entity.pivot_for:
            fk_column = f"{to_column_name(partner)}_id"
            if fk_column not in explicit_columns:
                method, extra_args = foreign_key_column_method(id_type_of(all_entities.get(partner)))
                columns.append(ColumnMethod(fk_column, method, (fk_column,) + extra_args))
                explicit_columns.add(fk_column)
            foreign_keys.append(ForeignKeyDefinition(
                columns=(fk_column,),
                on=resolve_table_name(partner, all_entities),
                on_delete=settings.pivot_on_delete,
                on_update=settings.pivot_on_update,
            ))
            indexes.append(IndexDefinition((fk_column,), unique=False))

    for prop_name, prop in entity.properties.items():
        expanded = expand_compound_type(prop_name, prop, options)
        if expanded is not None:
            for expanded_name, expanded_prop in expanded:
                column = property_to_column(expanded_name, expanded_prop, options.locale)
                if column:
                    columns.append(column)
            continue

        column = property_to_column(prop_name, prop, options.locale)
        if column:
            columns.append(column)

        fk_result = foreign_key_for(prop_name, prop, all_entities, options.locale)
        if fk_result:
            if fk_result.column.name not in explicit_columns:
                columns.append(fk_result.column)
            foreign_keys.append(fk_result.foreign_key)
            indexes.append(fk_result.index)

        poly_result = polymorphic_columns(prop_name, prop, all_entities)
        if poly_result:
            columns.append(poly_result.type_column)
            columns.append(poly_result.id_column)
            indexes.extend(poly_result.indexes)

    if entity.options.timestamps:
        columns.extend(timestamp_columns())
    if entity.options.soft_delete:
        columns.append(soft_delete_column())

    indexes.extend(_custom_indexes(entity))

    primary_key: Optional[List[str]] = None
    if has_auto_id(entity):
        primary_key = ["id"]
    else:
        primary_columns = [
            to_column_name(name)
            for name, prop in entity.properties.items()
            if getattr(prop, "primary", False)
        ]
        if primary_columns:
            primary_key = primary_columns
        elif entity.pivot_for:
            primary_key = [f"{to_column_name(partner)}_id" for partner in entity.pivot_for]

    # Composite keys are declared once on the table, never per column
    if primary_key and len(primary_key) > 1:
        key_columns = set(primary_key)
        columns = [
            column.without_modifier("primary") if column.name in key_columns else column
            for column in columns
        ]

    log.debug("Built blueprint with %d columns", len(columns), extra=extra)
    return TableBlueprint(
        table_name=table_name,
        columns=columns,
        primary_key=primary_key,
        foreign_keys=dedupe_foreign_keys(foreign_keys),
        indexes=dedupe_indexes(indexes),
    )


def property_columns(
    property_name: str,
    prop: PropertyDefinition,
    all_entities: EntityCollection,
    options: Optional[BlueprintOptions] = None,
) -> Tuple[List[ColumnMethod], Optional[ForeignKeyResult]]:
    """
    Every physical column one property contributes, plus its FK wiring.

    Used by the diff engine so incremental changes map types exactly as a
    full build would.
    """
    options = options or BlueprintOptions()
    expanded = expand_compound_type(property_name, prop, options)
    if expanded is not None:
        columns = [property_to_column(name, p, options.locale) for name, p in expanded]
        return [c for c in columns if c], None

    column = property_to_column(property_name, prop, options.locale)
    if column:
        return [column], None

    fk_result = foreign_key_for(property_name, prop, all_entities, options.locale)
    if fk_result:
        return [fk_result.column], fk_result

    poly_result = polymorphic_columns(property_name, prop, all_entities)
    if poly_result:
        return [poly_result.type_column, poly_result.id_column], None
    return [], None
