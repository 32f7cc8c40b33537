"""
Relationship extraction: join tables derived from ManyToMany and MorphToMany associations.

Only the owning side of a relationship yields a join table. Ownership is decided
by an ordered rule chain; the first rule returning a decision wins.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from schemaforge.core.config import settings
from schemaforge.schemas.entities import (
    AssociationProperty,
    EntityCollection,
    EntityDefinition,
    PivotFieldDefinition,
    RelationKind,
)
from schemaforge.generators.migration.blueprint import (
    foreign_key_column_method,
    id_type_of,
    morph_id_column_method,
    pivot_field_to_column,
    resolve_table_name,
    timestamp_columns,
)
from schemaforge.generators.migration.types import (
    ColumnMethod,
    ForeignKeyDefinition,
    IndexDefinition,
    MorphToManyPivotInfo,
    PivotFieldInfo,
    PivotTableInfo,
    TableBlueprint,
)
from schemaforge.generators.migration.utils import singularize, to_column_name

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OwnershipContext:
    """One side of a many-to-many relationship under consideration."""
    entity: EntityDefinition
    property_name: str
    prop: AssociationProperty
    target_name: str
    target: Optional[EntityDefinition]


# A rule returns True (owns), False (does not own) or None (no opinion)
OwnershipRule = Callable[[OwnershipContext], Optional[bool]]


def explicit_owning_flag(context: OwnershipContext) -> Optional[bool]:
    return context.prop.owning


def declares_pivot_fields(context: OwnershipContext) -> Optional[bool]:
    return True if context.prop.pivot_fields else None


def _counterparts(context: OwnershipContext):
    """Associations on the target pointing back at this entity with the same relation."""
    if context.target is None:
        return
    for other_name, other in context.target.properties.items():
        if context.target.name == context.entity.name and other_name == context.property_name:
            continue
        if (
            isinstance(other, AssociationProperty)
            and other.relation == context.prop.relation
            and other.target == context.entity.name
        ):
            yield other


def counterpart_claims_ownership(context: OwnershipContext) -> Optional[bool]:
    """The other side is explicitly owning or authors the pivot fields."""
    for other in _counterparts(context):
        if other.owning or (other.owning is None and other.pivot_fields):
            return False
    return None


def inverse_side_maps_back(context: OwnershipContext) -> Optional[bool]:
    """The other side names this property in its `mapped_by`."""
    for other in _counterparts(context):
        if other.mapped_by == context.property_name:
            return True
    return None


def alphabetical_order(context: OwnershipContext) -> Optional[bool]:
    # Self-references compare equal and own themselves
    return context.entity.name <= context.target_name


MANY_TO_MANY_OWNERSHIP_RULES: Tuple[Tuple[str, OwnershipRule], ...] = (
    ("explicit_owning_flag", explicit_owning_flag),
    ("declares_pivot_fields", declares_pivot_fields),
    ("counterpart_claims_ownership", counterpart_claims_ownership),
    ("inverse_side_maps_back", inverse_side_maps_back),
    ("alphabetical_order", alphabetical_order),
)

MORPH_TO_MANY_OWNERSHIP_RULES: Tuple[Tuple[str, OwnershipRule], ...] = (
    ("explicit_owning_flag", explicit_owning_flag),
    ("alphabetical_order", alphabetical_order),
)


def resolve_ownership(
    context: OwnershipContext,
    rules: Sequence[Tuple[str, OwnershipRule]] = MANY_TO_MANY_OWNERSHIP_RULES,
) -> bool:
    """Evaluate `rules` in order and return the first decision."""
    for name, rule in rules:
        decision = rule(context)
        if decision is not None:
            log.debug(
                "%s.%s ownership decided by %s: %s",
                context.entity.name, context.property_name, name, decision,
                extra={"schema": context.entity.name},
            )
            return decision
    return False


def pivot_table_name(source_table: str, target_table: str, custom: Optional[str] = None) -> str:
    """Join table name: `custom` if given, else both table names sorted, singularized and joined."""
    if custom:
        return custom
    return "_".join(singularize(table) for table in sorted([source_table, target_table]))


def find_explicit_pivot(
    source: str,
    target: str,
    table_name: str,
    all_entities: EntityCollection,
) -> Optional[EntityDefinition]:
    """An entity declared as the join table for (source, target), or owning `table_name`."""
    pair = {source, target}
    for entity in all_entities.values():
        if not entity.is_table:
            continue
        if entity.pivot_for and set(entity.pivot_for) == pair:
            return entity
        if resolve_table_name(entity.name, all_entities) == table_name:
            return entity
    return None


def _pivot_fields(prop: AssociationProperty) -> Tuple[PivotFieldInfo, ...]:
    fields = []
    for field_name, field_def in prop.pivot_fields.items():
        fields.append(PivotFieldInfo(
            name=to_column_name(field_name),
            type=field_def.type,
            nullable=field_def.nullable,
            default=field_def.default,
            length=field_def.length,
            unsigned=field_def.unsigned,
            values=tuple(field_def.values),
        ))
    return tuple(fields)


def extract_many_to_many(entity: EntityDefinition, all_entities: EntityCollection) -> List[PivotTableInfo]:
    """Join tables this entity owns through ManyToMany associations."""
    pivots: List[PivotTableInfo] = []
    source_table = resolve_table_name(entity.name, all_entities)

    for prop_name, prop in entity.properties.items():
        if not isinstance(prop, AssociationProperty) or prop.relation != RelationKind.MANY_TO_MANY:
            continue
        # mapped_by marks the inverse side
        if prop.mapped_by or not prop.target:
            continue

        target = all_entities.get(prop.target)
        context = OwnershipContext(entity, prop_name, prop, prop.target, target)
        if not resolve_ownership(context, MANY_TO_MANY_OWNERSHIP_RULES):
            continue

        target_table = resolve_table_name(prop.target, all_entities)
        table_name = pivot_table_name(source_table, target_table, prop.join_table)

        explicit = find_explicit_pivot(entity.name, prop.target, table_name, all_entities)
        if explicit is not None:
            log.debug(
                "Derived join table %s suppressed by %s", table_name, explicit.name,
                extra={"schema": entity.name, "table": table_name},
            )
            continue

        source_column = singularize(source_table) + "_id"
        target_column = singularize(target_table) + "_id"
        if target_column == source_column:
            target_column = singularize(to_column_name(prop_name)) + "_id"

        pivots.append(PivotTableInfo(
            table_name=table_name,
            source_schema=entity.name,
            target_schema=prop.target,
            source_table=source_table,
            target_table=target_table,
            source_column=source_column,
            target_column=target_column,
            source_pk_type=entity.id_type.value,
            target_pk_type=id_type_of(target).value,
            on_delete=prop.on_delete,
            on_update=prop.on_update,
            pivot_fields=_pivot_fields(prop),
        ))

    return pivots


def _pivot_fk_column(name: str, pk_type: str) -> ColumnMethod:
    method, extra_args = foreign_key_column_method(pk_type)
    return ColumnMethod(name, method, (name,) + extra_args)


def pivot_table_blueprint(pivot: PivotTableInfo) -> TableBlueprint:
    """Blueprint for a derived ManyToMany join table."""
    on_delete = pivot.on_delete or settings.pivot_on_delete
    on_update = pivot.on_update or settings.pivot_on_update

    columns = [
        _pivot_fk_column(pivot.source_column, pivot.source_pk_type),
        _pivot_fk_column(pivot.target_column, pivot.target_pk_type),
    ]
    for pivot_field in pivot.pivot_fields:
        columns.append(pivot_field_to_column(pivot_field.name, PivotFieldDefinition(
            type=pivot_field.type,
            values=list(pivot_field.values),
            nullable=pivot_field.nullable,
            default=pivot_field.default,
            length=pivot_field.length,
            unsigned=pivot_field.unsigned,
        )))
    columns.extend(timestamp_columns())

    foreign_keys = [
        ForeignKeyDefinition((pivot.source_column,), pivot.source_table, "id", on_delete, on_update),
        ForeignKeyDefinition((pivot.target_column,), pivot.target_table, "id", on_delete, on_update),
    ]
    indexes = [
        IndexDefinition((pivot.source_column, pivot.target_column), unique=True),
        IndexDefinition((pivot.source_column,), unique=False),
        IndexDefinition((pivot.target_column,), unique=False),
    ]
    return TableBlueprint(
        table_name=pivot.table_name,
        columns=columns,
        primary_key=[pivot.source_column, pivot.target_column],
        foreign_keys=foreign_keys,
        indexes=indexes,
    )


def morph_targets_for(target_name: str, all_entities: EntityCollection, first: str) -> Tuple[str, ...]:
    """Every entity declaring a MorphToMany to `target_name`, `first` leading."""
    targets = [first]
    for other_name, other in all_entities.items():
        if other_name in targets:
            continue
        for prop in other.properties.values():
            if (
                isinstance(prop, AssociationProperty)
                and prop.relation == RelationKind.MORPH_TO_MANY
                and prop.target == target_name
            ):
                targets.append(other_name)
                break
    return tuple(targets)


def extract_morph_to_many(entity: EntityDefinition, all_entities: EntityCollection) -> List[MorphToManyPivotInfo]:
    """Polymorphic join tables this entity owns through MorphToMany associations."""
    pivots: List[MorphToManyPivotInfo] = []

    for prop_name, prop in entity.properties.items():
        if not isinstance(prop, AssociationProperty) or prop.relation != RelationKind.MORPH_TO_MANY:
            continue
        if not prop.target:
            continue

        target = all_entities.get(prop.target)
        context = OwnershipContext(entity, prop_name, prop, prop.target, target)
        if not resolve_ownership(context, MORPH_TO_MANY_OWNERSHIP_RULES):
            continue

        target_table = resolve_table_name(prop.target, all_entities)
        morph_targets = morph_targets_for(prop.target, all_entities, entity.name)
        id_method, id_args = morph_id_column_method(morph_targets, all_entities)

        pivots.append(MorphToManyPivotInfo(
            table_name=prop.join_table or singularize(target_table) + "ables",
            target_schema=prop.target,
            target_table=target_table,
            target_column=singularize(target_table) + "_id",
            target_pk_type=id_type_of(target).value,
            morph_name=singularize(to_column_name(prop_name)) + "able",
            morph_targets=morph_targets,
            morph_id_method=id_method,
            morph_id_args=id_args,
            on_delete=prop.on_delete,
            on_update=prop.on_update,
        ))

    return pivots


def morph_to_many_pivot_blueprint(pivot: MorphToManyPivotInfo) -> TableBlueprint:
    """Blueprint for a polymorphic join table: one fixed FK plus a type/id pair."""
    type_column = f"{pivot.morph_name}_type"
    id_column = f"{pivot.morph_name}_id"

    columns = [
        _pivot_fk_column(pivot.target_column, pivot.target_pk_type),
        ColumnMethod(type_column, "enum", (type_column, tuple(pivot.morph_targets))),
        ColumnMethod(id_column, pivot.morph_id_method, (id_column,) + tuple(pivot.morph_id_args)),
    ]
    foreign_keys = [ForeignKeyDefinition(
        columns=(pivot.target_column,),
        on=pivot.target_table,
        on_delete=pivot.on_delete or settings.pivot_on_delete,
        on_update=pivot.on_update or settings.pivot_on_update,
    )]
    indexes = [
        IndexDefinition((pivot.target_column, type_column, id_column), unique=True),
        IndexDefinition((type_column, id_column), unique=False),
        IndexDefinition((pivot.target_column,), unique=False),
    ]
    return TableBlueprint(
        table_name=pivot.table_name,
        columns=columns,
        primary_key=[pivot.target_column, type_column, id_column],
        foreign_keys=foreign_keys,
        indexes=indexes,
    )
