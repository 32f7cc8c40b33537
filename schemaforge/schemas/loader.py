"""
Loading raw schema documents into entity models.

Raw documents use the shape schema authors write by hand (YAML or JSON):
properties carry a `type` key, associations use `type: Association`, and
custom compound types are looked up by name in the compound-type registry.
"""
import logging
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, TypeAdapter, ValidationError

from schemaforge.core.errors import SchemaDefinitionError
from schemaforge.schemas.entities import (
    CompoundTypeDefinition,
    EntityCollection,
    EntityDefinition,
    EntityOptions,
    PropertyDefinition,
)

log = logging.getLogger(__name__)

CompoundTypeRegistry = Mapping[str, CompoundTypeDefinition]

_PROPERTY_ADAPTER: TypeAdapter = TypeAdapter(PropertyDefinition)


def _property_kind(prop_type: str, compound_types: Optional[CompoundTypeRegistry]) -> str:
    if prop_type == "Association":
        return "association"
    if prop_type == "Enum":
        return "enum"
    if prop_type == "EnumRef":
        return "enum_ref"
    if compound_types and prop_type in compound_types:
        return "compound"
    return "scalar"


def parse_property(
    raw: Any,
    compound_types: Optional[CompoundTypeRegistry] = None,
    source: Optional[str] = None,
) -> PropertyDefinition:
    """Turn one raw property mapping into its typed definition."""
    if isinstance(raw, BaseModel):
        return raw
    if not isinstance(raw, Mapping):
        raise SchemaDefinitionError("property definition must be a mapping", source)
    prop_type = raw.get("type")
    if not prop_type:
        raise SchemaDefinitionError("property definition has no type", source)

    data = dict(raw)
    data["kind"] = _property_kind(prop_type, compound_types)
    try:
        return _PROPERTY_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise SchemaDefinitionError(str(e), source) from e


def load_entity(
    name: str,
    raw: Mapping[str, Any],
    compound_types: Optional[CompoundTypeRegistry] = None,
) -> EntityDefinition:
    """Build an EntityDefinition from a raw schema document."""
    if not isinstance(raw, Mapping):
        raise SchemaDefinitionError("schema document must be a mapping", name)

    raw_properties = raw.get("properties") or {}
    if not isinstance(raw_properties, Mapping):
        raise SchemaDefinitionError("properties must be a mapping", name)
    properties = {
        prop_name: parse_property(prop_raw, compound_types, source=f"{name}.{prop_name}")
        for prop_name, prop_raw in raw_properties.items()
    }

    options = dict(raw.get("options") or {})
    kind = raw.get("kind", "object")
    # Older documents declare the join pair next to `kind`, not in options
    pivot_for = raw.get("pivotFor", raw.get("pivot_for"))
    if pivot_for:
        options.setdefault("pivotFor", pivot_for)
        if kind == "object":
            kind = "pivot"

    try:
        return EntityDefinition(
            name=raw.get("name", name),
            kind=kind,
            properties=properties,
            options=EntityOptions.model_validate(options),
            values=raw.get("values") or [],
        )
    except ValidationError as e:
        raise SchemaDefinitionError(str(e), name) from e


def load_entities(
    raw_collection: Mapping[str, Mapping[str, Any]],
    compound_types: Optional[CompoundTypeRegistry] = None,
) -> EntityCollection:
    """Load a whole collection, preserving declaration order."""
    entities: EntityCollection = {}
    for name, raw in raw_collection.items():
        entity = load_entity(name, raw, compound_types)
        entities[entity.name] = entity
    log.debug("Loaded %d schemas", len(entities))
    return entities


def parse_entities_yaml(
    text: str,
    compound_types: Optional[CompoundTypeRegistry] = None,
) -> EntityCollection:
    """Load a collection from a YAML document keyed by schema name."""
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise SchemaDefinitionError(f"invalid YAML: {e}") from e
    if not isinstance(data, Mapping):
        raise SchemaDefinitionError("YAML document must map schema names to definitions")
    return load_entities(data, compound_types)


def load_compound_types(raw: Mapping[str, Mapping[str, Any]]) -> Dict[str, CompoundTypeDefinition]:
    """Build the compound-type registry from `{name: {expand: [...]}}` mappings."""
    registry: Dict[str, CompoundTypeDefinition] = {}
    for name, definition in raw.items():
        try:
            registry[name] = CompoundTypeDefinition.model_validate({"name": name, **definition})
        except ValidationError as e:
            raise SchemaDefinitionError(str(e), name) from e
    return registry


def enum_registry(entities: EntityCollection) -> Dict[str, list]:
    """Collect `kind: enum` schemas as an enum name -> values registry."""
    return {
        name: list(entity.values)
        for name, entity in entities.items()
        if entity.kind == "enum" and entity.values
    }
