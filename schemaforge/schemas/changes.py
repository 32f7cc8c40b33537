"""Change records produced by a schema-diffing tool and consumed by the diff engine."""
from typing import Any, List, Literal, Mapping, Optional

from pydantic import Field, ValidationError, ValidationInfo, field_validator

from schemaforge.core.errors import SchemaDefinitionError
from schemaforge.schemas.entities import IdType, PropertyDefinition, SchemaModel
from schemaforge.schemas.loader import CompoundTypeRegistry, parse_property


class FlagChange(SchemaModel):
    from_: Optional[bool] = Field(default=None, alias="from")
    to: Optional[bool] = None

    @property
    def transitions(self) -> bool:
        return bool(self.from_) != bool(self.to)


class IdTypeChange(SchemaModel):
    from_: Optional[IdType] = Field(default=None, alias="from")
    to: Optional[IdType] = None


class OptionChanges(SchemaModel):
    timestamps: Optional[FlagChange] = None
    soft_delete: Optional[FlagChange] = None
    id_type: Optional[IdTypeChange] = None


class IndexSnapshot(SchemaModel):
    columns: List[str]
    unique: bool = False
    name: Optional[str] = None


class IndexChange(SchemaModel):
    change_type: Literal["added", "removed"]
    index: IndexSnapshot


class ColumnChange(SchemaModel):
    column: str
    change_type: Literal["added", "removed", "modified", "renamed"]
    previous_column: Optional[str] = None
    previous_def: Optional[PropertyDefinition] = None
    current_def: Optional[PropertyDefinition] = None
    modifications: List[str] = Field(default_factory=list)

    @field_validator("previous_def", "current_def", mode="before")
    @classmethod
    def _parse_snapshot(cls, value: Any, info: ValidationInfo):
        if value is None or not isinstance(value, Mapping) or "kind" in value:
            return value
        compound_types = (info.context or {}).get("compound_types")
        return parse_property(value, compound_types)


class SchemaChange(SchemaModel):
    schema_name: str
    change_type: Literal["added", "removed", "modified"]
    column_changes: List[ColumnChange] = Field(default_factory=list)
    index_changes: List[IndexChange] = Field(default_factory=list)
    option_changes: Optional[OptionChanges] = None


def load_schema_change(
    raw: Mapping[str, Any],
    compound_types: Optional[CompoundTypeRegistry] = None,
) -> SchemaChange:
    """Build a SchemaChange from a raw mapping, resolving compound property snapshots."""
    try:
        return SchemaChange.model_validate(raw, context={"compound_types": compound_types})
    except ValidationError as e:
        raise SchemaDefinitionError(str(e), raw.get("schemaName") or raw.get("schema_name")) from e
