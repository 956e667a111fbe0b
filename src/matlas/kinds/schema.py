"""Declarative property schemas for resource specs."""

from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field


class PropertySchema(BaseModel):
    """
    Schema for one property (or a whole spec when type == "object").

    Supported types: string, integer, number, boolean, object, array, any.
    """
    type: str = Field(default="any", description="JSON-style type name")
    required: List[str] = Field(default_factory=list, description="Required child properties (objects)")
    enum: Optional[List[Any]] = Field(default=None, description="Allowed values")
    case_insensitive: bool = Field(default=False, description="Compare enum values ignoring case")
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    pattern: Optional[str] = None
    items: Optional["PropertySchema"] = None
    properties: Dict[str, "PropertySchema"] = Field(default_factory=dict)
    additional_properties: bool = Field(default=True, description="Allow unknown nested properties")
    one_of_required: List[List[str]] = Field(
        default_factory=list, description="Groups where exactly one property must be set"
    )


PropertySchema.model_rebuild()


def string(**kwargs) -> PropertySchema:
    return PropertySchema(type="string", **kwargs)


def integer(**kwargs) -> PropertySchema:
    return PropertySchema(type="integer", **kwargs)


def number(**kwargs) -> PropertySchema:
    return PropertySchema(type="number", **kwargs)


def boolean() -> PropertySchema:
    return PropertySchema(type="boolean")


def array(items: Optional[PropertySchema] = None, **kwargs) -> PropertySchema:
    return PropertySchema(type="array", items=items, **kwargs)


def obj(properties: Optional[Dict[str, PropertySchema]] = None, required: Optional[List[str]] = None, **kwargs) -> PropertySchema:
    return PropertySchema(type="object", properties=properties or {}, required=required or [], **kwargs)


def string_map() -> PropertySchema:
    return PropertySchema(type="object", additional_properties=True)
