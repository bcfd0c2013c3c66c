"""
Pydantic models for zone / variable definitions and webhook payloads.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr

Scalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
RecordModel = Dict[str, Optional[Scalar]]
FieldValueModel = Union[Scalar, List[RecordModel], None]


class Zone(BaseModel):
    """Absolute rectangle on a PDF page, in points from the top-left corner."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    name: str
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    page: int = Field(ge=1)
    font_size: Optional[float] = Field(default=None, alias="fontSize", gt=0)
    alignment: Optional[Literal["left", "center", "right"]] = None


class Variable(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    name: str
    selector: str
    type: Literal["text", "list"] = "text"
    list_fields: Optional[List[str]] = Field(default=None, alias="listFields")


class ZoneSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    template_name: str = Field(alias="templateName", min_length=1)
    zones: List[Zone]


class VariableSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    template_name: str = Field(alias="templateName", min_length=1)
    variables: List[Variable] = Field(default_factory=list)


class FillRequest(BaseModel):
    """Body shared by every webhook.

    ``templateName`` and ``fields`` default to empty so that the service can
    answer with its own 400 messages instead of a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    template_name: str = Field(default="", alias="templateName")
    fields: Dict[str, FieldValueModel] = Field(default_factory=dict)
    primary_color: Optional[str] = Field(
        default=None,
        alias="primaryColor",
        pattern=r"^#[0-9a-fA-F]{6}$",
    )
