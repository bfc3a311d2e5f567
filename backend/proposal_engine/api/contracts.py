from typing import Any

from pydantic import BaseModel, Field


class AssembleRequest(BaseModel):
    # Shapes are checked by the engine's own repair layer so malformed parts degrade instead of failing.
    template: Any = None
    content: Any = None
    records: Any = None
    layout: Any = None


class StructureRequest(BaseModel):
    richtext: str = Field(default="", max_length=200_000)
    section_title: str | None = Field(default=None, max_length=300)


class MarkdownExportRequest(AssembleRequest):
    title: str = Field(..., max_length=300)
    scheme_name: str | None = Field(default=None, max_length=300)
