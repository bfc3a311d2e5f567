from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


SectionType = Literal[
    "narrative",
    "summary",
    "work_package",
    "wp_list",
    "budget",
    "risk",
    "partners",
    "partner_profiles",
]

STRUCTURAL_TYPES: frozenset[str] = frozenset(
    {"summary", "wp_list", "work_package", "budget", "risk", "partners", "partner_profiles"}
)


class RecordModel(BaseModel):
    """Stored proposal JSON uses camelCase; both spellings are accepted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    @field_validator("*", mode="before")
    @classmethod
    def _none_as_default(cls, value: object, info) -> object:
        field = cls.model_fields.get(info.field_name)
        if value is None and field is not None and not field.is_required():
            default = field.get_default(call_default_factory=True)
            return default
        return value


class TemplateNode(RecordModel):
    key: str | None = None
    label: str = ""
    description: str | None = None
    type: str | None = None
    order: float | None = None
    char_limit: int | None = None
    subsections: list[TemplateNode] = Field(default_factory=list)


class FundingTemplate(RecordModel):
    sections: list[TemplateNode] = Field(default_factory=list)


class Activity(RecordModel):
    name: str = ""
    description: str = ""
    lead_partner: str = ""
    participating_partners: list[str] = Field(default_factory=list)
    estimated_budget: float = 0.0


class WorkPackage(RecordModel):
    name: str = ""
    description: str = ""
    duration: str | None = None
    activities: list[Activity] = Field(default_factory=list)
    deliverables: list[str] = Field(default_factory=list)


class BudgetBreakdown(RecordModel):
    sub_item: str = ""
    quantity: float = 0.0
    unit_cost: float = 0.0
    total: float = 0.0


class BudgetItem(RecordModel):
    item: str = ""
    description: str = ""
    cost: float = 0.0
    breakdown: list[BudgetBreakdown] = Field(default_factory=list)


class Risk(RecordModel):
    risk: str = ""
    likelihood: str = ""
    impact: str = ""
    mitigation: str = ""


class Partner(RecordModel):
    id: str | None = None
    name: str = ""
    acronym: str | None = None
    country: str | None = None
    city: str | None = None
    role: str | None = None
    is_coordinator: bool = False
    organization_type: str | None = None
    description: str | None = None
    experience: str | None = None
    staff_skills: str | None = None
    relevant_projects: str | None = None
    website: str | None = None
    contact_email: str | None = None


class StructuredRecords(RecordModel):
    summary: str | None = None
    currency: str = "EUR"
    work_packages: list[WorkPackage] = Field(default_factory=list)
    budget: list[BudgetItem] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    partners: list[Partner] = Field(default_factory=list)


class DisplaySection(BaseModel):
    id: str = Field(..., min_length=1)
    title: str
    content: str | None = None
    description: str | None = None
    type: SectionType = "narrative"
    level: int = Field(default=1, ge=1)
    wp_idx: int | None = Field(default=None, ge=0)
    order: float = 0.0
    char_limit: int | None = None
    parent_id: str | None = None

    @property
    def is_structural(self) -> bool:
        return self.type in STRUCTURAL_TYPES


class AssemblyReport(BaseModel):
    sections: list[DisplaySection] = Field(default_factory=list)
    unmatched_keys: list[str] = Field(default_factory=list)
    synthesized_anchors: list[str] = Field(default_factory=list)


TemplateNode.model_rebuild()
