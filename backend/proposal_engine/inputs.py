from __future__ import annotations

import logging
from typing import Mapping, TypeVar

from pydantic import BaseModel, ValidationError

from proposal_engine.config import EngineOptions
from proposal_engine.matching import merge_content
from proposal_engine.models import (
    BudgetItem,
    FundingTemplate,
    Partner,
    Risk,
    StructuredRecords,
    TemplateNode,
    WorkPackage,
)
from proposal_engine.text import normalize_label

logger = logging.getLogger("proposal_engine.inputs")

ModelT = TypeVar("ModelT", bound=BaseModel)

_RECORD_LISTS: dict[str, tuple[tuple[str, ...], type[BaseModel]]] = {
    "work_packages": (("work_packages", "workPackages"), WorkPackage),
    "budget": (("budget",), BudgetItem),
    "risks": (("risks",), Risk),
    "partners": (("partners",), Partner),
}


def _validate_with_repair(model: type[ModelT], payload: object) -> tuple[ModelT | None, list[str]]:
    """Validate ``payload``; on failure drop the offending top-level fields and retry once."""
    if isinstance(payload, model):
        return payload, []
    if not isinstance(payload, Mapping):
        return None, [f"expected an object for {model.__name__}"]
    try:
        return model.model_validate(dict(payload)), []
    except ValidationError as err:
        initial_errors = [issue["msg"] for issue in err.errors()]
        bad_fields = {normalize_label(str(issue["loc"][0])) for issue in err.errors() if issue.get("loc")}

    repaired = {key: value for key, value in payload.items() if normalize_label(str(key)) not in bad_fields}
    try:
        return model.model_validate(repaired), initial_errors
    except ValidationError as repaired_err:
        return None, initial_errors + [issue["msg"] for issue in repaired_err.errors()]


def _coerce_list(model: type[ModelT], raw: object, *, source: str) -> list[ModelT]:
    if not isinstance(raw, (list, tuple)):
        return []
    items: list[ModelT] = []
    dropped = 0
    repaired = 0
    for entry in raw:
        value, errors = _validate_with_repair(model, entry)
        if value is None:
            dropped += 1
            continue
        if errors:
            repaired += 1
        items.append(value)
    if dropped or repaired:
        logger.warning(
            "input_records_repaired",
            extra={
                "event": "input_records_repaired",
                "source": source,
                "dropped": dropped,
                "repaired": repaired,
            },
        )
    return items


def _coerce_template_node(raw: object) -> TemplateNode | None:
    if isinstance(raw, TemplateNode):
        return raw
    if not isinstance(raw, Mapping):
        return None
    children = raw.get("subsections")
    shallow = {key: value for key, value in raw.items() if key != "subsections"}
    node, _ = _validate_with_repair(TemplateNode, shallow)
    if node is None:
        return None
    subsections: list[TemplateNode] = []
    if isinstance(children, (list, tuple)):
        for child in children:
            coerced = _coerce_template_node(child)
            if coerced is not None:
                subsections.append(coerced)
    return node.model_copy(update={"subsections": subsections})


def coerce_template(raw: object) -> list[TemplateNode]:
    """Accept a node list, a ``{"sections": [...]}`` scheme object, or nothing at all."""
    if raw is None:
        return []
    if isinstance(raw, FundingTemplate):
        return list(raw.sections)
    if isinstance(raw, Mapping):
        for key in ("template_json", "templateJson"):
            if isinstance(raw.get(key), Mapping):
                return coerce_template(raw[key])
        raw = raw.get("sections")
    if not isinstance(raw, (list, tuple)):
        return []
    nodes = [_coerce_template_node(entry) for entry in raw]
    return [node for node in nodes if node is not None]


def coerce_content_bag(raw: object, options: EngineOptions | None = None) -> dict[str, str]:
    """Keep string values under stripped keys; keys that collapse together are merged, not overwritten."""
    if not isinstance(raw, Mapping):
        return {}
    bag: dict[str, str] = {}
    for key, value in sorted(raw.items(), key=lambda item: str(item[0])):
        if not isinstance(value, str):
            continue
        key_text = str(key).strip()
        if not key_text:
            continue
        if key_text in bag:
            bag[key_text], _ = merge_content(bag[key_text], value, options)
        else:
            bag[key_text] = value
    return bag


def coerce_records(raw: object) -> StructuredRecords:
    if isinstance(raw, StructuredRecords):
        return raw
    if not isinstance(raw, Mapping):
        return StructuredRecords()

    lists: dict[str, list[BaseModel]] = {}
    for field_name, (aliases, model) in _RECORD_LISTS.items():
        value = next((raw.get(alias) for alias in aliases if raw.get(alias) is not None), None)
        lists[field_name] = _coerce_list(model, value, source=field_name)

    summary = raw.get("summary")
    if not isinstance(summary, str):
        summary = raw.get("abstract") if isinstance(raw.get("abstract"), str) else None
    settings_block = raw.get("settings")
    currency = raw.get("currency")
    if not isinstance(currency, str) and isinstance(settings_block, Mapping):
        currency = settings_block.get("currency")
    if not isinstance(currency, str) or not currency.strip():
        currency = "EUR"

    return StructuredRecords(summary=summary, currency=currency.strip(), **lists)


def coerce_layout(raw: object) -> list[str]:
    if isinstance(raw, Mapping):
        raw = raw.get("sequence")
    if not isinstance(raw, (list, tuple)):
        return []
    return [str(item).strip() for item in raw if isinstance(item, str) and item.strip()]
