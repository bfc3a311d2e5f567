from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from proposal_engine.api.contracts import AssembleRequest, MarkdownExportRequest, StructureRequest
from proposal_engine.assembly import assemble_report
from proposal_engine.config import EngineOptions
from proposal_engine.export import ExportCompositionError, compose_markdown_document
from proposal_engine.observability import sanitize_for_logging
from proposal_engine.structuring import structure


logger = logging.getLogger("proposal_engine.api")

router = APIRouter()


@router.post("/assemble")
def assemble_sections(payload: AssembleRequest) -> dict[str, object]:
    report = assemble_report(
        payload.template,
        payload.content,
        payload.records,
        payload.layout,
        options=EngineOptions.from_settings(),
    )
    logger.info(
        "sections_assembled",
        extra={
            "event": "sections_assembled",
            "section_count": len(report.sections),
            "unmatched_keys": sanitize_for_logging(report.unmatched_keys),
            "synthesized_anchors": report.synthesized_anchors,
        },
    )
    return report.model_dump()


@router.post("/structure")
def structure_richtext(payload: StructureRequest) -> dict[str, object]:
    blocks = structure(payload.richtext, payload.section_title, options=EngineOptions.from_settings())
    return {"blocks": [block.model_dump() for block in blocks]}


@router.post("/export/markdown", response_class=PlainTextResponse)
def export_markdown(payload: MarkdownExportRequest) -> PlainTextResponse:
    options = EngineOptions.from_settings()
    report = assemble_report(payload.template, payload.content, payload.records, payload.layout, options=options)
    try:
        document = compose_markdown_document(
            report.sections,
            payload.records,
            title=payload.title,
            scheme_name=payload.scheme_name,
        )
    except ExportCompositionError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": "Export quality gates failed.", "errors": exc.errors},
        ) from exc

    logger.info(
        "markdown_exported",
        extra={
            "event": "markdown_exported",
            "section_count": len(report.sections),
            "characters": len(document),
        },
    )
    return PlainTextResponse(content=document, media_type="text/markdown")
