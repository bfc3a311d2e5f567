from proposal_engine.assembly import assemble, assemble_report
from proposal_engine.export import ExportCompositionError, compose_markdown_document
from proposal_engine.models import AssemblyReport, DisplaySection, StructuredRecords, TemplateNode
from proposal_engine.structuring import clean_html, fix_squashed_text, structure

__all__ = [
    "AssemblyReport",
    "DisplaySection",
    "ExportCompositionError",
    "StructuredRecords",
    "TemplateNode",
    "assemble",
    "assemble_report",
    "clean_html",
    "compose_markdown_document",
    "fix_squashed_text",
    "structure",
]
