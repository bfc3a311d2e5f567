from proposal_engine.export.composer import ExportCompositionError, compose_markdown_document

__all__ = ["ExportCompositionError", "compose_markdown_document"]
