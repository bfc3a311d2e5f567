from __future__ import annotations

import re
from typing import Sequence

from proposal_engine.inputs import coerce_records
from proposal_engine.models import DisplaySection, Partner, StructuredRecords, WorkPackage
from proposal_engine.structuring import Block, LabeledParagraph, Paragraph, Table, structure

_MAX_HEADING_DEPTH = 6


class ExportCompositionError(ValueError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


def compose_markdown_document(
    sections: Sequence[DisplaySection],
    records: StructuredRecords | dict[str, object] | None,
    *,
    title: str,
    scheme_name: str | None = None,
) -> str:
    """Render assembled sections as a print-style markdown summary.

    Narrative sections go through the rich-text structurer; structural sections
    are rendered from the records so tables always reflect the stored data.
    """
    errors: list[str] = []
    if not (title or "").strip():
        errors.append("Document title is required.")
    if errors:
        raise ExportCompositionError(errors)

    structured = coerce_records(records)
    lines: list[str] = [f"# {_escape_inline(title)}", ""]
    if scheme_name and scheme_name.strip():
        lines.extend([f"_Funding scheme: {_escape_inline(scheme_name)}_", ""])

    for section in sections:
        depth = min(section.level + 1, _MAX_HEADING_DEPTH)
        lines.append(f"{'#' * depth} {_escape_inline(section.title)}")
        lines.append("")
        lines.extend(_render_section(section, structured))

    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines) + "\n"


def _render_section(section: DisplaySection, records: StructuredRecords) -> list[str]:
    if section.type == "wp_list":
        return _render_wp_overview(records.work_packages)
    if section.type == "work_package":
        work_package = _work_package_for(section, records)
        return _render_blocks(structure(section.content, section.title)) + _render_work_package(
            work_package, currency=records.currency
        )
    if section.type == "budget":
        return _render_blocks(structure(section.content, section.title)) + _render_budget(records)
    if section.type == "risk":
        return _render_blocks(structure(section.content, section.title)) + _render_risks(records)
    if section.type == "partners":
        return _render_blocks(structure(section.content, section.title)) + _render_partners(records.partners)
    if section.type == "partner_profiles":
        return _render_partner_profiles(records.partners)
    return _render_blocks(structure(section.content, section.title))


def _work_package_for(section: DisplaySection, records: StructuredRecords) -> WorkPackage | None:
    if section.wp_idx is None or section.wp_idx >= len(records.work_packages):
        return None
    return records.work_packages[section.wp_idx]


def _render_blocks(blocks: list[Block]) -> list[str]:
    lines: list[str] = []
    for block in blocks:
        if lines and lines[-1].startswith("- ") and not _is_bullet(block):
            lines.append("")
        if isinstance(block, LabeledParagraph):
            prefix = "- " if block.bullet else ""
            lines.append(f"{prefix}**{_escape_inline(block.label)}:** {block.value}")
        elif isinstance(block, Paragraph):
            prefix = "- " if block.emphasis == "bullet" else ""
            lines.append(f"{prefix}{block.text}")
        elif isinstance(block, Table):
            lines.extend(["", "| | |", "|---|---|"])
            for row in block.rows:
                label = f"**{_escape_table(row.label)}**"
                lines.append(f"| {label} | {_escape_table(row.value)} |")
            lines.append("")
            continue
        if not lines[-1].startswith("- "):
            lines.append("")
    if lines and lines[-1]:
        lines.append("")
    return lines


def _is_bullet(block: Block) -> bool:
    if isinstance(block, LabeledParagraph):
        return block.bullet
    return isinstance(block, Paragraph) and block.emphasis == "bullet"


def _table(header: list[str], rows: list[list[str]]) -> list[str]:
    lines = ["| " + " | ".join(header) + " |", "|" + "---|" * len(header)]
    for row in rows:
        lines.append("| " + " | ".join(_escape_table(cell) for cell in row) + " |")
    lines.append("")
    return lines


def _render_wp_overview(work_packages: list[WorkPackage]) -> list[str]:
    if not work_packages:
        return []
    rows = [
        [
            f"WP{index}",
            work_package.name or f"Work Package {index}",
            str(len(work_package.activities)),
            str(len(_deliverables(work_package))),
        ]
        for index, work_package in enumerate(work_packages, start=1)
    ]
    return _table(["#", "Work package", "Activities", "Deliverables"], rows)


def _deliverables(work_package: WorkPackage) -> list[str]:
    return [item.strip() for item in work_package.deliverables if item and item.strip()]


def _render_work_package(work_package: WorkPackage | None, *, currency: str) -> list[str]:
    if work_package is None:
        return []
    lines: list[str] = []
    if work_package.duration:
        lines.extend([f"**Duration:** {work_package.duration}", ""])
    if work_package.activities:
        rows = [
            [
                activity.name,
                activity.lead_partner or "-",
                _format_money(activity.estimated_budget, currency) if activity.estimated_budget else "-",
            ]
            for activity in work_package.activities
        ]
        lines.extend(["**Activities**", ""])
        lines.extend(_table(["Activity", "Lead", "Estimated budget"], rows))
    deliverables = _deliverables(work_package)
    if deliverables:
        lines.extend(["**Deliverables**", ""])
        lines.extend(f"- {item}" for item in deliverables)
        lines.append("")
    return lines


def _render_budget(records: StructuredRecords) -> list[str]:
    if not records.budget:
        return []
    rows = [[item.item, item.description, _format_money(item.cost, records.currency)] for item in records.budget]
    total = sum(item.cost for item in records.budget)
    rows.append(["**Total**", "", f"**{_format_money(total, records.currency)}**"])
    return _table(["Item", "Description", "Cost"], rows)


def _render_risks(records: StructuredRecords) -> list[str]:
    if not records.risks:
        return []
    rows = [[risk.risk, risk.likelihood, risk.impact, risk.mitigation] for risk in records.risks]
    return _table(["Risk", "Likelihood", "Impact", "Mitigation"], rows)


def _partner_name(partner: Partner) -> str:
    name = partner.name or partner.acronym or "Unnamed partner"
    if partner.acronym and partner.name:
        name = f"{partner.name} ({partner.acronym})"
    return name


def _render_partners(partners: list[Partner]) -> list[str]:
    if not partners:
        return []
    rows = [
        [
            str(index),
            _partner_name(partner) + (" (coordinator)" if partner.is_coordinator else ""),
            partner.country or "-",
            partner.role or ("Coordinator" if partner.is_coordinator else "Partner"),
        ]
        for index, partner in enumerate(partners, start=1)
    ]
    return _table(["#", "Organisation", "Country", "Role"], rows)


def _render_partner_profiles(partners: list[Partner]) -> list[str]:
    lines: list[str] = []
    for partner in partners:
        lines.extend([f"**{_escape_inline(_partner_name(partner))}**", ""])
        fields = (
            ("Type", partner.organization_type),
            ("Country", partner.country),
            ("Description", partner.description),
            ("Experience", partner.experience),
            ("Staff skills", partner.staff_skills),
            ("Relevant projects", partner.relevant_projects),
        )
        for label, value in fields:
            text = " ".join(_flatten_text(value))
            if text:
                lines.append(f"- **{label}:** {text}")
        lines.append("")
    return lines


def _flatten_text(value: str | None) -> list[str]:
    blocks = structure(value)
    parts: list[str] = []
    for block in blocks:
        if isinstance(block, LabeledParagraph):
            parts.append(f"{block.label}: {block.value}")
        elif isinstance(block, Paragraph):
            parts.append(block.text)
        elif isinstance(block, Table):
            parts.extend(f"{row.label}: {row.value}" if row.value else row.label for row in block.rows)
    return parts


def _format_money(value: float, currency: str) -> str:
    return f"{value:,.2f} {currency}"


def _escape_inline(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def _escape_table(value: str) -> str:
    return re.sub(r"\s+", " ", value.replace("|", "\\|")).strip()
