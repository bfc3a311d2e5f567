"""Resolve a funding-scheme template, a content bag and structured records into display sections.

The resolver builds a section pool from the template, guarantees one slot per
work package, folds content-bag entries into the pool through the matching
pipeline, reconciles the pool with the authoritative records (work package
names, partner/budget/risk anchors, executive summary), injects the work
package overview and finally sorts, de-duplicates and filters the pool.

Nothing here raises for malformed input and nothing is cached between calls:
the same inputs always give the same sections, ids and order.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re

from proposal_engine.config import EngineOptions
from proposal_engine.inputs import coerce_content_bag, coerce_layout, coerce_records, coerce_template
from proposal_engine.matching import SectionLookup, is_duplicate_text, merge_content, resolve_key
from proposal_engine.models import (
    STRUCTURAL_TYPES,
    AssemblyReport,
    DisplaySection,
    SectionType,
    StructuredRecords,
    TemplateNode,
)
from proposal_engine.observability import content_preview
from proposal_engine.ordering import PriorityCategory, section_priority, tie_break_fraction
from proposal_engine.text import (
    clean_title,
    content_fingerprint,
    content_length,
    extract_wp_index,
    humanize_key,
    is_wp_placeholder_title,
    normalize_label,
    slugify,
)

logger = logging.getLogger("proposal_engine.assembly")

_RESERVED_CONTENT_KEYS = {
    "summary": "summary",
    "abstract": "summary",
    "executivesummary": "summary",
    "budget": "budget",
    "partners": "partners",
    "risks": "risk",
}
_TEMPLATE_ANCHOR_TYPES = {"budget", "risk", "partners"}
_GENERIC_TITLE_TOKENS = ("activities", "loading", "untitled", "placeholder", "tbd")
_SUMMARY_TITLES = {"summary", "abstract", "executivesummary", "projectsummary"}
_OVERVIEW_TITLES = {"workpackagesoverview", "workpackageoverview", "wplist", "listofworkpackages"}
_PARAGRAPH_BREAK_PATTERN = re.compile(r"\n\s*\n")


@dataclass(frozen=True)
class _AnchorSpec:
    type: SectionType
    id: str
    title: str
    contains: tuple[str, ...]
    aliases: tuple[str, ...] = ()

    def matches(self, title: str) -> bool:
        normalized = normalize_label(title)
        if not normalized:
            return False
        if normalized in self.aliases:
            return True
        return any(token in normalized for token in self.contains)


_ANCHOR_SPECS: tuple[_AnchorSpec, ...] = (
    _AnchorSpec(
        type="partners",
        id="anchor/partners",
        title="Participating Organisations",
        contains=("participatingorganisations", "participatingorganizations"),
        aliases=("partners", "partnerlist", "consortiumpartners", "listofpartners"),
    ),
    _AnchorSpec(
        type="partner_profiles",
        id="anchor/partner_profiles",
        title="Organisation Profiles & Capacity",
        contains=("organisationprofiles", "organizationprofiles", "partnerprofiles"),
    ),
    _AnchorSpec(
        type="budget",
        id="anchor/budget",
        title="Budget & Cost Estimation",
        contains=("budgetcostestimation",),
        aliases=("budget", "projectbudget", "budgetbreakdown", "budgetoverview"),
    ),
    _AnchorSpec(
        type="risk",
        id="anchor/risks",
        title="Risk Management & Mitigation",
        contains=("riskmanagementmitigation", "riskmanagement"),
        aliases=("risk", "risks", "riskanalysis"),
    ),
)


@dataclass
class _PoolEntry:
    id: str
    key: str
    title: str
    type: SectionType
    level: int
    band: int
    traversal: float
    content: str | None = None
    description: str | None = None
    wp_idx: int | None = None
    char_limit: int | None = None
    parent_id: str | None = None
    order: float = 0.0

    def to_section(self) -> DisplaySection:
        return DisplaySection(
            id=self.id,
            title=self.title,
            content=self.content,
            description=self.description,
            type=self.type,
            level=self.level,
            wp_idx=self.wp_idx if self.type == "work_package" else None,
            order=self.order,
            char_limit=self.char_limit,
            parent_id=self.parent_id,
        )


@dataclass
class _Paragraph:
    text: str
    alive: bool = True


def _ordered_siblings(nodes: list[TemplateNode]) -> list[tuple[int, TemplateNode]]:
    return sorted(
        enumerate(nodes),
        key=lambda pair: (pair[1].order is None, pair[1].order or 0.0, pair[0]),
    )


def _looks_like_wp_header(node: TemplateNode, wp_idx: int) -> bool:
    if node.type == "work_package":
        return True
    normalized_label = normalize_label(node.label)
    normalized_key = normalize_label(node.key)
    token = f"wp{wp_idx + 1}"
    if "workpackage" in normalized_label or normalized_label.startswith(token):
        return True
    return "workpackage" in normalized_key or normalized_key == token


class _PoolBuilder:
    def __init__(self, options: EngineOptions, layout: list[str]) -> None:
        self.options = options
        self.layout = layout
        self.pool: dict[str, _PoolEntry] = {}
        self.lookup = SectionLookup()
        self.typed_anchor_ids: dict[str, str] = {}
        self.reserved_content: dict[str, str] = {}
        self.unmatched_keys: list[str] = []
        self.synthesized_anchors: list[str] = []

    def _unique_id(self, candidate: str) -> str:
        if candidate not in self.pool:
            return candidate
        suffix = 2
        while f"{candidate}_{suffix}" in self.pool:
            suffix += 1
        return f"{candidate}_{suffix}"

    def _add(self, entry: _PoolEntry) -> _PoolEntry:
        self.pool[entry.id] = entry
        return entry

    def _next_traversal(self) -> int:
        return len(self.pool)

    def _has_text(self, entry: _PoolEntry) -> bool:
        return content_length(entry.content) > self.options.min_content_chars

    # Step 1: template skeleton.
    def add_template(self, nodes: list[TemplateNode], parent: _PoolEntry | None = None, level: int = 1) -> None:
        for index, node in _ordered_siblings(nodes):
            slug = slugify(node.key or "") or slugify(node.label) or f"section_{index + 1}"
            section_id = self._unique_id(f"{parent.id}/{slug}" if parent else slug)
            base_key = node.key or normalize_label(node.label)
            title = clean_title(node.label) or humanize_key(node.key or "")

            wp_idx = extract_wp_index(base_key)
            if wp_idx is None:
                wp_idx = extract_wp_index(node.label)
            is_wp_slot = (
                wp_idx is not None
                and _looks_like_wp_header(node, wp_idx)
                and self.lookup.register_wp(wp_idx, section_id)
            )

            section_type: SectionType = "narrative"
            if is_wp_slot:
                section_type = "work_package"
            elif node.type in _TEMPLATE_ANCHOR_TYPES and node.type not in self.typed_anchor_ids:
                section_type = node.type  # type: ignore[assignment]
                self.typed_anchor_ids[node.type] = section_id

            band = section_priority(base_key, node.label, self.layout)
            # Unclassified subsections stay inside their parent's band.
            if parent is not None and band == PriorityCategory.UNCLASSIFIED:
                band = parent.band

            entry = self._add(
                _PoolEntry(
                    id=section_id,
                    key=base_key,
                    title=title,
                    type=section_type,
                    level=1 if is_wp_slot else level,
                    band=band,
                    traversal=self._next_traversal(),
                    description=node.description,
                    wp_idx=wp_idx if is_wp_slot else None,
                    char_limit=node.char_limit,
                    parent_id=parent.id if parent else None,
                )
            )
            self.lookup.register(section_id, key=node.key, title=node.label or title)
            if node.subsections:
                self.add_template(node.subsections, parent=entry, level=level + 1)

    def _add_wp_slot(self, wp_idx: int, *, content: str | None = None) -> _PoolEntry:
        section_id = self._unique_id(f"work_package_{wp_idx + 1}")
        title = f"Work Package {wp_idx + 1}"
        entry = self._add(
            _PoolEntry(
                id=section_id,
                key=section_id,
                title=title,
                type="work_package",
                level=1,
                band=section_priority(section_id, title, self.layout),
                traversal=self._next_traversal(),
                content=content,
                wp_idx=wp_idx,
            )
        )
        self.lookup.register_wp(wp_idx, section_id)
        self.lookup.register(section_id, key=section_id, title=title)
        return entry

    # Step 2: one slot per structured work package.
    def ensure_wp_slots(self, count: int) -> None:
        for wp_idx in range(count):
            if wp_idx not in self.lookup.wp_index_to_id:
                self._add_wp_slot(wp_idx)

    # Step 3: content bag.
    def merge_content_bag(self, bag: dict[str, str]) -> None:
        for key in sorted(bag, key=lambda item: (normalize_label(item), item)):
            value = bag[key]
            if content_length(value) < self.options.trivial_value_chars:
                continue

            reserved = _RESERVED_CONTENT_KEYS.get(normalize_label(key))
            if reserved is not None:
                merged, _ = merge_content(self.reserved_content.get(reserved), value, self.options)
                self.reserved_content[reserved] = merged
                continue

            # A work package index with no slot yet gets its own slot, never a fuzzy match.
            wp_idx = extract_wp_index(key)
            if wp_idx is not None and wp_idx not in self.lookup.wp_index_to_id:
                self.unmatched_keys.append(key)
                self._add_wp_slot(wp_idx, content=value)
                continue

            match = resolve_key(self.lookup, key, self.options)
            if match is not None:
                target = self.pool[match.section_id]
                target.content, _ = merge_content(target.content, value, self.options)
                continue

            self.unmatched_keys.append(key)

            section_id = self._unique_id(slugify(key) or "section")
            title = humanize_key(key)
            self._add(
                _PoolEntry(
                    id=section_id,
                    key=key,
                    title=title,
                    type="narrative",
                    level=1,
                    band=section_priority(key, title, self.layout),
                    traversal=self._next_traversal(),
                    content=value,
                )
            )
            self.lookup.register(section_id, key=key, title=title)

    # Step 5: authoritative records.
    def _should_take_record_name(self, title: str, name: str) -> bool:
        if not name.strip():
            return False
        if not title.strip() or is_wp_placeholder_title(title):
            return True
        lowered = title.lower()
        generic = len(title) < self.options.placeholder_title_chars or any(
            token in lowered for token in _GENERIC_TITLE_TOKENS
        )
        return generic and len(clean_title(name)) >= len(title)

    def reconcile_work_packages(self, records: StructuredRecords) -> None:
        for wp_idx, work_package in enumerate(records.work_packages):
            entry = self.pool[self.lookup.wp_index_to_id[wp_idx]]
            if self._should_take_record_name(entry.title, work_package.name):
                entry.title = clean_title(work_package.name)
            if not content_fingerprint(entry.content) and content_fingerprint(work_package.description):
                entry.content = work_package.description

    def _find_anchor_target(self, spec: _AnchorSpec) -> _PoolEntry | None:
        typed = self.typed_anchor_ids.get(spec.type)
        if typed is not None:
            return self.pool[typed]
        for entry in self.pool.values():
            if entry.type != "narrative":
                continue
            if spec.matches(entry.title):
                return entry
        return None

    def ensure_anchor(self, spec: _AnchorSpec, text: str | None) -> None:
        target = self._find_anchor_target(spec)
        if target is None:
            target = self._add(
                _PoolEntry(
                    id=self._unique_id(spec.id),
                    key=spec.id,
                    title=spec.title,
                    type=spec.type,
                    level=1,
                    band=section_priority(spec.id, spec.title, self.layout),
                    traversal=self._next_traversal(),
                )
            )
            self.synthesized_anchors.append(target.id)
        target.type = spec.type
        self.typed_anchor_ids[spec.type] = target.id
        if text:
            target.content, _ = merge_content(target.content, text, self.options)

    def ensure_summary(self, records: StructuredRecords) -> None:
        text = self.reserved_content.get("summary")
        if records.summary and content_length(records.summary) >= self.options.trivial_value_chars:
            if text:
                text, _ = merge_content(records.summary, text, self.options)
            else:
                text = records.summary
        if not text:
            return

        # Only an empty summary slot is taken over; filled ones keep their own text.
        for entry in self.pool.values():
            if entry.type != "narrative" or normalize_label(entry.title) not in _SUMMARY_TITLES:
                continue
            if content_fingerprint(entry.content):
                continue
            entry.type = "summary"
            entry.content = text
            return

        entry = self._add(
            _PoolEntry(
                id=self._unique_id("anchor/summary"),
                key="summary",
                title="Executive Summary",
                type="summary",
                level=1,
                band=int(PriorityCategory.FRONT_MATTER),
                traversal=self._next_traversal(),
                content=text,
            )
        )
        self.synthesized_anchors.append(entry.id)

    def reconcile(self, records: StructuredRecords) -> None:
        self.reconcile_work_packages(records)
        self.ensure_summary(records)

        wanted = {
            "partners": bool(records.partners) or "partners" in self.reserved_content,
            "partner_profiles": bool(records.partners),
            "budget": bool(records.budget) or "budget" in self.reserved_content,
            "risk": bool(records.risks) or "risk" in self.reserved_content,
        }
        for spec in _ANCHOR_SPECS:
            if wanted[spec.type]:
                self.ensure_anchor(spec, self.reserved_content.get(spec.type))

    def _sorted_entries(self) -> list[_PoolEntry]:
        size = len(self.pool)
        for entry in self.pool.values():
            entry.order = entry.band + tie_break_fraction(entry.traversal, size)
        return sorted(self.pool.values(), key=lambda item: (item.order, item.traversal))

    # Step 6: overview before the first work package.
    def inject_overview(self) -> None:
        if any(entry.type == "wp_list" for entry in self.pool.values()):
            return
        ordered = self._sorted_entries()
        work_packages = [entry for entry in ordered if entry.type == "work_package"]
        if not work_packages:
            return
        first_wp = min(work_packages, key=lambda entry: (entry.wp_idx, entry.order))

        overview = next(
            (
                entry
                for entry in ordered
                if entry.type == "narrative" and normalize_label(entry.title) in _OVERVIEW_TITLES
            ),
            None,
        )
        if overview is None:
            overview = self._add(
                _PoolEntry(
                    id=self._unique_id("anchor/wp_overview"),
                    key="wp_overview",
                    title="Work packages overview",
                    type="wp_list",
                    level=1,
                    band=first_wp.band,
                    traversal=first_wp.traversal - 0.5,
                )
            )
            self.synthesized_anchors.append(overview.id)
        overview.type = "wp_list"
        overview.band = first_wp.band
        overview.traversal = first_wp.traversal - 0.5

    # Step 7: sort, dedupe, filter.
    def _dedupe_contents(self, ordered: list[_PoolEntry]) -> None:
        """Keep every paragraph in one section only.

        Two paragraphs clash when one contains the other or they share a leading
        span of ``dedup_probe_chars``. The longer copy survives; on equal length
        the earlier section keeps it.
        """
        span = self.options.dedup_probe_chars
        held: list[_Paragraph] = []
        by_entry: dict[str, list[_Paragraph]] = {}
        for entry in ordered:
            if not content_fingerprint(entry.content):
                continue
            paragraphs = [
                _Paragraph(text=part.strip())
                for part in _PARAGRAPH_BREAK_PATTERN.split(entry.content or "")
                if part.strip()
            ]
            by_entry[entry.id] = paragraphs
            for paragraph in paragraphs:
                if content_length(paragraph.text) < span:
                    continue
                for other in held:
                    if not other.alive or not is_duplicate_text(other.text, paragraph.text, probe_chars=span):
                        continue
                    if content_length(paragraph.text) > content_length(other.text):
                        other.alive = False
                    else:
                        paragraph.alive = False
                        break
                if paragraph.alive:
                    held.append(paragraph)

        for entry in ordered:
            paragraphs = by_entry.get(entry.id)
            if paragraphs is None or all(paragraph.alive for paragraph in paragraphs):
                continue
            kept = [paragraph.text for paragraph in paragraphs if paragraph.alive]
            entry.content = "\n\n".join(kept) if kept else None

    def finalize(self) -> list[DisplaySection]:
        ordered = self._sorted_entries()
        self._dedupe_contents(ordered)

        kept_ids = {
            entry.id for entry in ordered if entry.type in STRUCTURAL_TYPES or self._has_text(entry)
        }
        sections: list[DisplaySection] = []
        for entry in ordered:
            prefix = f"{entry.id}/"
            if entry.id in kept_ids or any(kept.startswith(prefix) for kept in kept_ids):
                sections.append(entry.to_section())
        return sections


def assemble_report(
    template: object = None,
    content_bag: object = None,
    records: object = None,
    layout: object = None,
    *,
    options: EngineOptions | None = None,
) -> AssemblyReport:
    """Assemble display sections and report content keys that matched no template slot."""
    opts = options or EngineOptions.from_settings()
    structured = coerce_records(records)
    bag = coerce_content_bag(content_bag, opts)

    builder = _PoolBuilder(opts, coerce_layout(layout))
    builder.add_template(coerce_template(template))
    builder.ensure_wp_slots(len(structured.work_packages))
    builder.merge_content_bag(bag)
    builder.reconcile(structured)
    builder.inject_overview()
    sections = builder.finalize()

    for key in builder.unmatched_keys:
        logger.warning(
            "content_key_unmatched",
            extra={
                "event": "content_key_unmatched",
                "content_key": key,
                "content_preview": content_preview(bag.get(key)),
            },
        )
    logger.debug(
        "assembly_completed",
        extra={
            "event": "assembly_completed",
            "template_sections": len(builder.pool),
            "content_keys": len(bag),
            "sections": len(sections),
            "synthesized_anchors": list(builder.synthesized_anchors),
        },
    )
    return AssemblyReport(
        sections=sections,
        unmatched_keys=list(builder.unmatched_keys),
        synthesized_anchors=list(builder.synthesized_anchors),
    )


def assemble(
    template: object = None,
    content_bag: object = None,
    records: object = None,
    layout: object = None,
    *,
    options: EngineOptions | None = None,
) -> list[DisplaySection]:
    return assemble_report(template, content_bag, records, layout, options=options).sections
