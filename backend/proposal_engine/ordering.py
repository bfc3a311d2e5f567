"""Priority bands used to put assembled sections in a stable document order.

Every section gets an integer band. An explicit layout sequence wins; after that
a work package sorts at ``WP_BAND_BASE + index``; after that the first matching
:class:`PriorityCategory` applies; everything else is ``UNCLASSIFIED``. Within a
band, sections are separated by a fraction of their traversal index that always
stays below 0.5, so a tie-break can never push a section into the next band.
"""

from __future__ import annotations

from enum import IntEnum

from proposal_engine.text import extract_wp_index, normalize_label


class PriorityCategory(IntEnum):
    FRONT_MATTER = -1
    CONTEXT = 1
    SUMMARY = 2
    RELEVANCE = 3
    DESCRIPTION = 4
    NEEDS_ANALYSIS = 5
    PARTNERSHIP = 6
    IMPACT = 10
    DESIGN = 11
    WP_OVERVIEW = 100
    UNCLASSIFIED = 500
    PARTNERS = 700
    PARTNER_PROFILES = 710
    BUDGET = 800
    RISK = 810
    DECLARATION = 990
    ANNEXES = 992
    OTHER_DOCUMENTS = 993
    EU_VALUES = 994
    CHECKLIST = 995


WP_BAND_BASE = 101
LAYOUT_MATCH_MIN_CHARS = 4
TIE_BREAK_SPAN = 0.5

# Matched first by equality, then by containment, in this order.
CATEGORY_TABLE: tuple[tuple[str, PriorityCategory], ...] = (
    ("context", PriorityCategory.CONTEXT),
    ("projectsummary", PriorityCategory.SUMMARY),
    ("executivesummary", PriorityCategory.SUMMARY),
    ("abstract", PriorityCategory.SUMMARY),
    ("summary", PriorityCategory.SUMMARY),
    ("relevance", PriorityCategory.RELEVANCE),
    ("projectdescription", PriorityCategory.DESCRIPTION),
    ("needsanalysis", PriorityCategory.NEEDS_ANALYSIS),
    ("partnershiparrangements", PriorityCategory.PARTNERSHIP),
    ("partnershipandcooperation", PriorityCategory.PARTNERSHIP),
    ("consortium", PriorityCategory.PARTNERSHIP),
    ("impact", PriorityCategory.IMPACT),
    ("projectdesignandimplementation", PriorityCategory.DESIGN),
    ("methodology", PriorityCategory.DESIGN),
    ("design", PriorityCategory.DESIGN),
    ("implementation", PriorityCategory.DESIGN),
    ("workpackagesoverview", PriorityCategory.WP_OVERVIEW),
    ("wplist", PriorityCategory.WP_OVERVIEW),
    ("participatingorganisations", PriorityCategory.PARTNERS),
    ("organisationprofiles", PriorityCategory.PARTNER_PROFILES),
    ("budget", PriorityCategory.BUDGET),
    ("risk", PriorityCategory.RISK),
    ("declaration", PriorityCategory.DECLARATION),
    ("annex", PriorityCategory.ANNEXES),
    ("otherdocuments", PriorityCategory.OTHER_DOCUMENTS),
    ("euvalues", PriorityCategory.EU_VALUES),
    ("checklist", PriorityCategory.CHECKLIST),
)


def category_for(key: str, title: str | None = None) -> PriorityCategory:
    normalized_key = normalize_label(key)
    normalized_title = normalize_label(title)
    for token, category in CATEGORY_TABLE:
        if normalized_key == token or normalized_title == token:
            return category
    for token, category in CATEGORY_TABLE:
        if token in normalized_key or token in normalized_title:
            return category
    return PriorityCategory.UNCLASSIFIED


def layout_position(layout: list[str], key: str, title: str | None = None) -> int | None:
    normalized_key = normalize_label(key)
    normalized_title = normalize_label(title)
    for index, item in enumerate(layout):
        normalized_item = normalize_label(item)
        if not normalized_item:
            continue
        if normalized_item in {normalized_key, normalized_title}:
            return index
        if len(normalized_item) > LAYOUT_MATCH_MIN_CHARS and (
            normalized_item in normalized_key or normalized_item in normalized_title
        ):
            return index
    return None


def section_priority(key: str, title: str | None = None, layout: list[str] | None = None) -> int:
    if layout:
        position = layout_position(layout, key, title)
        if position is not None:
            return position

    wp_idx = extract_wp_index(key)
    if wp_idx is None:
        wp_idx = extract_wp_index(title)
    if wp_idx is not None:
        return WP_BAND_BASE + wp_idx

    return int(category_for(key, title))


def tie_break_fraction(traversal_index: float, pool_size: int) -> float:
    """Scale a traversal index into ``(-0.5, 0.5)`` for any index in ``[-0.5, pool_size)``."""
    if pool_size < 1:
        return 0.0
    return TIE_BREAK_SPAN * traversal_index / (pool_size + 1)
