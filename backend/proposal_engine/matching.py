from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Literal

from proposal_engine.config import EngineOptions
from proposal_engine.text import content_fingerprint, extract_wp_index, normalize_label

MatchStage = Literal["wp_index", "key", "label", "substring"]
MergeOutcome = Literal["set", "skipped", "replaced", "appended"]


@dataclass
class SectionLookup:
    """Reverse indexes from content-bag vocabulary to section ids, rebuilt per assembly call."""

    wp_index_to_id: dict[int, str] = field(default_factory=dict)
    label_to_id: dict[str, str] = field(default_factory=dict)
    key_to_id: dict[str, str] = field(default_factory=dict)
    # Insertion order of (id, normalized key, normalized title) for the substring stage.
    candidates: list[tuple[str, str, str]] = field(default_factory=list)

    def register(self, section_id: str, *, key: str | None, title: str) -> None:
        normalized_key = normalize_label(key)
        normalized_title = normalize_label(title)
        if normalized_key:
            self.key_to_id.setdefault(normalized_key, section_id)
        if normalized_title:
            self.label_to_id.setdefault(normalized_title, section_id)
        self.candidates.append((section_id, normalized_key, normalized_title))

    def register_wp(self, wp_idx: int, section_id: str) -> bool:
        if wp_idx in self.wp_index_to_id:
            return False
        self.wp_index_to_id[wp_idx] = section_id
        return True


@dataclass(frozen=True)
class MatchResult:
    section_id: str
    stage: MatchStage


def match_wp_or_key(lookup: SectionLookup, key: str) -> MatchResult | None:
    wp_idx = extract_wp_index(key)
    if wp_idx is not None and wp_idx in lookup.wp_index_to_id:
        return MatchResult(lookup.wp_index_to_id[wp_idx], "wp_index")
    section_id = lookup.key_to_id.get(normalize_label(key))
    if section_id is not None:
        return MatchResult(section_id, "key")
    return None


def match_label(lookup: SectionLookup, key: str) -> MatchResult | None:
    section_id = lookup.label_to_id.get(normalize_label(key))
    if section_id is None:
        return None
    return MatchResult(section_id, "label")


def match_substring(lookup: SectionLookup, key: str, *, min_chars: int = 4) -> MatchResult | None:
    normalized = normalize_label(key)
    if len(normalized) < min_chars:
        return None
    wp_idx = extract_wp_index(key)
    for section_id, normalized_key, normalized_title in lookup.candidates:
        for candidate in (normalized_key, normalized_title):
            if len(candidate) < min_chars:
                continue
            # "workpackage1" is inside "workpackage10" but names another work package.
            if extract_wp_index(candidate) != wp_idx:
                continue
            if normalized in candidate or candidate in normalized:
                return MatchResult(section_id, "substring")
    return None


def resolve_key(lookup: SectionLookup, key: str, options: EngineOptions | None = None) -> MatchResult | None:
    """Run the matching stages in order and return the first hit."""
    opts = options or EngineOptions()
    stages: tuple[Callable[[], MatchResult | None], ...] = (
        lambda: match_wp_or_key(lookup, key),
        lambda: match_label(lookup, key),
        lambda: match_substring(lookup, key, min_chars=opts.substring_match_min_chars),
    )
    for stage in stages:
        result = stage()
        if result is not None:
            return result
    return None


def is_contained_text(left: str | None, right: str | None, *, min_chars: int = 20) -> bool:
    """True when the shorter text, at least ``min_chars`` long, appears verbatim inside the longer."""
    left_print = content_fingerprint(left)
    right_print = content_fingerprint(right)
    shorter, longer = sorted((left_print, right_print), key=len)
    if len(shorter) < min_chars:
        return False
    return shorter in longer


def is_duplicate_text(existing: str | None, incoming: str | None, *, probe_chars: int = 20) -> bool:
    existing_print = content_fingerprint(existing)
    incoming_print = content_fingerprint(incoming)
    if not existing_print or not incoming_print:
        return False
    if existing_print in incoming_print or incoming_print in existing_print:
        return True
    return incoming_print[:probe_chars] in existing_print or existing_print[:probe_chars] in incoming_print


def merge_content(
    existing: str | None,
    incoming: str,
    options: EngineOptions | None = None,
) -> tuple[str, MergeOutcome]:
    """Fold a new content-bag value into a slot without repeating text already there."""
    opts = options or EngineOptions()
    existing_print = content_fingerprint(existing)
    incoming_print = content_fingerprint(incoming)
    if not existing_print:
        return incoming, "set"
    current = existing or ""

    if incoming_print in existing_print:
        return current, "skipped"
    if existing_print in incoming_print:
        return incoming, "replaced"
    if is_duplicate_text(current, incoming, probe_chars=opts.dedup_probe_chars):
        if len(incoming_print) >= len(existing_print) * opts.material_growth_ratio:
            return incoming, "replaced"
        return current, "skipped"
    return f"{current}\n\n{incoming}", "appended"


def overlapping_pairs(
    contents: Iterable[tuple[str, str | None]],
    *,
    min_chars: int = 20,
) -> list[tuple[str, str]]:
    """Return id pairs whose contents would break the cross-section dedup guarantee."""
    items = [(section_id, content) for section_id, content in contents if content_fingerprint(content)]
    pairs: list[tuple[str, str]] = []
    for index, (left_id, left) in enumerate(items):
        for right_id, right in items[index + 1 :]:
            if is_contained_text(left, right, min_chars=min_chars):
                pairs.append((left_id, right_id))
    return pairs
