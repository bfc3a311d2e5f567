"""Turn stored rich text into typed blocks for print-style rendering.

The structurer is deliberately forgiving: it never raises for bad markup. A
fragment it cannot make sense of comes back as one plain paragraph holding the
tag-stripped text.
"""

from __future__ import annotations

import html
import re
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from proposal_engine.config import EngineOptions

_LINE_BREAK_TAG_PATTERN = re.compile(r"<br\s*/?>", flags=re.IGNORECASE)
_BLOCK_TAG_PATTERN = re.compile(r"</?(?:p|div|h[1-6]|tr|ul|ol|table|section|blockquote)\b[^<>]*>", flags=re.IGNORECASE)
_LIST_ITEM_OPEN_PATTERN = re.compile(r"<li\b[^<>]*>", flags=re.IGNORECASE)
_COMPLETE_TAG_PATTERN = re.compile(r"</?[A-Za-z!][^<>]*>")
_BROKEN_TAG_PATTERN = re.compile(r"</?[A-Za-z][\w-]*")
_DATE_HINT_PATTERN = re.compile(r"\s*\((?:dd|mm)/(?:mm|dd)/(?:yyyy|yy)\)", flags=re.IGNORECASE)
_INLINE_SPACE_PATTERN = re.compile(r"[ \t\f\v]+")
_SINGLE_WORD_LINE_PATTERN = re.compile(r"^(?:• )?[A-Z][a-z]+$")
_LABEL_CHARS = r"[A-Za-z0-9 \-/()°]"

_BULLET = "• "
_TABLE_TITLE_HINTS = ("annex", "appendix", "context")
_PLACEHOLDER_PHRASES = (
    "details to be provided",
    "to be provided",
    "to be completed",
    "to be confirmed",
    "to be defined",
    "content pending",
    "not yet available",
    "tbd",
    "tbc",
    "n a",
)
_PLACEHOLDER_PREFIXES = ("lorem ipsum",)


class Paragraph(BaseModel):
    kind: Literal["paragraph"] = "paragraph"
    text: str
    emphasis: Literal["plain", "bullet"] = "plain"


class LabeledParagraph(BaseModel):
    kind: Literal["labeled_paragraph"] = "labeled_paragraph"
    label: str
    value: str
    bullet: bool = False


class TableRow(BaseModel):
    label: str
    value: str = ""


class Table(BaseModel):
    kind: Literal["table"] = "table"
    rows: list[TableRow] = Field(default_factory=list)


Block = Annotated[Union[Paragraph, LabeledParagraph, Table], Field(discriminator="kind")]


def has_unterminated_tag(richtext: str | None) -> bool:
    if not richtext:
        return False
    remainder = _COMPLETE_TAG_PATTERN.sub(" ", richtext)
    return bool(re.search(r"<(?:/|[A-Za-z])", remainder))


def _decode(text: str) -> str:
    return html.unescape(text).replace("\xa0", " ")


def clean_html(richtext: str | None) -> str:
    """Flatten markup to newline-separated text, keeping list items as ``• `` lines.

    >>> clean_html("<p>One</p><ul><li>Two</li></ul>")
    'One\\n• Two'
    """
    if not richtext:
        return ""
    text = _LINE_BREAK_TAG_PATTERN.sub("\n", richtext)
    text = _LIST_ITEM_OPEN_PATTERN.sub(f"\n{_BULLET}", text)
    text = re.sub(r"</li\s*>", "\n", text, flags=re.IGNORECASE)
    text = _BLOCK_TAG_PATTERN.sub("\n", text)
    text = _COMPLETE_TAG_PATTERN.sub("", text)
    text = _BROKEN_TAG_PATTERN.sub("", text)
    text = _decode(text)

    lines = [_INLINE_SPACE_PATTERN.sub(" ", line).strip() for line in text.splitlines()]
    cleaned = "\n".join(line for line in lines if line and line != _BULLET.strip())
    return cleaned


def _squash_separator(text: str, index: int, line: str, max_label_chars: int) -> str | None:
    previous = text[index - 1]
    if previous.islower() or previous.isdigit() or previous in ")]":
        label = re.compile(rf"[A-Z]{_LABEL_CHARS}{{1,{max_label_chars - 1}}}:")
        if label.match(text, index):
            return " " if _SINGLE_WORD_LINE_PATTERN.match(line) else "\n"
        return None

    acronym = text[max(index - 2, 0) : index]
    if len(acronym) == 2 and acronym.isalpha() and acronym.isupper():
        label = re.compile(rf"[A-Z][a-z]{_LABEL_CHARS}{{0,{max_label_chars - 2}}}:")
        if label.match(text, index):
            return "\n"
    return None


def fix_squashed_text(text: str, *, max_label_chars: int = 30) -> str:
    """Re-split labels that lost their line break when markup was flattened.

    >>> fix_squashed_text("BudgetTotal: 50000Duration: 12 months")
    'Budget Total: 50000\\nDuration: 12 months'
    >>> fix_squashed_text("RPGProject Title: Quest")
    'RPG\\nProject Title: Quest'
    """
    lines: list[str] = []
    line = ""
    for index, char in enumerate(text):
        if line and char.isupper():
            separator = _squash_separator(text, index, line, max_label_chars)
            if separator == "\n":
                lines.append(line)
                line = ""
            elif separator == " ":
                line += " "
        if char == "\n":
            lines.append(line)
            line = ""
            continue
        line += char
    lines.append(line)
    return "\n".join(lines)


def _normalize_words(value: str) -> str:
    return " ".join(re.findall(r"[a-z0-9]+", value.lower()))


def is_placeholder_line(line: str) -> bool:
    normalized = _normalize_words(line)
    if not normalized:
        return True
    if normalized in _PLACEHOLDER_PHRASES:
        return True
    return any(normalized.startswith(prefix) for prefix in _PLACEHOLDER_PREFIXES)


def split_label(line: str, *, max_index: int = 70) -> tuple[str, str] | None:
    colon_index = line.find(":")
    if colon_index <= 0 or colon_index >= max_index or colon_index >= len(line) - 1:
        return None
    if line[colon_index + 1 : colon_index + 3] == "//":
        return None
    label = line[:colon_index].strip()
    value = line[colon_index + 1 :].strip()
    if not label or not value:
        return None
    return label, value


def _wants_table(section_title_hint: str | None) -> bool:
    lowered = (section_title_hint or "").lower()
    return any(hint in lowered for hint in _TABLE_TITLE_HINTS)


def _fallback_paragraph(richtext: str) -> list[Block]:
    text = _COMPLETE_TAG_PATTERN.sub(" ", richtext)
    text = _BROKEN_TAG_PATTERN.sub(" ", text)
    text = " ".join(_decode(text).split())
    return [Paragraph(text=text)] if text else []


def structure(
    richtext: str | None,
    section_title_hint: str | None = None,
    *,
    options: EngineOptions | None = None,
) -> list[Block]:
    """Split a rich-text fragment into paragraphs, labeled paragraphs or one key/value table."""
    if not richtext or not richtext.strip():
        return []
    if has_unterminated_tag(richtext):
        return _fallback_paragraph(richtext)

    opts = options or EngineOptions.from_settings()
    text = _DATE_HINT_PATTERN.sub("", clean_html(richtext))
    text = fix_squashed_text(text, max_label_chars=opts.squashed_label_max_chars)

    lines: list[tuple[str, bool]] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        bullet = line.startswith(_BULLET.strip())
        if bullet:
            line = line[1:].strip()
        if not line or is_placeholder_line(line):
            continue
        lines.append((line, bullet))

    if not lines:
        return []

    if _wants_table(section_title_hint):
        rows: list[TableRow] = []
        for line, _ in lines:
            pair = split_label(line, max_index=opts.label_colon_max_index)
            rows.append(TableRow(label=pair[0], value=pair[1]) if pair else TableRow(label=line))
        return [Table(rows=rows)]

    blocks: list[Block] = []
    for line, bullet in lines:
        pair = split_label(line, max_index=opts.label_colon_max_index)
        if pair is not None:
            blocks.append(LabeledParagraph(label=pair[0], value=pair[1], bullet=bullet))
        else:
            blocks.append(Paragraph(text=line, emphasis="bullet" if bullet else "plain"))
    return blocks
