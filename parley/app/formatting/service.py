from __future__ import annotations

import re
from collections.abc import Iterator
from uuid import uuid4

from parley.app.formatting.contracts import (
    DEFAULT_CODE_LANGUAGE,
    BulletList,
    CodeBlock,
    ContentSegment,
    NumberedList,
    Paragraph,
    ThoughtAnswer,
)

CODE_FENCE_PATTERN = re.compile(r"```(\w*)\n(.*?)```", re.DOTALL)
NUMBERED_PREFIX_PATTERN = re.compile(r"^\d+\.\s")
ANSWER_MARKER_PATTERN = re.compile(r"(Answer:|Solution:)")

PARAGRAPH_SEPARATOR = "\n\n"
BULLET_MARKER = "\n- "
NUMBERED_MARKER = "\n1. "
THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"


def format_content(text: str) -> tuple[ContentSegment, ...]:
    """Split raw message text into ordered, typed display segments.

    Never raises: anything that does not match a known shape is returned as a
    plain paragraph. Empty input yields an empty tuple.
    """
    return tuple(iter_segments(text))


def iter_segments(text: str) -> Iterator[ContentSegment]:
    if not text:
        return
    # the token is unique per call so input text can never forge a placeholder
    token = f"\x00CODE_BLOCK_{uuid4().hex}_"
    placeholder_pattern = re.compile(re.escape(token) + r"(\d+)\x00")
    stripped_text, code_blocks = _extract_code_blocks(text, token)
    for unit in stripped_text.split(PARAGRAPH_SEPARATOR):
        if not unit.strip():
            continue
        yield from _classify_unit(unit, code_blocks, placeholder_pattern)


def _extract_code_blocks(text: str, token: str) -> tuple[str, list[CodeBlock]]:
    code_blocks: list[CodeBlock] = []

    def _replace(match: re.Match[str]) -> str:
        code_blocks.append(
            CodeBlock(
                language=match.group(1) or DEFAULT_CODE_LANGUAGE,
                code=match.group(2),
            )
        )
        return f"{token}{len(code_blocks) - 1}\x00"

    return CODE_FENCE_PATTERN.sub(_replace, text), code_blocks


def _classify_unit(
    unit: str,
    code_blocks: list[CodeBlock],
    placeholder_pattern: re.Pattern[str],
) -> Iterator[ContentSegment]:
    if placeholder_pattern.search(unit):
        yield from _code_segments(unit, code_blocks, placeholder_pattern)
        return
    if BULLET_MARKER in unit:
        yield _bullet_list(unit)
        return
    if NUMBERED_MARKER in unit:
        yield _numbered_list(unit)
        return
    if THINK_CLOSE in unit:
        yield _think_answer(unit)
        return
    marker = ANSWER_MARKER_PATTERN.search(unit)
    if marker:
        yield ThoughtAnswer(
            thought=unit[: marker.start()].strip(),
            answer=unit[marker.end() :].strip(),
            label=marker.group(1),
        )
        return
    yield Paragraph(text=unit)


def _code_segments(
    unit: str,
    code_blocks: list[CodeBlock],
    placeholder_pattern: re.Pattern[str],
) -> Iterator[ContentSegment]:
    for match in placeholder_pattern.finditer(unit):
        yield code_blocks[int(match.group(1))]
    leftover = placeholder_pattern.sub("", unit).strip()
    if leftover:
        yield Paragraph(text=leftover)


def _bullet_list(unit: str) -> BulletList:
    heading, *items = unit.split(BULLET_MARKER)
    heading = heading.strip()
    # a list with no lead-in line starts with the marker minus its line break
    if heading.startswith("- "):
        items.insert(0, heading[2:])
        heading = ""
    return BulletList(
        heading=heading or None,
        items=tuple(item.strip() for item in items),
    )


def _numbered_list(unit: str) -> NumberedList:
    heading, *lines = unit.split("\n")
    heading = heading.strip()
    if NUMBERED_PREFIX_PATTERN.match(heading):
        lines.insert(0, heading)
        heading = ""
    return NumberedList(
        heading=heading or None,
        items=tuple(
            NUMBERED_PREFIX_PATTERN.sub("", line, count=1).strip()
            for line in lines
            if line.strip()
        ),
    )


def _think_answer(unit: str) -> ThoughtAnswer:
    thought, _, answer = unit.partition(THINK_CLOSE)
    return ThoughtAnswer(
        thought=thought.replace(THINK_OPEN, "").strip(),
        answer=answer.strip(),
    )


def segment_to_payload(segment: ContentSegment) -> dict[str, object]:
    if isinstance(segment, CodeBlock):
        return {"type": "code", "language": segment.language, "code": segment.code}
    if isinstance(segment, BulletList):
        return {
            "type": "bullet_list",
            "heading": segment.heading,
            "items": list(segment.items),
        }
    if isinstance(segment, NumberedList):
        return {
            "type": "numbered_list",
            "heading": segment.heading,
            "items": list(segment.items),
        }
    if isinstance(segment, ThoughtAnswer):
        return {
            "type": "thought_answer",
            "thought": segment.thought,
            "answer": segment.answer,
            "label": segment.label,
        }
    return {"type": "paragraph", "text": segment.text}
