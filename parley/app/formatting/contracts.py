from __future__ import annotations

from dataclasses import dataclass
from typing import Union

DEFAULT_CODE_LANGUAGE = "code"


@dataclass(frozen=True)
class Paragraph:
    text: str


@dataclass(frozen=True)
class CodeBlock:
    language: str
    code: str


@dataclass(frozen=True)
class BulletList:
    heading: str | None
    items: tuple[str, ...]


@dataclass(frozen=True)
class NumberedList:
    heading: str | None
    items: tuple[str, ...]


@dataclass(frozen=True)
class ThoughtAnswer:
    thought: str
    answer: str
    label: str | None = None


ContentSegment = Union[Paragraph, CodeBlock, BulletList, NumberedList, ThoughtAnswer]
