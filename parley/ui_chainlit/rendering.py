from __future__ import annotations

from dataclasses import dataclass

from parley.app.formatting.contracts import DEFAULT_CODE_LANGUAGE


@dataclass(frozen=True)
class ThoughtView:
    thought: str
    label: str | None


@dataclass(frozen=True)
class ReplyView:
    markdown: str
    thoughts: tuple[ThoughtView, ...]


def _render_list(heading: object, items: object, *, numbered: bool) -> str:
    lines: list[str] = []
    if isinstance(heading, str) and heading.strip():
        lines.append(heading.strip())
    if isinstance(items, list):
        for index, item in enumerate(items, start=1):
            marker = f"{index}." if numbered else "-"
            lines.append(f"{marker} {item}")
    return "\n".join(lines)


def render_segment_markdown(segment: dict[str, object]) -> str:
    kind = segment.get("type")
    if kind == "code":
        language = segment.get("language")
        fence_tag = (
            language
            if isinstance(language, str) and language != DEFAULT_CODE_LANGUAGE
            else ""
        )
        code = str(segment.get("code", "")).rstrip("\n")
        return f"```{fence_tag}\n{code}\n```"
    if kind == "bullet_list":
        return _render_list(segment.get("heading"), segment.get("items"), numbered=False)
    if kind == "numbered_list":
        return _render_list(segment.get("heading"), segment.get("items"), numbered=True)
    if kind == "thought_answer":
        answer = str(segment.get("answer", ""))
        label = segment.get("label")
        if isinstance(label, str) and label:
            return f"**{label}** {answer}".rstrip()
        return answer
    return str(segment.get("text", ""))


def build_reply_view(segments: object) -> ReplyView:
    if not isinstance(segments, list):
        return ReplyView(markdown="", thoughts=tuple())
    blocks: list[str] = []
    thoughts: list[ThoughtView] = []
    for segment in segments:
        if not isinstance(segment, dict):
            continue
        if segment.get("type") == "thought_answer":
            thought = str(segment.get("thought", "")).strip()
            if thought:
                label = segment.get("label")
                thoughts.append(
                    ThoughtView(
                        thought=thought,
                        label=label if isinstance(label, str) else None,
                    )
                )
        rendered = render_segment_markdown(segment)
        if rendered.strip():
            blocks.append(rendered)
    return ReplyView(markdown="\n\n".join(blocks), thoughts=tuple(thoughts))


def parse_command(content: str) -> tuple[str, list[str]] | None:
    stripped = content.strip()
    if not stripped.startswith("/"):
        return None
    name, _, remainder = stripped[1:].partition(" ")
    if not name:
        return None
    return name.lower(), remainder.split()


def format_chat_list(chats: object, active_chat_id: object = None) -> str:
    if not isinstance(chats, list) or not chats:
        return "No chats yet. Send a message or use `/new` to start one."
    rows: list[str] = []
    for chat in chats:
        if not isinstance(chat, dict):
            continue
        chat_id = chat.get("id")
        title = chat.get("title")
        if not isinstance(chat_id, int) or not isinstance(title, str):
            continue
        marker = " (active)" if chat_id == active_chat_id else ""
        rows.append(f"- `{chat_id}` {title}{marker}")
    return "\n".join(rows) if rows else "No chats yet."
