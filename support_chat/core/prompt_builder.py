"""Canonical prompt assembly.

This module assembles the reply prompt by combining:
- fixed system instructions
- the running conversation summary (if any)
- the tail window of verbatim messages
- the current customer input

Core invariant: given the same system prompt, summary, tail and input, the
built prompt is always identical. Prompts are rebuilt from stored state on
every turn and are never persisted.

Layout (sections separated by one blank line, empty sections omitted):

    <system prompt>

    [Conversation summary]
      <summary, every line indented by two spaces>
    [End of summary]

    [Recent conversation]
    Customer: ...
    Agent: ...

    [Current message]
    Customer: <input>
    Agent:

A message spanning several lines is rendered with two-space continuation
lines, and every summary line is indented the same way, so no message or
summary text can be mistaken for a section marker (see parse_prompt).
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from support_chat.core.message import Message, Sender

SUMMARY_BEGIN = "[Conversation summary]"
SUMMARY_END = "[End of summary]"
RECENT_HEADER = "[Recent conversation]"
CURRENT_HEADER = "[Current message]"

SENDER_LABELS: dict[Sender, str] = {
    "user": "Customer",
    "assistant": "Agent",
}
_LABEL_TO_SENDER: dict[str, Sender] = {label: sender for sender, label in SENDER_LABELS.items()}
_CONTINUATION = "  "
_REPLY_CUE = f"{SENDER_LABELS['assistant']}:"


@dataclass(frozen=True)
class ParsedPrompt:
    """Sections recovered from a canonical prompt."""

    system_prompt: str
    summary: str | None
    tail: list[tuple[Sender, str]] = field(default_factory=list)
    current_input: str = ""


def render_turn(sender: Sender, text: str) -> str:
    """Render one message as a role-tagged line plus continuation lines."""
    first, *rest = text.split("\n")
    lines = [f"{SENDER_LABELS[sender]}: {first}"]
    lines.extend(f"{_CONTINUATION}{line}" for line in rest)
    return "\n".join(lines)


def _indent_block(text: str) -> str:
    return "\n".join(f"{_CONTINUATION}{line}" for line in text.split("\n"))


def render_transcript(messages: Sequence[Message]) -> str:
    """Render messages oldest → newest, one turn per role-tagged line."""
    return "\n".join(render_turn(msg.sender, msg.text) for msg in messages)


def build_prompt(
    system_prompt: str,
    summary: str | None,
    tail_messages: Sequence[Message],
    current_input: str,
) -> str:
    """Build the canonical prompt text.

    Args:
        system_prompt: Fixed system instructions (always first)
        summary: Running summary, or None when nothing has been compressed yet
        tail_messages: Tail window in chronological order
        current_input: Text of the current customer message

    Returns:
        Prompt text ready for the language model gateway

    Raises:
        ValueError: If system_prompt is empty
    """
    if not system_prompt or not system_prompt.strip():
        raise ValueError("system_prompt cannot be empty")

    sections = [system_prompt.strip()]

    if summary is not None and summary.strip():
        sections.append(f"{SUMMARY_BEGIN}\n{_indent_block(summary.strip())}\n{SUMMARY_END}")

    if tail_messages:
        sections.append(f"{RECENT_HEADER}\n{render_transcript(tail_messages)}")

    sections.append(f"{CURRENT_HEADER}\n{render_turn('user', current_input)}\n{_REPLY_CUE}")

    return "\n\n".join(sections)


def _find_line(lines: list[str], marker: str, start: int = 0) -> int | None:
    for index in range(start, len(lines)):
        if lines[index] == marker:
            return index
    return None


def _parse_turns(block: list[str]) -> list[tuple[Sender, str]]:
    turns: list[tuple[Sender, list[str]]] = []
    for line in block:
        label, sep, rest = line.partition(": ")
        if sep and label in _LABEL_TO_SENDER:
            turns.append((_LABEL_TO_SENDER[label], [rest]))
        elif line.startswith(_CONTINUATION) and turns:
            turns[-1][1].append(line[len(_CONTINUATION) :])
        else:
            raise ValueError(f"Unexpected line in conversation block: {line!r}")
    return [(sender, "\n".join(parts)) for sender, parts in turns]


def _trim_trailing_blank(block: list[str]) -> list[str]:
    end = len(block)
    while end > 0 and block[end - 1] == "":
        end -= 1
    return block[:end]


def parse_prompt(prompt_text: str) -> ParsedPrompt:
    """Parse a prompt produced by build_prompt back into its sections.

    Raises:
        ValueError: If the text does not follow the canonical layout
    """
    lines = prompt_text.split("\n")

    current_index = _find_line(lines, CURRENT_HEADER)
    if current_index is None:
        raise ValueError(f"Prompt has no {CURRENT_HEADER} section")

    summary_index = _find_line(lines, SUMMARY_BEGIN)
    recent_index = _find_line(lines, RECENT_HEADER)
    first_marker = min(i for i in (summary_index, recent_index, current_index) if i is not None)
    system_prompt = "\n".join(_trim_trailing_blank(lines[:first_marker]))

    summary: str | None = None
    if summary_index is not None:
        end_index = _find_line(lines, SUMMARY_END, summary_index + 1)
        if end_index is None:
            raise ValueError(f"Summary block is missing {SUMMARY_END}")
        summary_lines = lines[summary_index + 1 : end_index]
        if not summary_lines or not all(line.startswith(_CONTINUATION) for line in summary_lines):
            raise ValueError("Summary lines must be indented")
        summary = "\n".join(line[len(_CONTINUATION) :] for line in summary_lines)

    tail: list[tuple[Sender, str]] = []
    if recent_index is not None:
        tail = _parse_turns(_trim_trailing_blank(lines[recent_index + 1 : current_index]))

    current_block = _trim_trailing_blank(lines[current_index + 1 :])
    if not current_block or current_block[-1] != _REPLY_CUE:
        raise ValueError(f"Current message section must end with {_REPLY_CUE!r}")
    current_turns = _parse_turns(current_block[:-1])
    if len(current_turns) != 1 or current_turns[0][0] != "user":
        raise ValueError("Current message section must hold exactly one customer turn")

    return ParsedPrompt(
        system_prompt=system_prompt,
        summary=summary,
        tail=tail,
        current_input=current_turns[0][1],
    )
