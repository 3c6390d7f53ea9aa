"""Prompt assembly and intent detection.

Prompt layout (blocks separated by a blank line)::

    <instruction>

    <memory summary>

    User: <oldest turn>
    Assistant: <reply>
    User: <current message>
    Assistant:

Empty instruction / memory blocks are omitted. The output depends only on the
inputs, so identical requests produce byte-identical prompts.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from inference_relay.gateway.types import ChatTurn, Intent, Sender

ROLE_LABELS: dict[Sender, str] = {
    Sender.USER: "User",
    Sender.AGENT: "Assistant",
}

ASSISTANT_MARKER = "Assistant:"

_IMAGE_INTENT = re.compile(
    r"\b(image|picture|photo|draw|generate|create an image of|make a picture of)\b",
    re.IGNORECASE,
)


def render_turn(turn: ChatTurn) -> str:
    return f"{ROLE_LABELS[Sender(turn.sender)]}: {turn.text}"


def build_prompt(
    message: str,
    history: Sequence[ChatTurn] = (),
    instruction: str | None = None,
    memory_summary: str | None = None,
) -> str:
    """Build the single upstream prompt string for a chat request."""
    blocks: list[str] = []

    if instruction and instruction.strip():
        blocks.append(instruction.strip())

    if memory_summary and memory_summary.strip():
        blocks.append(memory_summary.strip())

    transcript = [render_turn(turn) for turn in history]
    transcript.append(f"{ROLE_LABELS[Sender.USER]}: {message}")
    transcript.append(ASSISTANT_MARKER)
    blocks.append("\n".join(transcript))

    return "\n\n".join(blocks)


def detect_intent(message: str) -> Intent:
    """Guess whether the user is asking for a picture or a text reply."""
    if _IMAGE_INTENT.search(message):
        return Intent.IMAGE
    return Intent.CHAT
