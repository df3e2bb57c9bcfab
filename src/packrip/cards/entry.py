"""Chat entry surface: turns !rip messages into enrollments and builds announcements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from packrip.cards.models import DrawResult

RIP_COMMAND = "!rip"


@dataclass(frozen=True)
class ChatMessage:
    channel_id: str
    user_id: Optional[str]
    username: Optional[str]
    text: str
    is_self: bool = False


@dataclass(frozen=True)
class EntryEvent:
    channel_id: str
    viewer_id: str
    display_name: Optional[str]


class RipCommandFilter:
    """Recognises the rip command in chat; everything else is ignored."""

    def __init__(self, command: str = RIP_COMMAND) -> None:
        self.command = command.strip().lower()

    def parse(self, message: ChatMessage) -> Optional[EntryEvent]:
        if message.is_self or not message.user_id:
            return None
        if message.text.strip().lower() != self.command:
            return None
        return EntryEvent(
            channel_id=message.channel_id,
            viewer_id=message.user_id,
            display_name=message.username or message.user_id,
        )


def window_opened_message(duration_seconds: float) -> str:
    return f"Time to open a pack! Type {RIP_COMMAND} in chat within the next {int(duration_seconds)} seconds!"


def joined_message(display_name: str) -> str:
    return f"@{display_name} you're in this pack opening!"


def window_closed_message(participant_count: int, results: Sequence[DrawResult]) -> str:
    if participant_count == 0:
        return "Pack window closed. Nobody ripped a pack this time."
    if not results:
        return "Pack window closed. No packs were successfully opened."
    summary = ", ".join(f"{r.display_name or r.viewer_id} ({r.rarity.name})" for r in results)
    return f"Pack window closed! Congratulations: {summary}"
