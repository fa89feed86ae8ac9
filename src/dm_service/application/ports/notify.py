from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class Notification:
    recipient_id: str
    title: str
    body: str
    link: str
    type: str = "chat.message"


class Notifier(Protocol):
    async def notify(self, notification: Notification) -> None: ...
