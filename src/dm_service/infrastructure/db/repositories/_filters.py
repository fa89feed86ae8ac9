"""Shared WHERE fragments."""
from __future__ import annotations

from typing import Any

from sqlalchemy import ColumnElement, func, literal

from dm_service.infrastructure.db.models.message import MessageModel


def unseen_by(user_id: Any) -> list[ColumnElement[bool]]:
    """Messages not sent by and not yet seen by ``user_id`` (a literal id or a column)."""
    if isinstance(user_id, str):
        user_id = literal(user_id)
    return [
        MessageModel.sender_id != user_id,
        func.array_position(MessageModel.seen_by, user_id).is_(None),
    ]
