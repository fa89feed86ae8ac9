"""Statement shape of the single-statement writes, compiled for PostgreSQL."""
from __future__ import annotations

import uuid
from typing import Any

import pytest
from sqlalchemy.dialects import postgresql

from dm_service.application.dto.message import SeenUpdate
from dm_service.application.exceptions import NotFoundError
from dm_service.domain.entities.attachment import (
    Attachment,
    BlobStorage,
    LocalStorage,
    RemoteStorage,
)
from dm_service.infrastructure.db.repositories.message import MessageReaderRepo, MessageWriterRepo
from dm_service.infrastructure.db.repositories.room import RoomWriterRepo
from tests.conftest import ALICE, BOB, T0, make_message, make_room


class FakeResult:
    def __init__(self, rows: list[tuple[Any, ...]] | None = None, scalar: Any = None) -> None:
        self._rows = rows or []
        self._scalar = scalar

    def all(self) -> list[tuple[Any, ...]]:
        return list(self._rows)

    def scalar_one_or_none(self) -> Any:
        return self._scalar

    def scalar_one(self) -> Any:
        return self._scalar


class RecordingSession:
    """Stands in for AsyncSession: records statements, replays canned results."""

    def __init__(self, *results: FakeResult) -> None:
        self._results = list(results)
        self.statements: list[Any] = []

    async def execute(self, stmt: Any) -> FakeResult:
        self.statements.append(stmt)
        return self._results.pop(0) if self._results else FakeResult()

    def sql(self, index: int = 0) -> str:
        return str(self.statements[index].compile(dialect=postgresql.dialect()))


def _attachment(storage) -> Attachment:
    return Attachment(
        attachment_id=uuid.uuid4(),
        original_name="f",
        mime_type="application/octet-stream",
        size=1,
        storage=storage,
    )


@pytest.mark.asyncio
async def test_mark_seen_is_one_conditional_update():
    room_id, message_id = uuid.uuid4(), uuid.uuid4()
    session = RecordingSession(FakeResult(rows=[(message_id, [ALICE])]))

    updates = await MessageWriterRepo(session).mark_seen(room_id, ALICE)

    assert updates == [SeenUpdate(message_id=message_id, seen_by=(ALICE,))]
    assert len(session.statements) == 1
    sql = session.sql()
    assert sql.startswith("UPDATE messages SET seen_by=array_append(messages.seen_by, ")
    assert "messages.room_id = " in sql
    assert "messages.sender_id != " in sql
    assert "array_position(messages.seen_by, " in sql
    assert " IS NULL" in sql
    assert sql.endswith("RETURNING messages.id, messages.seen_by")
    assert "messages.id IN" not in sql


@pytest.mark.asyncio
async def test_mark_seen_restricted_to_ids():
    session = RecordingSession()

    assert await MessageWriterRepo(session).mark_seen(uuid.uuid4(), BOB, [uuid.uuid4()]) == []
    assert "messages.id IN" in session.sql()


@pytest.mark.asyncio
async def test_count_unseen_uses_same_predicate():
    session = RecordingSession(FakeResult(scalar=3))

    assert await MessageReaderRepo(session).count_unseen(uuid.uuid4(), ALICE) == 3
    sql = session.sql()
    assert "messages.sender_id != " in sql
    assert "array_position(messages.seen_by, " in sql


@pytest.mark.asyncio
async def test_update_text_is_owner_conditional(monkeypatch):
    room = make_room()
    msg = make_message(room, ALICE, "old")
    session = RecordingSession(FakeResult(scalar=msg.message_id))
    repo = MessageWriterRepo(session)

    async def owned(room_id, message_id, sender_id):
        return msg

    async def reread(room_id, message_id):
        return msg

    monkeypatch.setattr(repo, "_owned", owned)
    monkeypatch.setattr(repo._reader, "get", reread)

    assert await repo.update_text(room.room_id, msg.message_id, ALICE, "new", T0) is msg
    sql = session.sql()
    assert sql.startswith("UPDATE messages SET text=")
    assert "WHERE messages.id = " in sql
    assert "AND messages.room_id = " in sql
    assert "AND messages.sender_id = " in sql
    assert sql.endswith("RETURNING messages.id")


@pytest.mark.asyncio
async def test_update_text_without_returned_row_is_not_found(monkeypatch):
    room = make_room()
    msg = make_message(room, ALICE)
    repo = MessageWriterRepo(RecordingSession(FakeResult(scalar=None)))

    async def owned(room_id, message_id, sender_id):
        return msg

    monkeypatch.setattr(repo, "_owned", owned)

    with pytest.raises(NotFoundError):
        await repo.update_text(room.room_id, msg.message_id, ALICE, "new", T0)


@pytest.mark.asyncio
async def test_delete_is_owner_conditional_and_loses_races(monkeypatch):
    room = make_room()
    msg = make_message(room, ALICE)
    session = RecordingSession(FakeResult(scalar=msg.message_id), FakeResult(scalar=None))
    repo = MessageWriterRepo(session)

    async def owned(room_id, message_id, sender_id):
        return msg

    monkeypatch.setattr(repo, "_owned", owned)

    assert await repo.delete(room.room_id, msg.message_id, ALICE) is msg
    sql = session.sql()
    assert sql.startswith("DELETE FROM messages WHERE messages.id = ")
    assert "AND messages.sender_id = " in sql
    assert sql.endswith("RETURNING messages.id")

    with pytest.raises(NotFoundError):
        await repo.delete(room.room_id, msg.message_id, ALICE)


@pytest.mark.asyncio
async def test_shared_storage_reports_bytes_still_in_use():
    blob = _attachment(BlobStorage(blob_id=uuid.uuid4(), filename="chat_1_a.pdf"))
    local = _attachment(LocalStorage(path="voice/note.ogg"))
    lonely = _attachment(BlobStorage(blob_id=uuid.uuid4(), filename="chat_2_b.png"))
    session = RecordingSession(FakeResult(rows=[(blob.storage.blob_id, None), (None, "voice/note.ogg")]))

    shared = await MessageReaderRepo(session).shared_storage([blob, local, lonely])

    assert shared == {blob.attachment_id, local.attachment_id}
    sql = session.sql()
    assert "attachments.id NOT IN" in sql
    assert "attachments.blob_id IN" in sql
    assert "attachments.path IN" in sql


@pytest.mark.asyncio
async def test_shared_storage_skips_query_for_remote_only():
    session = RecordingSession()
    remote = _attachment(RemoteStorage(url="https://cdn.example.com/a.png"))

    assert await MessageReaderRepo(session).shared_storage([remote]) == set()
    assert session.statements == []


@pytest.mark.asyncio
async def test_create_room_inserts_on_conflict_do_nothing():
    room = make_room()
    session = RecordingSession(FakeResult(scalar=room.room_id))

    created_room, created = await RoomWriterRepo(session).create_if_not_exists(room)

    assert (created_room, created) == (room, True)
    sql = session.sql(0)
    assert sql.startswith("INSERT INTO rooms ")
    assert "ON CONFLICT ON CONSTRAINT uq_room_pair DO NOTHING" in sql
    assert sql.endswith("RETURNING rooms.id")
    assert session.sql(1).startswith("INSERT INTO room_participants ")


@pytest.mark.asyncio
async def test_create_room_conflict_returns_existing(monkeypatch):
    room = make_room()
    existing = make_room()
    session = RecordingSession(FakeResult(scalar=None))
    repo = RoomWriterRepo(session)

    async def by_pair(user_a, user_b):
        return existing

    monkeypatch.setattr(repo._reader, "get_by_pair", by_pair)

    assert await repo.create_if_not_exists(room) == (existing, False)
    assert len(session.statements) == 1


@pytest.mark.asyncio
async def test_touch_last_message_at_never_moves_backwards():
    session = RecordingSession()

    await RoomWriterRepo(session).touch_last_message_at(uuid.uuid4(), T0)

    assert "greatest(coalesce(rooms.last_message_at, " in session.sql()
