"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Sequence
from uuid import UUID

import pytest

from dm_service.application.dto.events import ChatEvent
from dm_service.application.dto.message import SeenUpdate
from dm_service.application.dto.room import RoomSummary, UnseenDigest
from dm_service.application.exceptions import ForbiddenError, NotFoundError
from dm_service.application.ports.notify import Notification
from dm_service.application.ports.storage import StoredBlob
from dm_service.domain.entities.attachment import Attachment, RemoteStorage
from dm_service.domain.entities.message import Message
from dm_service.domain.entities.participant import Participant
from dm_service.domain.entities.room import Room, pair_key
from dm_service.domain.value_objects.enums import ParticipantRole
from dm_service.infrastructure.blob.pg_blob_store import generate_filename
from dm_service.services.attachment_service import AttachmentStorage
from dm_service.services.hooks import SideEffects

ALICE = "alice"
BOB = "bob"
MALLORY = "mallory"

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_room(
    user_a: str = ALICE,
    user_b: str = BOB,
    *,
    room_id: UUID | None = None,
    created_at: datetime = T0,
) -> Room:
    participants = sorted(
        [
            Participant(user_a, user_a.title(), ParticipantRole.PARTY_A),
            Participant(user_b, user_b.title(), ParticipantRole.PARTY_B),
        ],
        key=lambda p: p.user_id,
    )
    return Room(
        room_id=room_id or uuid.uuid4(),
        participants=tuple(participants),
        created_at=created_at,
    )


def make_message(
    room: Room,
    sender_id: str = ALICE,
    text: str = "hello",
    *,
    timestamp: datetime | None = None,
    attachments: Sequence[Attachment] = (),
    seen_by: Sequence[str] = (),
) -> Message:
    return Message(
        message_id=uuid.uuid4(),
        room_id=room.room_id,
        sender_id=sender_id,
        text=text,
        timestamp=timestamp or T0,
        attachments=tuple(attachments),
        seen_by=tuple(seen_by),
    )


class FixedClock:
    def __init__(self, now: datetime = T0) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        self._now += timedelta(**kwargs)


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    def in_room(self, room_id: UUID) -> list[Message]:
        return [m for m in self._messages if m.room_id == room_id]

    async def list_messages(
        self, room_id: UUID, *, limit: int = 50, before: datetime | None = None,
    ) -> list[Message]:
        page = [m for m in self.in_room(room_id) if before is None or m.timestamp < before]
        return page[-limit:]

    async def get(self, room_id: UUID, message_id: UUID) -> Message | None:
        for m in self.in_room(room_id):
            if m.message_id == message_id:
                return m
        return None

    async def count_unseen(self, room_id: UUID, user_id: str) -> int:
        return sum(1 for m in self.in_room(room_id) if m.is_unseen_by(user_id))

    async def find_attachment(self, room_id: UUID, attachment_id: UUID) -> Attachment | None:
        for m in self.in_room(room_id):
            for a in m.attachments:
                if a.attachment_id == attachment_id:
                    return a
        return None

    async def shared_storage(self, attachments: Sequence[Attachment]) -> set[UUID]:
        own = {a.attachment_id for a in attachments}
        in_use = {
            a.storage
            for m in self._messages
            for a in m.attachments
            if a.attachment_id not in own and not isinstance(a.storage, RemoteStorage)
        }
        return {a.attachment_id for a in attachments if a.storage in in_use}


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader
    fail_append: bool = False

    async def append(self, message: Message) -> Message:
        if self.fail_append:
            raise RuntimeError("database unavailable")
        self._reader._messages.append(message)
        return message

    def _index(self, room_id: UUID, message_id: UUID, sender_id: str) -> int:
        for i, m in enumerate(self._reader._messages):
            if m.room_id == room_id and m.message_id == message_id:
                if m.sender_id != sender_id:
                    raise ForbiddenError("You can only modify your own messages")
                return i
        raise NotFoundError("Message not found")

    async def update_text(
        self, room_id: UUID, message_id: UUID, sender_id: str, text: str, edited_at: datetime,
    ) -> Message:
        i = self._index(room_id, message_id, sender_id)
        updated = dataclasses.replace(self._reader._messages[i], text=text, edited_at=edited_at)
        self._reader._messages[i] = updated
        return updated

    async def delete(self, room_id: UUID, message_id: UUID, sender_id: str) -> Message:
        i = self._index(room_id, message_id, sender_id)
        await asyncio.sleep(0)
        # re-check after yielding, like the conditional DELETE does
        i = self._index(room_id, message_id, sender_id)
        return self._reader._messages.pop(i)

    async def mark_seen(
        self, room_id: UUID, user_id: str, message_ids: Sequence[UUID] | None = None,
    ) -> list[SeenUpdate]:
        wanted = set(message_ids) if message_ids else None
        updates: list[SeenUpdate] = []
        for i, m in enumerate(self._reader._messages):
            if m.room_id != room_id or not m.is_unseen_by(user_id):
                continue
            if wanted is not None and m.message_id not in wanted:
                continue
            seen = dataclasses.replace(m, seen_by=m.seen_by + (user_id,))
            self._reader._messages[i] = seen
            updates.append(SeenUpdate(message_id=seen.message_id, seen_by=seen.seen_by))
        return updates


@dataclass
class FakeRoomReader:
    _messages: FakeMessageReader
    _store: dict[UUID, Room] = field(default_factory=dict)

    def add(self, room: Room) -> Room:
        self._store[room.room_id] = room
        return room

    async def get_by_id(self, room_id: UUID) -> Room | None:
        return self._store.get(room_id)

    async def get_by_pair(self, user_a: str, user_b: str) -> Room | None:
        # yield so that concurrent callers interleave between lookup and insert
        await asyncio.sleep(0)
        return self._find_pair(user_a, user_b)

    def _find_pair(self, user_a: str, user_b: str) -> Room | None:
        key = pair_key(user_a, user_b)
        for room in self._store.values():
            if pair_key(*(p.user_id for p in room.participants)) == key:
                return room
        return None

    async def list_summaries_for_user(self, user_id: str) -> list[RoomSummary]:
        rooms = [r for r in self._store.values() if r.has_participant(user_id)]
        rooms.sort(key=lambda r: r.last_message_at or r.created_at, reverse=True)
        summaries = []
        for r in rooms:
            messages = self._messages.in_room(r.room_id)
            summaries.append(
                RoomSummary(
                    room_id=r.room_id,
                    participants=r.participants,
                    last_message=messages[-1] if messages else None,
                    unseen_count=sum(1 for m in messages if m.is_unseen_by(user_id)),
                )
            )
        return summaries

    async def list_unseen_digests(self) -> list[UnseenDigest]:
        digests = []
        for r in self._store.values():
            for p in r.participants:
                unseen = [m for m in self._messages.in_room(r.room_id) if m.is_unseen_by(p.user_id)]
                if not unseen:
                    continue
                digests.append(
                    UnseenDigest(
                        room_id=r.room_id,
                        user_id=p.user_id,
                        role=p.role,
                        unseen_count=len(unseen),
                        latest=unseen[-1],
                        last_notified_at=r.last_notification_sent.get(p.user_id),
                    )
                )
        return digests


@dataclass
class FakeRoomWriter:
    _reader: FakeRoomReader

    async def create_if_not_exists(self, room: Room) -> tuple[Room, bool]:
        existing = self._reader._find_pair(*(p.user_id for p in room.participants))
        if existing is not None:
            return existing, False
        self._reader.add(room)
        return room, True

    async def touch_last_message_at(self, room_id: UUID, ts: datetime) -> None:
        room = self._reader._store[room_id]
        self._reader._store[room_id] = dataclasses.replace(room, last_message_at=ts)

    async def record_notification(self, room_id: UUID, user_id: str, ts: datetime) -> None:
        room = self._reader._store[room_id]
        sent = {**room.last_notification_sent, user_id: ts}
        self._reader._store[room_id] = dataclasses.replace(room, last_notification_sent=sent)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""

    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    rooms: FakeRoomReader | None = None
    rooms_w: FakeRoomWriter | None = None
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)
        if self.rooms is None:
            self.rooms = FakeRoomReader(self.messages)
        if self.rooms_w is None:
            self.rooms_w = FakeRoomWriter(self.rooms)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


class FakeBlobStore:
    def __init__(self, *, chunk_size: int = 4, put_delay: float = 0.0) -> None:
        self.blobs: dict[UUID, tuple[StoredBlob, bytes]] = {}
        self.chunk_size = chunk_size
        self.put_delay = put_delay
        self.deleted: list[UUID] = []

    async def put(
        self,
        data: bytes,
        *,
        original_name: str,
        content_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredBlob:
        if self.put_delay:
            await asyncio.sleep(self.put_delay)
        blob = StoredBlob(
            blob_id=uuid.uuid4(),
            filename=generate_filename(original_name, content_type),
            content_type=content_type,
            length=len(data),
            sha256=hashlib.sha256(data).hexdigest(),
            created_at=T0,
            metadata={"originalName": original_name, **(metadata or {})},
        )
        self.blobs[blob.blob_id] = (blob, data)
        return blob

    async def get(self, blob_id: UUID) -> StoredBlob | None:
        entry = self.blobs.get(blob_id)
        return entry[0] if entry else None

    async def get_by_filename(self, filename: str) -> StoredBlob | None:
        for blob, _data in self.blobs.values():
            if blob.filename == filename:
                return blob
        return None

    async def read(self, blob: StoredBlob, start: int, end: int) -> AsyncGenerator[bytes, None]:
        data = self.blobs[blob.blob_id][1]
        for offset in range(start, end + 1, self.chunk_size):
            yield data[offset:min(offset + self.chunk_size, end + 1)]

    async def delete(self, blob_id: UUID) -> bool:
        self.deleted.append(blob_id)
        return self.blobs.pop(blob_id, None) is not None

    async def purge_orphans(self, older_than: datetime) -> int:
        return 0


class FakeLocalFiles:
    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files = dict(files or {})

    def contains(self, path: str) -> bool:
        return bool(path) and not path.startswith("/") and ".." not in path.split("/")

    async def size(self, path: str) -> int | None:
        data = self.files.get(path)
        return len(data) if data is not None else None

    async def read(self, path: str, start: int, end: int) -> AsyncGenerator[bytes, None]:
        yield self.files[path][start:end + 1]

    async def delete(self, path: str) -> None:
        self.files.pop(path, None)


class RecordingBroadcaster:
    def __init__(self) -> None:
        self.events: list[tuple[UUID, ChatEvent]] = []

    async def publish(self, room_id: UUID, event: ChatEvent) -> None:
        self.events.append((room_id, event))

    def types(self) -> list[str]:
        return [e.event_type for _room_id, e in self.events]


class RecordingNotifier:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    async def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)


class FailingBroadcaster:
    async def publish(self, room_id: UUID, event: ChatEvent) -> None:
        raise RuntimeError("redis is down")


class FailingNotifier:
    async def notify(self, notification: Notification) -> None:
        raise RuntimeError("push gateway is down")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def room(uow: FakeUoW) -> Room:
    return uow.rooms.add(make_room())


@pytest.fixture
def blobs() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def local_files() -> FakeLocalFiles:
    return FakeLocalFiles()


@pytest.fixture
def storage(blobs: FakeBlobStore, local_files: FakeLocalFiles) -> AttachmentStorage:
    return AttachmentStorage(blobs, local_files)


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def side_effects(broadcaster: RecordingBroadcaster, notifier: RecordingNotifier) -> SideEffects:
    return SideEffects(broadcaster, notifier)
