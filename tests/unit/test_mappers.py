from __future__ import annotations

import uuid
from datetime import timedelta

from dm_service.domain.entities.attachment import Attachment, BlobStorage
from dm_service.domain.entities.message import ReplySnapshot
from dm_service.domain.value_objects.enums import ParticipantRole, StorageKind
from dm_service.infrastructure.db.mappers import message as message_mapper
from dm_service.infrastructure.db.mappers import room as room_mapper
from dm_service.infrastructure.db.models.attachment import AttachmentModel
from dm_service.infrastructure.db.models.message import MessageModel
from dm_service.infrastructure.db.models.participant import ParticipantModel
from dm_service.infrastructure.db.models.room import RoomModel
from tests.conftest import ALICE, BOB, T0, make_message, make_room


def test_message_model_to_entity_with_reply_and_blob_attachment():
    room = make_room()
    target = make_message(room, ALICE, "original text")
    blob_id = uuid.uuid4()
    model = MessageModel(
        id=uuid.uuid4(),
        room_id=room.room_id,
        sender_id=BOB,
        text="re",
        created_at=T0,
        edited_at=None,
        reply_to=target.message_id,
        reply=message_mapper.reply_to_json(ReplySnapshot.of(target)),
        seen_by=[ALICE],
    )
    model.attachments = [
        AttachmentModel(
            id=uuid.uuid4(),
            message_id=model.id,
            position=0,
            original_name="scan.pdf",
            mime_type="application/pdf",
            size=42,
            storage_kind="blob",
            url="/file/chat_1_ab.pdf",
            blob_id=blob_id,
            blob_filename="chat_1_ab.pdf",
        )
    ]

    entity = message_mapper.model_to_entity(model)

    assert entity.reply == ReplySnapshot.of(target)
    assert entity.seen_by == (ALICE,)
    [att] = entity.attachments
    assert att.storage == BlobStorage(blob_id=blob_id, filename="chat_1_ab.pdf")
    assert att.storage_kind == StorageKind.BLOB
    assert att.blob_ref == "chat_1_ab.pdf"


def test_attachment_values_flatten_storage_variant():
    att = Attachment(
        attachment_id=uuid.uuid4(),
        original_name="scan.pdf",
        mime_type="application/pdf",
        size=42,
        storage=BlobStorage(blob_id=uuid.uuid4(), filename="chat_1_ab.pdf"),
    )
    message_id = uuid.uuid4()

    values = message_mapper.attachment_values(att, message_id, 3)

    assert values["storage_kind"] == "blob"
    assert values["blob_filename"] == "chat_1_ab.pdf"
    assert values["path"] is None
    assert values["position"] == 3
    assert values["message_id"] == message_id


def test_room_model_round_trip_keeps_sorted_pair_and_notifications():
    room_id = uuid.uuid4()
    model = RoomModel(
        id=room_id,
        user_low_id=ALICE,
        user_high_id=BOB,
        last_notification_sent={BOB: (T0 + timedelta(hours=1)).isoformat()},
        last_message_at=None,
        created_at=T0,
    )
    model.participants = [
        ParticipantModel(room_id=room_id, user_id=BOB, display_name="Bob", role="partyA"),
        ParticipantModel(room_id=room_id, user_id=ALICE, display_name="Alice", role="partyB"),
    ]

    room = room_mapper.model_to_entity(model)

    assert [p.user_id for p in room.participants] == [ALICE, BOB]
    assert room.participant(BOB).role == ParticipantRole.PARTY_A
    assert room.last_notification_sent == {BOB: T0 + timedelta(hours=1)}

    back = room_mapper.entity_to_model(room)
    assert (back.user_low_id, back.user_high_id) == (ALICE, BOB)
