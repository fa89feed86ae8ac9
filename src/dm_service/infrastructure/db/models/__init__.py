"""Import all models so Base.metadata knows every table."""
from dm_service.infrastructure.db.models.attachment import AttachmentModel
from dm_service.infrastructure.db.models.blob import BlobChunkModel, BlobFileModel
from dm_service.infrastructure.db.models.message import MessageModel
from dm_service.infrastructure.db.models.participant import ParticipantModel
from dm_service.infrastructure.db.models.room import RoomModel

__all__ = [
    "AttachmentModel",
    "BlobChunkModel",
    "BlobFileModel",
    "MessageModel",
    "ParticipantModel",
    "RoomModel",
]
