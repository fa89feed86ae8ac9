from __future__ import annotations

from enum import StrEnum


class ParticipantRole(StrEnum):
    PARTY_A = "partyA"
    PARTY_B = "partyB"
    OTHER = "other"


class StorageKind(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"
    BLOB = "blob"
