"""Change events published after relationship mutations."""

from dataclasses import dataclass
from enum import Enum


class MutationKind(str, Enum):
    HYDRATE = "hydrate"
    ADD_DOCUMENT = "add_document"
    LINK_AS_NEW_VERSION = "link_as_new_version"
    SET_CURRENT_VERSION = "set_current_version"
    UNLINK_FROM_VERSION_GROUP = "unlink_from_version_group"
    MOVE_VERSION = "move_version"
    ADD_LINK = "add_link"
    REMOVE_LINK = "remove_link"
    DELETE_DOCUMENT = "delete_document"


class ChangePhase(str, Enum):
    APPLIED = "applied"  # local store updated
    CONFIRMED = "confirmed"  # backend accepted
    ROLLED_BACK = "rolled_back"  # backend rejected, local change undone


@dataclass(frozen=True)
class ChangeEvent:
    kind: MutationKind
    document_ids: tuple[str, ...]
    phase: ChangePhase = ChangePhase.APPLIED
