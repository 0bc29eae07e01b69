# stashbox/app/services/kinds.py
"""
The kinds of shareable sub-items and which of their fields are sensitive.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class SubItemKind(str, Enum):
    CLIPBOARD = "clipboard"
    TODO_CATEGORY = "todo_category"
    LINK_CATEGORY = "link_category"
    COMMAND = "command"
    COMMAND_CATEGORY = "command_category"


@dataclass(frozen=True)
class KindProfile:
    kind: SubItemKind
    default_name: str
    # Trash type for a whole removed item
    item_trash_type: str
    # Trash type for a single removed nested entry, None if the kind has no entries
    entry_trash_type: Optional[str] = None
    # Sensitive fields of each nested entry
    entry_fields: Tuple[str, ...] = ()
    # Sensitive keys inside ``attributes``
    sealed_attributes: Tuple[str, ...] = ()
    # Sensitive keys of each object in ``attributes["variables"]``
    sealed_variable_fields: Tuple[str, ...] = ()
    has_content: bool = False


KIND_PROFILES = {
    SubItemKind.CLIPBOARD: KindProfile(
        kind=SubItemKind.CLIPBOARD,
        default_name="New Clipboard",
        item_trash_type="clipboard",
        has_content=True,
    ),
    SubItemKind.TODO_CATEGORY: KindProfile(
        kind=SubItemKind.TODO_CATEGORY,
        default_name="Default",
        item_trash_type="todo_category",
        entry_trash_type="todo",
        entry_fields=("title", "description"),
    ),
    SubItemKind.LINK_CATEGORY: KindProfile(
        kind=SubItemKind.LINK_CATEGORY,
        default_name="Default",
        item_trash_type="link_category",
        entry_trash_type="link",
        entry_fields=("label", "value"),
    ),
    SubItemKind.COMMAND: KindProfile(
        kind=SubItemKind.COMMAND,
        default_name="Untitled command",
        item_trash_type="command",
        entry_fields=("instruction", "command", "warning"),
        sealed_attributes=("description",),
        sealed_variable_fields=("defaultValue",),
        has_content=True,
    ),
    SubItemKind.COMMAND_CATEGORY: KindProfile(
        kind=SubItemKind.COMMAND_CATEGORY,
        default_name="General",
        item_trash_type="command_category",
    ),
}


def profile_for(kind: SubItemKind) -> KindProfile:
    return KIND_PROFILES[SubItemKind(kind)]
