from stashbox.app.models.user import User
from stashbox.app.models.secret import Secret
from stashbox.app.models.drop import Drop, DropToken
from stashbox.app.models.collection import Collection, SubItem, SubItemGrant
from stashbox.app.models.trash import TrashEntry

__all__ = [
    "User",
    "Secret",
    "Drop",
    "DropToken",
    "Collection",
    "SubItem",
    "SubItemGrant",
    "TrashEntry",
]
