"""Friend requests, friendships and relationship resolution."""

from .models import FriendRequest, FriendRequestStatus, RelationshipStatus  # noqa: F401
from .relationship import resolve  # noqa: F401
