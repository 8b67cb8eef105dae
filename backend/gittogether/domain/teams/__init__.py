"""Team posts, join requests and the derived membership ledger."""

from .models import PostStatus, TeamPost, TeamRequest, TeamRequestStatus  # noqa: F401
from .policy import TeamPolicyError  # noqa: F401
