"""Async client for the GitTogether API."""

from gittogether.client.collaboration import ApplyNotOffered, CollaborationClient, CollaborationState
from gittogether.client.guard import ActionGuard, ActionInFlight
from gittogether.client.http import ApiClient, ApiError, ApiRejected, ApiUnavailable, AuthExpired
from gittogether.client.poller import Poller

__all__ = [
	"ActionGuard",
	"ActionInFlight",
	"ApiClient",
	"ApiError",
	"ApiRejected",
	"ApiUnavailable",
	"ApplyNotOffered",
	"AuthExpired",
	"CollaborationClient",
	"CollaborationState",
	"Poller",
]
