"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"gittogether_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"gittogether_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"gittogether_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"gittogether_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

FRIEND_REQUEST_TRANSITIONS = Counter(
	"gittogether_friend_request_transitions_total",
	"Friend request lifecycle transitions",
	["transition"],
)

FRIEND_REQUEST_REJECTS = Counter(
	"gittogether_friend_request_send_rejects_total",
	"Friend request sends refused by policy",
	["reason"],
)

TEAM_REQUEST_TRANSITIONS = Counter(
	"gittogether_team_request_transitions_total",
	"Team request lifecycle transitions",
	["transition"],
)

TEAM_REQUEST_REJECTS = Counter(
	"gittogether_team_request_policy_rejects_total",
	"Team request operations refused by policy",
	["reason"],
)

TEAM_MEMBER_REMOVALS = Counter(
	"gittogether_team_member_removals_total",
	"Members removed from teams by owners",
)

POSTS_CREATED = Counter(
	"gittogether_team_posts_created_total",
	"Team posts created",
)

MESSAGES_SENT = Counter(
	"gittogether_messages_sent_total",
	"Ephemeral messages sent",
	["channel"],
)

EVENTS_CREATED = Counter(
	"gittogether_events_created_total",
	"Events board entries created",
)

PROFILE_UPDATES = Counter(
	"gittogether_profile_updates_total",
	"Profile updates applied",
)

REDIS_UP = Gauge("gittogether_redis_up", "Redis reachability (1 = up)")
POSTGRES_UP = Gauge("gittogether_postgres_up", "Postgres reachability (1 = up)")

REDIS_LATENCY = Histogram(
	"gittogether_redis_ping_seconds",
	"Redis ping latency",
	buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25),
)

POSTGRES_LATENCY = Histogram(
	"gittogether_postgres_ping_seconds",
	"Postgres ping latency",
	buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_friend_request(transition: str) -> None:
	FRIEND_REQUEST_TRANSITIONS.labels(transition=transition).inc()


def inc_friend_request_reject(reason: str) -> None:
	FRIEND_REQUEST_REJECTS.labels(reason=reason).inc()


def inc_team_request(transition: str) -> None:
	TEAM_REQUEST_TRANSITIONS.labels(transition=transition).inc()


def inc_team_request_reject(reason: str) -> None:
	TEAM_REQUEST_REJECTS.labels(reason=reason).inc()


def inc_member_removed() -> None:
	TEAM_MEMBER_REMOVALS.inc()


def inc_post_created() -> None:
	POSTS_CREATED.inc()


def inc_message_sent(channel: str) -> None:
	MESSAGES_SENT.labels(channel=channel).inc()


def inc_event_created() -> None:
	EVENTS_CREATED.inc()


def inc_profile_update() -> None:
	PROFILE_UPDATES.inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
