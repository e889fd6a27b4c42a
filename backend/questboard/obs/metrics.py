"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
	"questboard_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"questboard_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

CAMPAIGNS_CREATED = Counter(
	"questboard_campaigns_created_total",
	"Campaigns created",
	["visibility"],
)

CAMPAIGN_MEMBERS_ADDED = Counter(
	"questboard_campaign_members_total",
	"Campaign memberships created",
	["source"],
)

JOIN_REQUESTS = Counter(
	"questboard_join_requests_total",
	"Join request state changes",
	["status"],
)

SESSION_JOINS = Counter(
	"questboard_session_joins_total",
	"Session join attempts by outcome",
	["result"],
)

SESSION_TRANSITIONS = Counter(
	"questboard_session_transitions_total",
	"Session status transitions",
	["status"],
)

HOOK_CALLS = Counter(
	"questboard_hooks_total",
	"Outbound scheduling hook invocations",
	["hook"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_campaign_created(visibility: str) -> None:
	CAMPAIGNS_CREATED.labels(visibility=visibility).inc()


def inc_member_added(source: str) -> None:
	CAMPAIGN_MEMBERS_ADDED.labels(source=source).inc()


def inc_join_request(status: str) -> None:
	JOIN_REQUESTS.labels(status=status).inc()


def inc_session_join(result: str) -> None:
	SESSION_JOINS.labels(result=result).inc()


def inc_session_transition(status: str) -> None:
	SESSION_TRANSITIONS.labels(status=status).inc()


def inc_hook(hook: str) -> None:
	HOOK_CALLS.labels(hook=hook).inc()
