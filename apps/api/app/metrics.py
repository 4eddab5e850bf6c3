from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

authz_decisions_total = Counter(
    "authz_decisions_total",
    "Authorization decisions by entity, operation and outcome",
    ["entity", "operation", "decision"],
)

authz_role_cache_hit_total = Counter(
    "authz_role_cache_hit_total",
    "Role resolutions served from the authorization context",
)

authz_role_lookups_total = Counter(
    "authz_role_lookups_total",
    "Role lookups issued against the profile table",
)

authz_unconfigured_policy_total = Counter(
    "authz_unconfigured_policy_total",
    "Evaluations that hit a missing policy entry",
    ["entity", "operation"],
)

workflow_derivations_total = Counter(
    "workflow_derivations_total",
    "Cascading derivations applied by the workflow engine",
    ["rule"],
)

workflow_cascade_failures_total = Counter(
    "workflow_cascade_failures_total",
    "Cascading derivations that aborted their transaction",
    ["rule", "reason"],
)

proposal_derivations_total = Counter(
    "proposal_derivations_total",
    "Proposals materialized from deals",
    ["outcome"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    route_path = getattr(route, "path_format", None) or getattr(route, "path", None)
    if isinstance(route_path, str) and route_path:
        return _PATH_PARAM_RE.sub("{id}", route_path)
    return _UUID_RE.sub("{id}", request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authz_decision(entity: str, operation: str, decision: str) -> None:
    authz_decisions_total.labels(entity=entity, operation=operation, decision=decision).inc()


def observe_role_cache_hit() -> None:
    authz_role_cache_hit_total.inc()


def observe_role_lookup() -> None:
    authz_role_lookups_total.inc()


def observe_unconfigured_policy(entity: str, operation: str) -> None:
    authz_unconfigured_policy_total.labels(entity=entity, operation=operation).inc()


def observe_workflow_derivation(rule: str) -> None:
    workflow_derivations_total.labels(rule=rule).inc()


def observe_workflow_cascade_failure(rule: str, reason: str) -> None:
    workflow_cascade_failures_total.labels(rule=rule, reason=reason).inc()


def observe_proposal_derivation(outcome: str) -> None:
    proposal_derivations_total.labels(outcome=outcome).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
