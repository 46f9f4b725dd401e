"""Prometheus metrics for case creation, assignment outcomes and reconciliation runs"""

from prometheus_client import Counter, Histogram

# Case workflow metrics
case_created_counter = Counter(
    "collections_case_created_total",
    "Collection cases opened",
    ["stage"],  # SOFT | HARD | LEGAL
)

assignment_counter = Counter(
    "collections_assignment_total",
    "Assignment runs by outcome",
    ["outcome"],  # updated | unchanged | conflict
)

decision_audit_counter = Counter(
    "collections_decision_audit_total",
    "Rule decision audit inserts",
    ["result"],  # created | duplicate
)

# Reconciliation job metrics
reconciliation_case_counter = Counter(
    "collections_reconciliation_cases_total",
    "Cases visited by the reconciliation job",
    ["result"],  # updated | unchanged | skipped | failed
)

reconciliation_duration_histogram = Histogram(
    "collections_reconciliation_duration_seconds",
    "Reconciliation pass duration",
    buckets=[0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_assignment(outcome: str) -> None:
    """Record one assignment run: updated, unchanged or conflict"""
    assignment_counter.labels(outcome=outcome).inc()


def record_decision_audit(created: bool) -> None:
    decision_audit_counter.labels(result="created" if created else "duplicate").inc()
