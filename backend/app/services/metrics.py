from __future__ import annotations

from prometheus_client import Counter, Histogram

JSON_ONLY_LABEL = "only_json"
UNKNOWN_TYPE_LABEL = "unknown"

VALIDATE_REQUESTS_TOTAL = Counter(
    "validate_json_requests_total",
    "Total JSON validation requests",
    ["message_name", "field_check", "outcome"],
)

VALIDATE_DURATION_SECONDS = Histogram(
    "validate_json_duration_seconds",
    "Duration of JSON validation in seconds",
    ["message_name", "field_check"],
)

DESCRIPTOR_UPLOADS_TOTAL = Counter(
    "descriptor_uploads_total",
    "Descriptor set uploads",
    ["result"],
)


def record_validation(message_name: str | None, field_check: bool, outcome: str, seconds: float) -> None:
    name = message_name or JSON_ONLY_LABEL
    mode = "enabled" if field_check else "disabled"
    VALIDATE_REQUESTS_TOTAL.labels(message_name=name, field_check=mode, outcome=outcome).inc()
    VALIDATE_DURATION_SECONDS.labels(message_name=name, field_check=mode).observe(seconds)
