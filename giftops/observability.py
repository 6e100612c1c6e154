from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Tuple

from flask import g, has_request_context, request


_RESERVED_RECORD_KEYS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields are merged into the payload."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": current_request_id(default=str(getattr(record, "request_id", "") or "n/a")),
        }
        if has_request_context():
            payload["method"] = request.method
            payload["route"] = request.url_rule.rule if request.url_rule is not None else request.path

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS or key.startswith("_") or key in payload or callable(value):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).strip().upper()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    app.logger.handlers = []
    app.logger.propagate = True


def ensure_request_id() -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if not request_id:
        request_id = str(request.headers.get("X-Request-Id") or "").strip() or str(uuid.uuid4())
        g.request_id = request_id
    return request_id


def current_request_id(default: str = "n/a") -> str:
    if has_request_context():
        request_id = str(getattr(g, "request_id", "") or "").strip()
        if request_id:
            return request_id
    return default


LabelKey = Tuple[Tuple[str, str], ...]

# name -> (type, help)
METRICS: Dict[str, Tuple[str, str]] = {
    "http_request_total": ("counter", "HTTP requests by method, route and status."),
    "http_request_duration_ms_sum": ("counter", "Total time spent serving each route, in milliseconds."),
    "domain_event_emitted_total": ("counter", "Order, stock and invoice events published on the bus."),
    "workflow_transition_total": ("counter", "Workflow transitions by entity, action and result."),
    "rate_limited_total": ("counter", "Requests refused by a rate-limit bucket."),
}


class MetricsRegistry:
    """In-process counters rendered in Prometheus text format at ``/metrics``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._series: Dict[str, Dict[LabelKey, float]] = {name: {} for name in METRICS}

    def inc(self, name: str, amount: float = 1, **labels: object) -> None:
        key: LabelKey = tuple(sorted((label, str(value)) for label, value in labels.items()))
        with self._lock:
            series = self._series[name]
            series[key] = series.get(key, 0) + amount

    def total(self, name: str, **match: object) -> float:
        wanted = {label: str(value) for label, value in match.items()}
        with self._lock:
            return sum(
                value
                for key, value in self._series[name].items()
                if all(dict(key).get(label) == expected for label, expected in wanted.items())
            )

    def samples(self) -> Dict[str, Dict[LabelKey, float]]:
        with self._lock:
            return {name: dict(sorted(series.items())) for name, series in self._series.items()}

    def reset(self) -> None:
        with self._lock:
            for series in self._series.values():
                series.clear()


_METRICS = MetricsRegistry()


def mark_request_start() -> None:
    g._request_started_at = time.perf_counter()


def observe_response(response):
    started = float(getattr(g, "_request_started_at", 0.0) or 0.0)
    elapsed_ms = (time.perf_counter() - started) * 1000.0 if started > 0.0 else 0.0
    route = request.url_rule.rule if request.url_rule is not None else request.path
    _METRICS.inc("http_request_total", method=request.method, route=route, status=int(response.status_code))
    _METRICS.inc("http_request_duration_ms_sum", round(elapsed_ms, 3), method=request.method, route=route)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def metrics_snapshot() -> dict:
    """Health-check summary of the counters."""
    requests_total = _METRICS.total("http_request_total")
    errors_total = sum(
        value
        for key, value in _METRICS.samples()["http_request_total"].items()
        if int(dict(key)["status"]) >= 400
    )
    return {
        "requests_total": int(requests_total),
        "errors_total": int(errors_total),
        "domain_events_total": int(_METRICS.total("domain_event_emitted_total")),
        "transitions": {
            "applied_total": int(_METRICS.total("workflow_transition_total", result="applied")),
            "rejected_total": int(_METRICS.total("workflow_transition_total", result="rejected")),
        },
        "rate_limited_total": int(_METRICS.total("rate_limited_total")),
    }


def observe_domain_event_emitted(event_type: str) -> None:
    _METRICS.inc("domain_event_emitted_total", event_type=event_type or "unknown")


def observe_transition_applied(entity: str, action: str) -> None:
    _METRICS.inc("workflow_transition_total", entity=entity, action=action, result="applied")


def observe_transition_rejected(entity: str, action: str) -> None:
    _METRICS.inc("workflow_transition_total", entity=entity, action=action, result="rejected")


def observe_rate_limited(bucket: str) -> None:
    _METRICS.inc("rate_limited_total", bucket=bucket)


def _prom_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _prom_value(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.3f}"


def prometheus_metrics_text() -> str:
    lines: list[str] = []
    for name, series in _METRICS.samples().items():
        metric_type, help_text = METRICS[name]
        lines.append(f"# HELP {name} {help_text}")
        lines.append(f"# TYPE {name} {metric_type}")
        for key, value in series.items():
            labels = ",".join(f'{label}="{_prom_label(label_value)}"' for label, label_value in key)
            lines.append(f"{name}{{{labels}}} {_prom_value(value)}" if labels else f"{name} {_prom_value(value)}")
    return "\n".join(lines) + "\n"


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
