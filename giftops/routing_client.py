from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from typing import Dict

from flask import current_app


class RoutingError(RuntimeError):
    pass


def fetch_route(origin: Dict[str, float], destination: Dict[str, float]) -> dict:
    """GeoJSON ``LineString`` feature from ``origin`` to ``destination`` (``{"lat", "lng"}`` dicts)."""
    mode = str(_get_config("ROUTING_MODE", "straight_line")).lower()
    if mode == "straight_line":
        return _straight_line(origin, destination)
    if mode != "osrm":
        raise RoutingError(f"Invalid ROUTING_MODE: {mode}")
    return _fetch_osrm_route(origin, destination)


def _feature(coordinates: list, properties: dict) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": coordinates},
        "properties": properties,
    }


def _straight_line(origin: Dict[str, float], destination: Dict[str, float]) -> dict:
    coordinates = [
        [float(origin["lng"]), float(origin["lat"])],
        [float(destination["lng"]), float(destination["lat"])],
    ]
    return _feature(coordinates, {"source": "straight_line"})


def _fetch_osrm_route(origin: Dict[str, float], destination: Dict[str, float]) -> dict:
    base_url = str(_get_config("ROUTING_BASE_URL") or "").rstrip("/")
    if not base_url:
        raise RoutingError("ROUTING_BASE_URL is not configured.")
    path = f"{origin['lng']},{origin['lat']};{destination['lng']},{destination['lat']}"
    url = f"{base_url}/route/v1/driving/{path}?overview=full&geometries=geojson"
    payload = _request_json(url)

    routes = payload.get("routes") if isinstance(payload, dict) else None
    if not routes:
        raise RoutingError("Routing provider returned no route.")
    route = routes[0]
    geometry = route.get("geometry") or {}
    if geometry.get("type") != "LineString":
        raise RoutingError("Routing provider returned an unexpected geometry.")
    return _feature(
        geometry.get("coordinates") or [],
        {
            "source": "osrm",
            "distance_m": route.get("distance"),
            "duration_s": route.get("duration"),
        },
    )


def _request_json(url: str) -> object:
    timeout = _int_config("ROUTING_TIMEOUT_SECONDS", 10)
    request = urllib.request.Request(url, headers={"Accept": "application/json"}, method="GET")
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            body = response.read().decode("utf-8")
            if not body:
                return {}
            return json.loads(body)
    except urllib.error.HTTPError as exc:  # noqa: PERF203
        error_body = exc.read().decode("utf-8") if exc.fp else ""
        raise RoutingError(f"Routing HTTP {exc.code}: {error_body[:200]}") from exc
    except urllib.error.URLError as exc:
        raise RoutingError(f"Routing connection error: {exc.reason}") from exc
    except json.JSONDecodeError as exc:
        raise RoutingError("Routing provider returned invalid JSON.") from exc


def _get_config(key: str, default: object | None = None) -> object | None:
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return os.environ.get(key, default)


def _int_config(key: str, default: int) -> int:
    value = _get_config(key, default)
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
