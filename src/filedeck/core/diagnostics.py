"""Runtime diagnostics envelope + JSONL sink.

This module provides:
- A canonical envelope schema for diagnostic events.
- A JSONL sink that can be enabled/disabled via ConfigResolver.

The sink is registered once per process and self-filters when disabled.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from filedeck.core.config import ConfigResolver
from filedeck.core.errors import ConfigError
from filedeck.core.events import get_event_bus
from filedeck.core.logging import get_logger

_logger = get_logger(__name__)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with a trailing 'Z', second precision."""
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_envelope(
    *,
    event: str,
    component: str,
    operation: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    """Build the canonical diagnostics envelope.

    Schema:
        {
          "event": "<string>",
          "component": "<string>",
          "operation": "<string>",
          "timestamp": "<iso8601 utc>",
          "data": { ... }
        }
    """
    return {
        "event": event,
        "component": component,
        "operation": operation,
        "timestamp": utc_timestamp(),
        "data": data,
    }


def is_diagnostics_enabled(resolver: ConfigResolver) -> bool:
    """Return whether diagnostics are enabled (key: diagnostics.enabled).

    Invalid values are treated as disabled.
    """
    try:
        return resolver.resolve_bool("diagnostics.enabled", False)
    except ConfigError as e:
        _logger.warning(f"Invalid diagnostics.enabled value; treating as disabled. {e.message}")
        return False


def _is_envelope(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    if set(obj.keys()) != {"event", "component", "operation", "timestamp", "data"}:
        return False
    return isinstance(obj.get("data"), dict)


_SINK_INSTALLED = False


def install_jsonl_sink(*, resolver: ConfigResolver) -> None:
    """Install the JSONL diagnostics sink subscriber.

    Idempotent; registers exactly once per process. Sink path comes from
    ``diagnostics.path``. When diagnostics are disabled, no file IO happens.
    """
    global _SINK_INSTALLED
    if _SINK_INSTALLED:
        return

    def _on_any_event(event: str, data: dict[str, Any]) -> None:
        if not is_diagnostics_enabled(resolver):
            return

        try:
            path_value, _src = resolver.resolve("diagnostics.path")
        except ConfigError:
            _logger.warning("Missing diagnostics.path; cannot write diagnostics JSONL.")
            return
        out_path = Path(str(path_value)).expanduser()

        payload = data
        if not _is_envelope(data):
            payload = build_envelope(
                event=event, component="unknown", operation="unknown", data=data
            )

        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            line = json.dumps(payload, ensure_ascii=True, separators=(",", ":"), sort_keys=True)
            with out_path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")
        except (OSError, TypeError, ValueError) as e:
            _logger.warning(f"Diagnostics sink write failed: {type(e).__name__}: {e}")

    get_event_bus().subscribe_all(_on_any_event)
    _SINK_INSTALLED = True
