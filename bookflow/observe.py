"""Optional diagnostic callbacks for the derivation engine."""

import logging
from typing import Any, Callable, Mapping

Observer = Callable[[str, Mapping[str, Any]], None]

# Events that indicate malformed backend data rather than routine fallbacks.
WARNING_EVENTS = {
    "malformed_date",
    "malformed_amount",
    "malformed_number",
    "unknown_status",
    "out_of_order_history",
    "status_after_terminal",
}


def notify(observer: Observer | None, event: str, **details: Any) -> None:
    """Send an event to the observer, if any."""
    if observer is not None:
        observer(event, details)


def logging_observer(logger: logging.Logger | None = None) -> Observer:
    """Return an observer that forwards events to a stdlib logger."""
    logger = logger or logging.getLogger("bookflow")

    def _observe(event: str, details: Mapping[str, Any]) -> None:
        level = logging.WARNING if event in WARNING_EVENTS else logging.DEBUG
        logger.log(level, "%s %s", event, dict(details))

    return _observe


class RecordingObserver:
    """Collects events in memory; handy for callers that batch diagnostics."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, event: str, details: Mapping[str, Any]) -> None:
        self.events.append((event, dict(details)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]
