"""
Event bus between the filter pipeline and whatever renders it.

The pipeline never calls UI code.  A refusal modal, audit viewer or
trust indicator subscribes to the channels below instead of polling the
service.  Built on QObject so it plugs straight into a Qt event loop.

Channels and payloads::

    audit_entry            {"category", "text", "detail"}
    trust_changed          {"user_id", "trust_level", "adjustment"}
    filter_config_changed  {"key", "value"}
    config_changed         {"key", "value"}
    safety_config_changed  {"rule", "user_can_override"} | {"level", "max_risk_score"}
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List
from PyQt6.QtCore import QObject, pyqtSignal

AUDIT_ENTRY = "audit_entry"
TRUST_CHANGED = "trust_changed"
FILTER_CONFIG_CHANGED = "filter_config_changed"
CONFIG_CHANGED = "config_changed"
SAFETY_CONFIG_CHANGED = "safety_config_changed"   # inbound, from a settings panel

Handler = Callable[[Dict[str, Any]], None]


class _Channel(QObject):
    fired = pyqtSignal(dict)


class EventBus(QObject):
    """
    Usage
    -----
    bus = EventBus()
    bus.subscribe(TRUST_CHANGED, lambda d: indicator.set_value(d["trust_level"]))
    bus.publish(TRUST_CHANGED, {"user_id": "u1", "trust_level": 0.55, "adjustment": 0.05})
    """

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self._channels: Dict[str, _Channel] = {}

    def _channel(self, event: str) -> _Channel:
        channel = self._channels.get(event)
        if channel is None:
            channel = self._channels[event] = _Channel(self)
        return channel

    @property
    def channels(self) -> List[str]:
        return sorted(self._channels)

    def subscribe(self, event: str, handler: Handler) -> None:
        self._channel(event).fired.connect(handler)

    def unsubscribe(self, event: str, handler: Handler) -> bool:
        """Detach *handler*; False when it was not subscribed."""
        channel = self._channels.get(event)
        if channel is None:
            return False
        try:
            channel.fired.disconnect(handler)
        except TypeError:
            return False
        return True

    def publish(self, event: str, data: Dict[str, Any] | None = None) -> None:
        # Each publish gets its own dict so handlers cannot mutate the caller's.
        self._channel(event).fired.emit(dict(data or {}))
