"""
Tests for coachguard/events.py - named publish/subscribe channels.

Covers:
* subscribe/publish delivery, several handlers per channel
* unsubscribe, including handlers that were never attached
* payload isolation between publisher and handlers
"""

from __future__ import annotations

from coachguard.events import AUDIT_ENTRY, TRUST_CHANGED


class TestEventBus:
    def test_delivers_payload(self, bus):
        received = []
        bus.subscribe(TRUST_CHANGED, received.append)
        bus.publish(TRUST_CHANGED, {"user_id": "u1", "trust_level": 0.55})
        assert received == [{"user_id": "u1", "trust_level": 0.55}]

    def test_channels_are_independent(self, bus):
        audits, trust = [], []
        bus.subscribe(AUDIT_ENTRY, audits.append)
        bus.subscribe(TRUST_CHANGED, trust.append)
        bus.publish(AUDIT_ENTRY, {"category": "allowed"})
        assert len(audits) == 1
        assert trust == []

    def test_multiple_handlers(self, bus):
        a, b = [], []
        bus.subscribe(AUDIT_ENTRY, a.append)
        bus.subscribe(AUDIT_ENTRY, b.append)
        bus.publish(AUDIT_ENTRY)
        assert a == [{}]
        assert b == [{}]

    def test_unsubscribe(self, bus):
        received = []

        def handler(data):
            received.append(data)

        bus.subscribe(TRUST_CHANGED, handler)
        assert bus.unsubscribe(TRUST_CHANGED, handler)
        bus.publish(TRUST_CHANGED, {"trust_level": 0.1})
        assert received == []

    def test_unsubscribe_unknown(self, bus):
        assert bus.unsubscribe("never_used", print) is False

    def test_handler_cannot_mutate_publisher_payload(self, bus):
        def meddle(data):
            data["trust_level"] = 0.0

        bus.subscribe(TRUST_CHANGED, meddle)
        payload = {"trust_level": 0.9}
        bus.publish(TRUST_CHANGED, payload)
        assert payload == {"trust_level": 0.9}

    def test_channels_listed(self, bus):
        bus.subscribe(TRUST_CHANGED, print)
        bus.publish(AUDIT_ENTRY)
        assert bus.channels == [AUDIT_ENTRY, TRUST_CHANGED]
