"""
Test the refresh bus.
"""

from cubesync.events.refresh_bus import RefreshBus, get_refresh_bus, reset_refresh_bus


def test_publish_reaches_every_subscriber(bus):
    seen = []
    bus.subscribe(lambda e: seen.append(("a", e.reason)))
    bus.subscribe(lambda e: seen.append(("b", e.reason)))

    assert bus.publish("burn") == 2
    assert seen == [("a", "burn"), ("b", "burn")]


def test_failing_handler_does_not_stop_delivery(bus):
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(lambda e: seen.append(e.reason))

    assert bus.publish("claim") == 1
    assert seen == ["claim"]


def test_unsubscribe_is_idempotent(bus):
    seen = []
    unsubscribe = bus.subscribe(lambda e: seen.append(e.reason))

    unsubscribe()
    unsubscribe()
    bus.publish("ping")

    assert seen == []
    assert bus.subscriber_count == 0


def test_unsubscribe_during_delivery(bus):
    seen = []
    handles = {}

    def first(event):
        seen.append("first")
        handles["second"].unsubscribe()

    handles["first"] = bus.subscribe(first)
    handles["second"] = bus.subscribe(lambda e: seen.append("second"))

    bus.publish("breed")
    bus.publish("breed")

    assert seen == ["first", "first"]


def test_no_replay_for_late_subscribers(bus):
    bus.publish("burn")
    seen = []
    bus.subscribe(lambda e: seen.append(e))

    assert seen == []


def test_event_carries_lowercased_address(bus):
    events = []
    bus.subscribe(events.append)

    bus.publish("claim", address="0xABCDEF0000000000000000000000000000000000")

    assert events[0].address == "0xabcdef0000000000000000000000000000000000"


def test_global_instance_reset():
    first = get_refresh_bus()
    assert get_refresh_bus() is first
    first.subscribe(lambda e: None)

    reset_refresh_bus()

    assert first.subscriber_count == 0
    assert get_refresh_bus() is not first
    assert isinstance(get_refresh_bus(), RefreshBus)
    reset_refresh_bus()
