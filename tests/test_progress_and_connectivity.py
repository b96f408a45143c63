from services.connectivity import ConnectivityMonitor
from services.progress import ProgressBus


def test_failing_subscriber_does_not_block_others():
    bus = ProgressBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(received.append)
    bus.publish({"status": "started"})

    assert received == [{"status": "started"}]


def test_unsubscribe_stops_delivery():
    bus = ProgressBus()
    received = []
    unsubscribe = bus.subscribe(received.append)
    bus.publish({"status": "started"})
    unsubscribe()
    unsubscribe()
    bus.publish({"status": "completed"})

    assert [e["status"] for e in received] == ["started"]
    assert len(bus) == 0


def test_connectivity_notifies_only_on_change():
    monitor = ConnectivityMonitor(online=False)
    seen = []
    monitor.add_listener(seen.append)

    monitor.set_online(False)
    monitor.set_online(True)
    monitor.set_online(True)
    monitor.set_online(False)

    assert seen == [True, False]
    assert monitor.is_online() is False


def test_connectivity_listener_errors_are_isolated():
    monitor = ConnectivityMonitor(online=False)
    seen = []

    def broken(online):
        raise ValueError("listener bug")

    monitor.add_listener(broken)
    detach = monitor.add_listener(seen.append)
    monitor.set_online(True)
    detach()
    monitor.set_online(False)

    assert seen == [True]
