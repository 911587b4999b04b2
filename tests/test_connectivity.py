import asyncio

import pytest

from network.connectivity import ConnectivityMonitor, ConnectivityProbe, ConnectivityStatus


def test_monitor_starts_offline_by_default():
    monitor = ConnectivityMonitor()
    assert monitor.current_status() == ConnectivityStatus(connected=False)
    assert not monitor.is_connected


def test_listeners_only_hear_transitions():
    monitor = ConnectivityMonitor()
    heard = []
    monitor.subscribe(lambda status: heard.append(status.connected))

    assert monitor.report(True) is True
    assert monitor.report(True) is False
    assert monitor.report(False) is True

    assert heard == [True, False]


def test_unsubscribe_stops_notifications():
    monitor = ConnectivityMonitor()
    heard = []
    unsubscribe = monitor.subscribe(lambda status: heard.append(status.connected))

    unsubscribe()
    unsubscribe()
    monitor.report(True)

    assert heard == []


def test_failing_listener_does_not_block_others():
    monitor = ConnectivityMonitor()
    heard = []

    def broken(status):
        raise RuntimeError("boom")

    monitor.subscribe(broken)
    monitor.subscribe(lambda status: heard.append(status.connected))
    monitor.report(True)

    assert heard == [True]
    assert monitor.is_connected


@pytest.mark.asyncio
async def test_probe_reports_reachable_server():
    async def handle(reader, writer):
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    monitor = ConnectivityMonitor()
    try:
        probe = ConnectivityProbe(monitor, host="127.0.0.1", port=port, timeout=1.0)
        assert await probe.check_once() is True
        assert monitor.is_connected
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_probe_reports_unreachable_port():
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()

    monitor = ConnectivityMonitor(connected=True)
    probe = ConnectivityProbe(monitor, host="127.0.0.1", port=port, timeout=1.0)

    assert await probe.check_once() is False
    assert not monitor.is_connected


@pytest.mark.asyncio
async def test_probe_loop_start_and_stop():
    monitor = ConnectivityMonitor()
    probe = ConnectivityProbe(monitor, host="127.0.0.1", port=1, interval=0.01, timeout=0.1)
    calls = []

    async def fake_check():
        calls.append(True)
        monitor.report(True)
        return True

    probe.check_once = fake_check
    task = probe.start()
    assert probe.start() is task
    await asyncio.sleep(0.05)
    await probe.stop()

    assert calls
    assert monitor.is_connected
    assert task.done()
