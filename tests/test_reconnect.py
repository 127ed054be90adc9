import asyncio
import errno
import pytest
from unittest.mock import AsyncMock

# Импортируем сам модуль, чтобы использовать patch.object
import tcptest.client
from tcptest.client import TcpTestClient
from tcptest.errors import PeerClosedError, TransportError

pytestmark = [pytest.mark.asyncio]


def refused(address='127.0.0.1:5056'):
    return TransportError('dial', address, ConnectionRefusedError(errno.ECONNREFUSED, 'Connection refused'))


async def stop_after(token, task, delay):
    await asyncio.sleep(delay)
    token.cancel()
    await asyncio.wait_for(task, 1.0)


async def test_dial_failures_retry_after_fixed_delay(mocker, token, fast_timing, caplog):
    loop = asyncio.get_running_loop()
    dial_times = []

    async def fake_dial(*args, **kwargs):
        dial_times.append(loop.time())
        raise refused()

    mocker.patch.object(tcptest.client, 'open_line_transport', side_effect=fake_dial)
    client = TcpTestClient('127.0.0.1', 5056, timing_config=fast_timing)
    await stop_after(token, asyncio.create_task(client.run(token)), 0.35)

    assert 3 <= client.attempts <= 5
    gaps = [b - a for a, b in zip(dial_times, dial_times[1:])]
    assert all(gap >= 0.09 for gap in gaps)
    assert "syscall error: connect ECONNREFUSED" in caplog.text
    assert "Reconnecting to 127.0.0.1:5056 in 0.1 seconds..." in caplog.text


async def test_cancel_during_backoff_returns_immediately(mocker, token, fast_timing):
    mocker.patch.object(tcptest.client, 'open_line_transport', AsyncMock(side_effect=refused()))
    client = TcpTestClient('127.0.0.1', 5056, timing_config={**fast_timing, 'retry_delay': 30})
    task = asyncio.create_task(client.run(token))
    await asyncio.sleep(0.05)

    started = asyncio.get_running_loop().time()
    token.cancel()
    await asyncio.wait_for(task, 1.0)
    assert asyncio.get_running_loop().time() - started < 0.5
    assert client.attempts == 1


async def test_cancel_during_dial(mocker, token, fast_timing):
    async def hanging_dial(*args, **kwargs):
        await asyncio.sleep(30)

    mocker.patch.object(tcptest.client, 'open_line_transport', side_effect=hanging_dial)
    client = TcpTestClient('127.0.0.1', 5056, timing_config=fast_timing)
    task = asyncio.create_task(client.run(token))
    await asyncio.sleep(0.05)
    token.cancel()
    await asyncio.wait_for(task, 1.0)
    assert client.attempts == 1


async def test_already_cancelled_never_dials(mocker, token):
    dial = mocker.patch.object(tcptest.client, 'open_line_transport', AsyncMock())
    token.cancel()
    await TcpTestClient('127.0.0.1', 5056).run(token)
    dial.assert_not_called()


async def test_peer_close_and_transport_error_retry_at_same_cadence(
        mocker, token, fast_timing, fake_transport_factory, caplog):
    loop = asyncio.get_running_loop()
    first = fake_transport_factory()
    first.incoming.put_nowait(PeerClosedError(first.address))
    second = fake_transport_factory()
    second.incoming.put_nowait(TransportError('read', second.address,
                                              ConnectionResetError(errno.ECONNRESET, 'Connection reset by peer')))
    third = fake_transport_factory()
    transports = [first, second, third]
    dial_times = []

    async def fake_dial(*args, **kwargs):
        dial_times.append(loop.time())
        # the previous session is fully closed before the next dial
        assert all(t.closed for t in transports[:len(dial_times) - 1])
        return transports[len(dial_times) - 1]

    mocker.patch.object(tcptest.client, 'open_line_transport', side_effect=fake_dial)
    client = TcpTestClient('127.0.0.1', 5056, timing_config={**fast_timing, 'heartbeat_interval': 5.0})
    await stop_after(token, asyncio.create_task(client.run(token)), 0.35)

    assert len(dial_times) == 3
    gaps = [b - a for a, b in zip(dial_times, dial_times[1:])]
    assert all(0.09 <= gap < 0.3 for gap in gaps)
    assert "server closed the connection" in caplog.text
    assert "syscall error: read ECONNRESET" in caplog.text
    assert third.closed
    assert client.sessions == 3


async def test_sequence_numbers_restart_per_session(mocker, token, fast_timing, fake_transport_factory, caplog):
    transports = []

    async def fake_dial(*args, **kwargs):
        transport = fake_transport_factory()
        if len(transports) < 2:
            transport.incoming.put_nowait(PeerClosedError(transport.address))
        transports.append(transport)
        return transport

    mocker.patch.object(tcptest.client, 'open_line_transport', side_effect=fake_dial)
    client = TcpTestClient('127.0.0.1', 5056, timing_config=fast_timing)
    await stop_after(token, asyncio.create_task(client.run(token)), 0.35)

    assert len(transports) == 3
    assert caplog.text.count("client send #1:") == 3
    assert all(len(t.sent) >= 1 for t in transports)


async def test_invalid_arguments():
    with pytest.raises(ValueError, match="Host must be a non-empty string"):
        TcpTestClient('', 5056)
    with pytest.raises(ValueError, match="Port must be an integer"):
        TcpTestClient('localhost', 70000)
    with pytest.raises(ValueError, match="timing_config must be a dict"):
        TcpTestClient('localhost', 5056, timing_config=[('retry_delay', 1)])
