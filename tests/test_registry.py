"""Tests for viewer clients and the client registry."""

import asyncio
import socket

import pytest

from server.registry import Client, ClientRegistry, ClientState
from utils.exceptions import CapacityExceededError, ClientSendError


@pytest.mark.parametrize("max_clients", [1, 2, 4])
async def test_admits_up_to_capacity(make_client, max_clients):
    registry = ClientRegistry(max_clients)

    for n in range(max_clients):
        await registry.try_add(make_client())
        assert registry.active_count == n + 1

    with pytest.raises(CapacityExceededError):
        await registry.try_add(make_client())
    assert len(registry) == max_clients


async def test_inactive_clients_do_not_hold_slots(make_client):
    registry = ClientRegistry(2)
    first, second = make_client(), make_client()
    await registry.try_add(first)
    await registry.try_add(second)

    first.mark_inactive("gone")

    await registry.try_add(make_client())
    assert registry.active_count == 2
    assert len(registry) == 3


async def test_for_each_active_skips_inactive(make_client):
    registry = ClientRegistry(4)
    clients = [make_client() for _ in range(3)]
    for client in clients:
        await registry.try_add(client)
    clients[1].mark_inactive("gone")
    visited = []

    async def visit(client):
        visited.append(client)

    count = await registry.for_each_active(visit)

    assert count == 2
    assert visited == [clients[0], clients[2]]


async def test_for_each_active_continues_after_send_error(make_client):
    registry = ClientRegistry(4)
    good, bad, last = make_client(), make_client("broken"), make_client()
    for client in (good, bad, last):
        await registry.try_add(client)

    async def deliver(client):
        await client.send([b'frame'])

    count = await registry.for_each_active(deliver)

    assert count == 2
    assert not bad.active
    assert good.sock.data == b'frame'
    assert last.sock.data == b'frame'


async def test_reap_removes_and_closes_inactive(make_client):
    registry = ClientRegistry(4)
    keep, drop = make_client(), make_client()
    await registry.try_add(keep)
    await registry.try_add(drop)
    drop.mark_inactive("send failed")

    removed = await registry.reap()

    assert removed == 1
    assert registry.clients() == [keep]
    assert drop.sock.closed
    assert not keep.sock.closed
    assert await registry.reap() == 0


async def test_close_all_closes_everything(make_client):
    registry = ClientRegistry(4)
    clients = [make_client() for _ in range(3)]
    for client in clients:
        await registry.try_add(client)
    clients[0].mark_inactive("gone")

    closed = await registry.close_all()

    assert closed == 3
    assert len(registry) == 0
    assert all(c.sock.closed for c in clients)
    assert all(c.state is ClientState.CLOSED for c in clients)


def test_registry_requires_positive_capacity():
    with pytest.raises(ValueError):
        ClientRegistry(0)


async def test_send_writes_all_buffers(make_client):
    client = make_client()

    sent = await client.send([b'head', b'payload'])

    assert sent == 11
    assert client.sock.data == b'headpayload'
    assert client.active


@pytest.mark.parametrize("mode", ["block", "broken", "partial"])
async def test_failed_send_marks_inactive(make_client, mode):
    client = make_client(mode)

    with pytest.raises(ClientSendError):
        await client.send([b'head', b'payload'])

    assert not client.active
    assert client.state is ClientState.CLOSED


async def test_send_to_inactive_client_fails_without_writing(make_client):
    client = make_client()
    client.mark_inactive("gone")

    with pytest.raises(ClientSendError):
        await client.send([b'data'])
    assert client.sock.sent == []


async def test_send_with_deadline_uses_full_write():
    left, right = socket.socketpair()
    try:
        client = Client(left, ("local", 0), send_timeout=1.0)

        await client.send([b'abc', b'def'])

        right.settimeout(1.0)
        assert right.recv(16) == b'abcdef'
        assert client.active
    finally:
        left.close()
        right.close()


async def test_send_deadline_exceeded_marks_inactive():
    left, right = socket.socketpair()
    try:
        left.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, 4096)
        right.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, 4096)
        client = Client(left, ("local", 0), send_timeout=0.05)

        with pytest.raises(ClientSendError, match="exceeded"):
            await client.send([b'\x00' * (8 * 1024 * 1024)])

        assert not client.active
    finally:
        left.close()
        right.close()


async def test_client_lock_serializes_writers(make_client):
    client = make_client()

    await asyncio.gather(
        client.send([b'A' * 4, b'B' * 4]),
        client.send([b'C' * 4, b'D' * 4]),
    )

    assert sorted(client.sock.sent) == [b'AAAABBBB', b'CCCCDDDD']


async def test_for_each_active_reraises_unexpected_errors(make_client):
    registry = ClientRegistry(4)
    first, second = make_client(), make_client()
    for client in (first, second):
        await registry.try_add(client)

    async def deliver(client):
        if client is first:
            raise RuntimeError("boom")
        await client.send([b'frame'])

    with pytest.raises(RuntimeError, match="boom"):
        await registry.for_each_active(deliver)

    assert first.active
    assert second.sock.data == b'frame'
