# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import struct

from functools import partial

import pytest
import trio

from sysline.client import open_tcp_client
from sysline.server import CONNECTED, DISCONNECTED, serve_tcp
from sysline.syslog import Facility, Priority


async def start_server(nursery, handler, **kwargs):
    address = await nursery.start(
        partial(serve_tcp, handler, port=0, bind="127.0.0.1", **kwargs)
    )
    return address[1]


async def collect(receive_channel, count, timeout=10):
    events = []
    with trio.fail_after(timeout):
        while len(events) < count:
            events.append(await receive_channel.receive())
    return events


def channel_handler(size=1000):
    send_channel, receive_channel = trio.open_memory_channel(size)

    async def handler(address, text):
        await send_channel.send((address, text))

    return handler, receive_channel


@pytest.mark.trio
async def test_single_connection_order(nursery):
    handler, received = channel_handler()
    port = await start_server(nursery, handler)

    client = await open_tcp_client("127.0.0.1", port, "tcptest")
    peer = client.local_address
    async with client:
        await client.send(Facility.user, Priority.info, "This is my TCP message")
        await client.send(Facility.mail, Priority.critical, "second message")

    events = await collect(received, 4)

    assert events == [
        (peer, CONNECTED),
        (peer, "<9>tcptest: This is my TCP message"),
        (peer, "<21>tcptest: second message"),
        (peer, DISCONNECTED),
    ]


@pytest.mark.trio
async def test_concurrent_connections_do_not_interleave(nursery):
    clients, messages = 5, 20
    total = (clients * messages) + (2 * clients)
    output = []
    done = trio.Event()

    async def handler(address, text):
        # Deliberately not atomic, a checkpoint in the middle lets other tasks run.
        output.append(("begin", address, text))
        await trio.sleep(0)
        output.append(("end", address, text))
        if len(output) == 2 * total:
            done.set()

    port = await start_server(nursery, handler, backlog=clients)

    async def run_client(n):
        async with await open_tcp_client("127.0.0.1", port, f"client{n}") as client:
            for i in range(messages):
                await client.send(Facility.local1, Priority.notice, f"message {i}")
                await trio.sleep(0)

    async with trio.open_nursery() as clients_nursery:
        for n in range(clients):
            clients_nursery.start_soon(run_client, n)

    with trio.fail_after(10):
        await done.wait()

    assert len(output) == 2 * total
    for begin, end in zip(output[::2], output[1::2]):
        assert begin[0] == "begin"
        assert end == ("end",) + begin[1:]

    by_peer = {}
    for _, address, text in output[::2]:
        by_peer.setdefault(address, []).append(text)

    assert len(by_peer) == clients
    for texts in by_peer.values():
        assert texts[0] == CONNECTED
        assert texts[-1] == DISCONNECTED
        program = texts[1].split(">", 1)[1].split(":", 1)[0]
        assert texts[1:-1] == [
            f"<138>{program}: message {i}" for i in range(messages)
        ]


@pytest.mark.trio
async def test_reset_connection_does_not_affect_others(nursery):
    handler, received = channel_handler()
    port = await start_server(nursery, handler)

    sock = trio.socket.socket(trio.socket.AF_INET, trio.socket.SOCK_STREAM)
    await sock.connect(("127.0.0.1", port))
    peer = sock.getsockname()
    await sock.send(b"<9>rude: goodbye\n")

    events = await collect(received, 2)
    assert events == [(peer, CONNECTED), (peer, "<9>rude: goodbye")]

    # A zero linger time turns close() into a reset.
    sock.setsockopt(
        trio.socket.SOL_SOCKET, trio.socket.SO_LINGER, struct.pack("ii", 1, 0)
    )
    sock.close()

    assert await collect(received, 1) == [(peer, DISCONNECTED)]

    async with await open_tcp_client("127.0.0.1", port, "polite") as client:
        peer = client.local_address
        await client.send(Facility.user, Priority.info, "still here")

    events = await collect(received, 3)
    assert events == [
        (peer, CONNECTED),
        (peer, "<9>polite: still here"),
        (peer, DISCONNECTED),
    ]


@pytest.mark.trio
async def test_accept_does_not_wait_for_open_connections(nursery):
    handler, received = channel_handler()
    port = await start_server(nursery, handler)

    idle = await open_tcp_client("127.0.0.1", port, "idle")
    async with idle:
        async with await open_tcp_client("127.0.0.1", port, "busy") as busy:
            busy_peer = busy.local_address
            await busy.send(Facility.user, Priority.info, "hello")

        events = await collect(received, 4)
        texts = [text for _, text in events]

        assert texts.count(CONNECTED) == 2
        assert "<9>busy: hello" in texts
        assert events[-1] == (busy_peer, DISCONNECTED)


@pytest.mark.trio
@pytest.mark.parametrize("failing", [CONNECTED, DISCONNECTED])
async def test_handler_error_does_not_stop_the_server(nursery, failing):
    send_channel, received = trio.open_memory_channel(100)
    failed = []

    async def handler(address, text):
        if text == failing and not failed:
            failed.append(address)
            raise RuntimeError("boom")
        await send_channel.send((address, text))

    port = await start_server(nursery, handler)

    first = await open_tcp_client("127.0.0.1", port, "first")
    first_peer = first.local_address
    async with first:
        if failing == DISCONNECTED:
            await first.send(Facility.user, Priority.info, "one")

    with trio.fail_after(5):
        while not failed:
            await trio.sleep(0.01)
    assert failed == [first_peer]

    if failing == DISCONNECTED:
        assert await collect(received, 2) == [
            (first_peer, CONNECTED),
            (first_peer, "<9>first: one"),
        ]

    async with await open_tcp_client("127.0.0.1", port, "second") as second:
        second_peer = second.local_address
        await second.send(Facility.user, Priority.info, "two")

    assert await collect(received, 3) == [
        (second_peer, CONNECTED),
        (second_peer, "<9>second: two"),
        (second_peer, DISCONNECTED),
    ]
