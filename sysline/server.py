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

import logging
import uuid

from functools import partial

import trio

from sysline import channel
from sysline._logging import SPEW as log_SPEW
from sysline.protocol import LineReceiver, BufferTooLargeError


logger = logging.getLogger(__name__)


CONNECTED = "client connected"
DISCONNECTED = "client disconnected"


#
# Non I/O Functions
#


def decode_line(line: bytes) -> str:
    return line.decode("utf8", errors="replace")


#
# I/O Functions
#


async def iter_lines(stream, lr, recv_size=None):
    if recv_size is None:
        recv_size = 8192

    while True:
        try:
            data = await stream.receive_some(recv_size)
        except trio.BrokenResourceError:
            # A reset looks exactly like the peer hanging up.
            data = b""

        if not data:
            line = lr.close()
            if line is not None:
                yield line
            return

        for line in lr.receive_data(data):
            yield line


async def dispatch(handler, lock, address, text):
    async with lock:
        await handler(address, text)


async def handle_connection(
    stream, peer, handler, lock, max_line_size=None, recv_size=None
):
    peer_id = uuid.uuid4()
    logger.debug("{%s}: Connection received from %r.", peer_id, peer)

    lr = LineReceiver(decode_line, max_line_size=max_line_size)

    try:
        async with stream:
            lines = iter_lines(stream, lr, recv_size=recv_size)
            try:
                async for line in lines:
                    logger.log(log_SPEW, "{%s}: Received line: %r", peer_id, line)
                    await dispatch(handler, lock, peer, line)
            finally:
                await lines.aclose()
    except BufferTooLargeError:
        logger.debug("{%s}: Buffer too large; Dropping connection.", peer_id)
    except Exception:
        logger.exception("{%s}: Unhandled error in connection:", peer_id)

    logger.debug("{%s}: Connection lost from %r.", peer_id, peer)
    try:
        await dispatch(handler, lock, peer, DISCONNECTED)
    except Exception:
        logger.exception("{%s}: Unhandled error in disconnect handler:", peer_id)


#
# Main Entry points
#


async def serve_udp(
    handler,
    port=514,
    bind="0.0.0.0",
    recv_size=None,
    task_status=trio.TASK_STATUS_IGNORED,
):
    # Datagrams larger than this are silently truncated by the socket layer.
    if recv_size is None:
        recv_size = 1024

    sock = await channel.bind_datagram(bind, port)
    with sock:
        address = sock.getsockname()
        logger.info("Listening for UDP messages on %s:%d", *address[:2])
        task_status.started(address)

        while True:
            data, sender = await sock.recvfrom(recv_size)
            text = decode_line(data)
            logger.log(log_SPEW, "Received datagram from %r: %r", sender, text)
            await handler(sender, text)


async def serve_tcp(
    handler,
    port=514,
    bind="0.0.0.0",
    backlog=5,
    max_line_size=None,
    recv_size=None,
    task_status=trio.TASK_STATUS_IGNORED,
):
    # Every handler call, from any connection, goes through this one lock.
    lock = trio.Lock()

    listener = await channel.listen_stream(bind, port, backlog=backlog)
    async with listener:
        address = listener.socket.getsockname()
        logger.info("Listening for TCP connections on %s:%d", *address[:2])

        async with trio.open_nursery() as nursery:
            task_status.started(address)

            while True:
                stream, peer = await channel.accept_stream(listener)
                try:
                    await dispatch(handler, lock, peer, CONNECTED)
                except Exception:
                    logger.exception(
                        "Unhandled error in connect handler for %r:", peer
                    )
                    await trio.aclose_forcefully(stream)
                    continue
                except BaseException:
                    await trio.aclose_forcefully(stream)
                    raise

                nursery.start_soon(
                    partial(
                        handle_connection,
                        stream,
                        peer,
                        handler,
                        lock,
                        max_line_size=max_line_size,
                        recv_size=recv_size,
                    )
                )
