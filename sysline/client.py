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

import trio

from sysline import channel
from sysline._logging import SPEW as log_SPEW
from sysline.syslog.parser import format_message


logger = logging.getLogger(__name__)


class TransportError(Exception):
    pass


class SendError(TransportError):
    pass


class WriteError(TransportError):
    pass


class UDPClient:
    """
    Sends each message as a single datagram to a fixed destination. Nothing is
    acknowledged, a message that is lost on the wire is lost for good.
    """

    def __init__(self, sock, address, program):
        self._sock = sock
        self.address = address
        self.program = program

    @property
    def local_address(self):
        return self._sock.getsockname()

    async def send(self, facility, priority, text):
        data = format_message(facility, priority, self.program, text).encode("utf8")
        logger.log(log_SPEW, "Sending %d bytes to %r", len(data), self.address)

        view = memoryview(data)
        try:
            # Only completes a partially written packet; failures are not retried.
            while view:
                sent = await self._sock.sendto(view, self.address)
                view = view[sent:]
        except OSError as exc:
            raise SendError(f"Unable to send to {self.address!r}: {exc}") from exc

    async def aclose(self):
        self._sock.close()
        await trio.lowlevel.checkpoint()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


class TCPClient:
    """
    Writes newline terminated messages to a connected stream. Every send has
    completed its write before it returns, and a broken connection is never
    reopened behind the caller's back.
    """

    delimiter = b"\n"

    def __init__(self, stream, program):
        self._stream = stream
        self.program = program

    @property
    def local_address(self):
        return self._stream.socket.getsockname()

    async def send(self, facility, priority, text):
        message = format_message(facility, priority, self.program, text)
        if "\n" in message:
            raise ValueError("A message sent over TCP cannot contain a newline.")

        data = message.encode("utf8") + self.delimiter
        logger.log(log_SPEW, "Writing %d bytes", len(data))

        try:
            await self._stream.send_all(data)
        except (trio.BrokenResourceError, trio.ClosedResourceError) as exc:
            raise WriteError(f"Unable to write message: {exc}") from exc

    async def aclose(self):
        await self._stream.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


async def open_udp_client(hostname, port, program):
    sock, address = await channel.open_datagram(hostname, port)
    logger.debug("Opened UDP client for %r sending to %r", program, address)
    return UDPClient(sock, address, program)


async def open_tcp_client(hostname, port, program):
    stream = await channel.connect_stream(hostname, port)
    logger.debug("Opened TCP client for %r connected to %r:%r", program, hostname, port)
    return TCPClient(stream, program)
