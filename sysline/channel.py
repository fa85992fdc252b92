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


logger = logging.getLogger(__name__)


class ChannelError(OSError):
    pass


class ResolutionError(ChannelError):
    pass


class BindError(ChannelError):
    pass


class ConnectError(ChannelError):
    pass


async def resolve(host, port, socktype, *, passive=False):
    flags = trio.socket.AI_PASSIVE if passive else 0

    try:
        results = await trio.socket.getaddrinfo(
            host, port, type=socktype, flags=flags
        )
    except (OSError, UnicodeError) as exc:
        raise ResolutionError(f"Unable to resolve {host!r}:{port!r}: {exc}") from exc

    if not results:
        raise ResolutionError(f"No addresses found for {host!r}:{port!r}")

    # The resolver's ordering is authoritative, we never try the other results.
    family, socktype, proto, _, address = results[0]
    logger.debug("Resolved %r:%r to %r", host, port, address)

    return family, socktype, proto, address


#
# Datagram Channel
#


async def open_datagram(host, port):
    family, socktype, proto, address = await resolve(
        host, port, trio.socket.SOCK_DGRAM
    )
    return trio.socket.socket(family, socktype, proto), address


async def bind_datagram(bind, port):
    family, socktype, proto, address = await resolve(
        bind, port, trio.socket.SOCK_DGRAM, passive=True
    )

    sock = trio.socket.socket(family, socktype, proto)
    try:
        await sock.bind(address)
    except OSError as exc:
        sock.close()
        raise BindError(f"Unable to bind to {address!r}: {exc}") from exc

    return sock


#
# Stream Channel
#


async def connect_stream(host, port):
    family, socktype, proto, address = await resolve(
        host, port, trio.socket.SOCK_STREAM
    )

    sock = trio.socket.socket(family, socktype, proto)
    try:
        # Idle connections must not be silently dropped by middleboxes.
        sock.setsockopt(trio.socket.SOL_SOCKET, trio.socket.SO_KEEPALIVE, 1)
        await sock.connect(address)
    except OSError as exc:
        sock.close()
        raise ConnectError(f"Unable to connect to {address!r}: {exc}") from exc
    except BaseException:
        sock.close()
        raise

    return trio.SocketStream(sock)


async def listen_stream(bind, port, backlog=5):
    family, socktype, proto, address = await resolve(
        bind, port, trio.socket.SOCK_STREAM, passive=True
    )

    sock = trio.socket.socket(family, socktype, proto)
    try:
        sock.setsockopt(trio.socket.SOL_SOCKET, trio.socket.SO_REUSEADDR, 1)
        await sock.bind(address)
        sock.listen(backlog)
    except OSError as exc:
        sock.close()
        raise BindError(f"Unable to listen on {address!r}: {exc}") from exc

    # SocketListener skips per connection accept errors such as ECONNABORTED.
    return trio.SocketListener(sock)


async def accept_stream(listener):
    while True:
        stream = await listener.accept()
        try:
            peer = stream.socket.getpeername()
        except OSError:
            # The peer went away before we could ask who it was.
            logger.debug("Connection lost before it was accepted; Dropping it.")
            await trio.aclose_forcefully(stream)
            continue
        return stream, peer
