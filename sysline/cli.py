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
import logging.config

from functools import partial

import arrow
import click
import trio

from sysline import _logging  # noqa: F401  Registers the SPEW level.
from sysline.channel import ChannelError
from sysline.client import TransportError, open_tcp_client, open_udp_client
from sysline.server import serve_tcp as serve_tcp_, serve_udp as serve_udp_
from sysline.syslog import Facility, Priority
from sysline.syslog.parser import UnparseableSyslogMessage, parse


logger = logging.getLogger(__name__)


def format_received(address, text, parse_messages=False):
    host, port, *_ = address
    timestamp = arrow.utcnow().format("YYYY-MM-DD HH:mm:ss")

    if parse_messages:
        try:
            message = parse(text)
        except UnparseableSyslogMessage:
            pass
        else:
            return (
                f"[{timestamp}] From {host}:{port}: "
                f"{message.facility.value}.{message.priority.name} "
                f"{message.program}: {message.message}"
            )

    return f"[{timestamp}] From {host}:{port}: {text}"


def make_display_handler(parse_messages=False):
    async def display(address, text):
        click.echo(format_received(address, text, parse_messages=parse_messages))

    return display


def _run_server(server, **kwargs):
    # Iterate over all of our configuration, and write out the values to the debug
    # logger to make it easier to see if sysline is picking up a particular
    # configuration or not.
    for key, value in kwargs.items():
        logger.debug("Configuring %s to %r", key, value)

    try:
        trio.run(partial(server, **kwargs))
    except ChannelError as exc:
        raise click.ClickException(str(exc))
    except KeyboardInterrupt:
        raise
    except BaseException:
        logger.exception("Unhandled error in server.")
        raise


@click.group(
    context_settings={
        "auto_envvar_prefix": "SYSLINE",
        "help_option_names": ["-h", "--help"],
        "max_content_width": 88,
    }
)
@click.option(
    "--log-level",
    type=click.Choice(["spew", "debug", "info", "warning", "error", "critical"]),
    default="info",
    show_default=True,
    help="The verbosity of the console logger.",
)
@click.option(
    "--log-file",
    type=click.Path(file_okay=True, dir_okay=False, writable=True, readable=True),
    help="A file to additionally send logging to.",
)
def cli(log_level, log_file):
    """
    A small syslog style collector and client.

    Messages carry a facility and a priority packed into a single code, plus the
    name of the program that sent them, and can travel over UDP (one message per
    datagram) or TCP (one message per line).
    """
    handlers = ["console"]
    if log_file:
        handlers.append("file")

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "class": "logging.Formatter",
                    "style": "{",
                    "format": "[{asctime}] [{levelname:^10}] {message}",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "level": log_level.upper(),
                    "formatter": "console",
                },
                "file": {
                    "class": "logging.handlers.WatchedFileHandler",
                    "filename": log_file or "/dev/null",
                    "level": log_level.upper(),
                    "formatter": "console",
                },
            },
            "root": {"level": "SPEW", "handlers": handlers},
        }
    )


def _server_options(fn):
    fn = click.option(
        "--parse/--no-parse",
        "parse_messages",
        default=False,
        show_default=True,
        help="Show the facility and priority of messages that can be decoded.",
    )(fn)
    fn = click.option(
        "--port",
        type=int,
        default=514,
        metavar="PORT",
        show_default=True,
        help="The port to bind to.",
    )(fn)
    fn = click.option(
        "--bind",
        default="0.0.0.0",
        metavar="ADDR",
        show_default=True,
        help="The IP address to bind to.",
    )(fn)
    return fn


@cli.command("serve-udp", short_help="Runs a UDP collector.")
@_server_options
@click.option(
    "--recv-size",
    type=int,
    default=1024,
    metavar="BYTES",
    show_default=True,
    help="The largest datagram to accept, anything longer is truncated.",
)
def serve_udp(bind, port, parse_messages, recv_size):
    """
    Starts a collector in the foreground that receives one message per datagram and
    prints each of them.
    """
    _run_server(
        serve_udp_,
        handler=make_display_handler(parse_messages),
        bind=bind,
        port=port,
        recv_size=recv_size,
    )


@cli.command("serve-tcp", short_help="Runs a TCP collector.")
@_server_options
@click.option(
    "--backlog",
    type=int,
    default=5,
    show_default=True,
    help="How many pending connections to queue before refusing new ones.",
)
@click.option(
    "--max-line-size",
    type=int,
    default=16384,
    metavar="BYTES",
    show_default=True,
    help="The maximum length in bytes of a single incoming message.",
)
@click.option(
    "--recv-size",
    type=int,
    default=8192,
    metavar="BYTES",
    show_default=True,
    help="How many bytes to read per recv.",
)
def serve_tcp(bind, port, parse_messages, backlog, max_line_size, recv_size):
    """
    Starts a collector in the foreground that accepts any number of connections and
    prints every line received on each of them.
    """
    _run_server(
        serve_tcp_,
        handler=make_display_handler(parse_messages),
        bind=bind,
        port=port,
        backlog=backlog,
        max_line_size=max_line_size,
        recv_size=recv_size,
    )


async def _send(opener, host, port, program, facility, priority, messages):
    async with await opener(host, port, program) as client:
        for text in messages:
            await client.send(facility, priority, text)


@cli.command(short_help="Sends messages to a collector.")
@click.option(
    "--transport",
    type=click.Choice(["udp", "tcp"]),
    default="udp",
    show_default=True,
    help="Which transport to deliver the messages over.",
)
@click.option(
    "--host",
    default="localhost",
    metavar="HOST",
    show_default=True,
    help="The collector to send to.",
)
@click.option(
    "--port",
    type=int,
    default=514,
    metavar="PORT",
    show_default=True,
    help="The port the collector listens on.",
)
@click.option(
    "--program",
    default="sysline",
    show_default=True,
    help="The program name to tag each message with.",
)
@click.option(
    "--facility",
    type=click.Choice([f.value for f in Facility]),
    default=Facility.user.value,
    show_default=True,
)
@click.option(
    "--priority",
    type=click.Choice([p.name for p in Priority]),
    default=Priority.info.name,
    show_default=True,
)
@click.argument("messages", nargs=-1, required=True)
def send(transport, host, port, program, facility, priority, messages):
    """
    Sends each MESSAGE, in order, to a collector.
    """
    opener = open_udp_client if transport == "udp" else open_tcp_client

    try:
        trio.run(
            _send,
            opener,
            host,
            port,
            program,
            Facility(facility),
            Priority[priority],
            messages,
        )
    except (ChannelError, TransportError, ValueError) as exc:
        raise click.ClickException(str(exc))
