"""
Creation of the per-channel ØMQ sockets
"""

import asyncio
import logging
import uuid
from typing import Iterable

import zmq
import zmq.asyncio

from kernelmux.channels import Channel, SocketPattern
from kernelmux.config import ConnectionInfo
from kernelmux.endpoints import format_endpoint

SocketSet = dict[Channel, zmq.asyncio.Socket]

class SocketError(Exception):
    """
    A channel socket could not be created or bound
    """

def new_identity() -> str:
    """Fresh routing identity"""
    return str(uuid.uuid4())

def _as_bytes(value: str | bytes) -> bytes:
    return value.encode('utf8') if isinstance(value, str) else value

async def create_socket(channel: Channel | str, info: ConnectionInfo,
        identity: str | bytes, subscription: str | bytes = b'',
        ctx: zmq.asyncio.Context | None = None) -> zmq.asyncio.Socket:
    """
    Creates and binds the socket of a channel.

    The iopub channel gets a SUB socket subscribed to `subscription`, the
    others get DEALER sockets carrying the routing `identity`.

    Args:
        channel: the channel to create a socket for
        info: connection information
        identity: routing identity, ignored for iopub
        subscription: topic filter, ignored for all but iopub. The default
            empty filter receives everything.
        ctx: ØMQ context, defaults to the global asyncio context

    Raises:
        ConfigError: if the channel has no port
        SocketError: if the socket cannot be created or bound
    """
    channel = Channel(channel)
    # Raises before any resource is allocated
    endpoint = format_endpoint(info, channel)

    ctx = ctx or zmq.asyncio.Context.instance()
    try:
        socket = ctx.socket(channel.pattern.value)
    except zmq.ZMQError as exc:
        raise SocketError(f'Cannot create {channel} socket: {exc}') from exc

    try:
        if channel.pattern is SocketPattern.DEALER:
            socket.setsockopt(zmq.IDENTITY, _as_bytes(identity)) # pylint: disable=no-member
        socket.bind(endpoint)
        if channel.pattern is SocketPattern.SUBSCRIBE:
            socket.setsockopt(zmq.SUBSCRIBE, _as_bytes(subscription)) # pylint: disable=no-member
    except zmq.ZMQError as exc:
        socket.close(linger=0)
        raise SocketError(f'Cannot bind {channel} socket to {endpoint}: {exc}') from exc

    logging.debug('Bound %s socket to %s', channel, endpoint)
    return socket

def close_sockets(sockets: Iterable[zmq.asyncio.Socket]) -> None:
    """
    Close sockets without waiting for pending messages
    """
    for socket in sockets:
        socket.close(linger=0)

async def create_socket_set(info: ConnectionInfo, subscription: str | bytes = b'',
        identity: str | bytes | None = None,
        ctx: zmq.asyncio.Context | None = None) -> SocketSet:
    """
    Creates the sockets of all channels concurrently.

    The bidirectional sockets share the same routing identity, a new one being
    generated if not given.

    Either all sockets are returned, or the first error is raised after
    closing the sockets that were successfully created.
    """
    identity = identity or new_identity()
    channels = list(Channel)

    results = await asyncio.gather(
            *(create_socket(channel, info, identity, subscription, ctx)
                for channel in channels),
            return_exceptions=True
            )

    sockets: SocketSet = {}
    errors: list[BaseException] = []
    for channel, result in zip(channels, results):
        if isinstance(result, BaseException):
            logging.error('Failed to create %s socket: %s', channel, result)
            errors.append(result)
        else:
            sockets[channel] = result

    if errors:
        close_sockets(sockets.values())
        raise errors[0]

    return sockets
