"""
Multiplexing of the channel sockets into a single duplex message stream.

Each socket is read by its own listener task, and every decoded message is
tagged with the name of the channel it arrived on before being handed to the
subscribers. Outgoing messages name their channel and are routed to the
matching socket, after the session header fields have been folded in.

Once the transport is up, nothing that goes wrong with a single message stops
the stream: routing, codec and send errors are logged and the message is
dropped. Only `dispose` closes the sockets.
"""

import asyncio
import dataclasses
import inspect
import logging
from enum import Enum, auto
from typing import Any, AsyncIterator, Callable, Mapping

import zmq
import zmq.asyncio

from kernelmux.channels import Channel, parse_channel
from kernelmux.config import ConnectionInfo, load_connection_info
from kernelmux.header import HeaderFiller, make_header_filler, enrich_header
from kernelmux.result import Ok, Error
from kernelmux.sockets import SocketSet, create_socket_set, close_sockets
from kernelmux.wire import Codec, Message, WireCodec, as_message

Handler = Callable[[Message], Any]

class State(Enum):
    """
    Lifecycle of a MainChannel. DISPOSED is terminal.
    """
    ACTIVE = auto()
    DISPOSED = auto()

# Marks the end of the stream in iterator queues
_END = object()

def _describe(message) -> str:
    """
    Short identification of a message for log lines
    """
    if isinstance(message, Message):
        return f'{message.msg_type!r} {message.msg_id!r}'
    return repr(message)

class Subscription:
    """
    Registration of a handler on a MainChannel
    """
    def __init__(self, handlers: list[Handler], handler: Handler):
        self._handlers = handlers
        self.handler = handler

    def unsubscribe(self) -> None:
        """Stop receiving messages. Safe to call several times."""
        if self.handler in self._handlers:
            self._handlers.remove(self.handler)

class MainChannel:
    """
    Duplex stream over a set of channel sockets.

    The channel takes exclusive ownership of the sockets. It must be created
    from within a running event loop, as listener and sender tasks are started
    immediately.

    Args:
        sockets: one socket per channel, keyed by channel or channel name
        header: session fields to impose on outgoing headers, a new session
            for the current user if not given
        codec: wire codec, defaults to an unsigned Jupyter wire codec
    """
    def __init__(self, sockets: Mapping[Channel | str, zmq.asyncio.Socket],
            header: HeaderFiller | None = None, codec: Codec | None = None):
        self._sockets: SocketSet = {
                Channel(name): socket for name, socket in sockets.items()
                }
        self.header = header or make_header_filler()
        self.codec = codec or WireCodec()
        self.state = State.ACTIVE

        self._handlers: list[Handler] = []
        self._iterators: list[asyncio.Queue] = []
        self._outgoing: dict[Channel, asyncio.Queue] = {
                channel: asyncio.Queue() for channel in self._sockets
                if channel.can_send
                }

        self._tasks: list[asyncio.Task] = []
        for channel, socket in self._sockets.items():
            self._tasks.append(asyncio.create_task(
                self._listen(channel, socket), name=f'listen-{channel}'
                ))
        for channel, queue in self._outgoing.items():
            self._tasks.append(asyncio.create_task(
                self._process_outgoing(channel, queue), name=f'send-{channel}'
                ))

    @property
    def channels(self) -> list[Channel]:
        """Channels backed by a socket"""
        return list(self._sockets)

    @property
    def disposed(self) -> bool:
        """Whether dispose was called"""
        return self.state is State.DISPOSED

    # Outgoing
    # ========

    def _route(self, message) -> tuple[Channel, Message] | None:
        """
        Resolve the channel of an outgoing message, or log why it can't be sent
        """
        if message is None:
            logging.warning('Message sent without a channel: %r', message)
            return None
        try:
            msg = as_message(message)
        except (TypeError, ValueError) as exc:
            logging.warning('Dropping malformed message %r: %s', message, exc)
            return None

        if not msg.channel:
            logging.warning('Message sent without a channel: %s', _describe(msg))
            return None

        channel = parse_channel(msg.channel)
        if channel is None or channel not in self._sockets:
            logging.warning('Channel %r not understood for message %s',
                    msg.channel, _describe(msg))
            return None

        if not channel.can_send:
            logging.error('Cannot send on receive-only channel %s, dropping %s',
                    channel, _describe(msg))
            return None

        return channel, msg

    async def _deliver(self, channel: Channel, msg: Message) -> bool:
        """
        Enrich, encode and send a routed message. Never raises.
        """
        if self.disposed:
            logging.warning('Channels disposed, dropping %s', _describe(msg))
            return False

        outgoing = dataclasses.replace(msg,
                header=enrich_header(msg.header, self.header))
        try:
            frames = self.codec.encode(outgoing)
            await self._sockets[channel].send_multipart(frames)
        except Exception: # pylint: disable=broad-exception-caught
            # Any codec or socket failure only affects this message
            logging.exception('Error sending message on %s: %s',
                    channel, _describe(msg))
            return False
        logging.debug('-> %s %s', channel, _describe(msg))
        return True

    async def _process_outgoing(self, channel: Channel, queue: asyncio.Queue):
        """
        Sends queued messages of one channel, in order
        """
        while True:
            msg = await queue.get()
            try:
                await self._deliver(channel, msg)
            finally:
                queue.task_done()

    def push(self, message: Message | Mapping) -> None:
        """
        Queue a message for sending on the channel it names.

        Never raises: messages that cannot be routed, or are pushed after
        disposal, are logged and dropped.
        """
        if self.disposed:
            logging.warning('Channels disposed, dropping %s', _describe(message))
            return
        routed = self._route(message)
        if routed is None:
            return
        channel, msg = routed
        self._outgoing[channel].put_nowait(msg)

    async def send(self, message: Message | Mapping) -> bool:
        """
        Send a message immediately, bypassing the queue.

        Returns:
            whether the message was handed to the socket
        """
        if self.disposed:
            logging.warning('Channels disposed, dropping %s', _describe(message))
            return False
        routed = self._route(message)
        if routed is None:
            return False
        return await self._deliver(*routed)

    async def flush(self) -> None:
        """
        Wait until all pushed messages have been processed
        """
        await asyncio.gather(*(queue.join() for queue in self._outgoing.values()))

    # Incoming
    # ========

    async def _listen(self, channel: Channel, socket: zmq.asyncio.Socket):
        """
        Receive loop of a single socket
        """
        while True:
            try:
                frames = await socket.recv_multipart()
            except zmq.ZMQError as exc:
                if not self.disposed:
                    logging.error('Stopped receiving on %s: %s', channel, exc)
                return
            await self._on_frames(channel, frames)

    async def _on_frames(self, channel: Channel, frames: list[bytes]) -> None:
        """
        Decode, tag and publish one incoming message
        """
        if self.disposed:
            return

        try:
            result = self.codec.decode(frames)
        except Exception: # pylint: disable=broad-exception-caught
            logging.exception('Error decoding message on %s', channel)
            return

        match result:
            case Ok(Message() as message):
                pass
            case Error() as err:
                logging.error('Dropping invalid message on %s: %s', channel, err)
                return
            case _:
                logging.error('Codec returned unexpected %r on %s', result, channel)
                return

        message.channel = channel.value
        logging.debug('<- %s %s', channel, _describe(message))
        await self._publish(message)

    async def _publish(self, message: Message) -> None:
        for handler in list(self._handlers):
            if self.disposed:
                return
            try:
                ret = handler(message)
                if inspect.isawaitable(ret):
                    await ret
            except Exception: # pylint: disable=broad-exception-caught
                logging.exception('Handler %r failed on message %s', handler,
                        _describe(message))

    def subscribe(self, handler: Handler) -> Subscription:
        """
        Call handler on every incoming message.

        Handlers can be plain functions or coroutine functions. Messages of a
        given channel are handled one at a time, in arrival order.
        """
        self._handlers.append(handler)
        return Subscription(self._handlers, handler)

    async def messages(self) -> AsyncIterator[Message]:
        """
        Iterate over incoming messages, until the channels are disposed
        """
        if self.disposed:
            return
        queue: asyncio.Queue = asyncio.Queue()
        subscription = self.subscribe(queue.put_nowait)
        self._iterators.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    return
                yield item
        finally:
            subscription.unsubscribe()
            if queue in self._iterators:
                self._iterators.remove(queue)

    # Lifecycle
    # =========

    def dispose(self) -> None:
        """
        Stop all tasks and close all sockets.

        Idempotent. Afterwards, pushes are dropped and no more messages are
        published.
        """
        if self.disposed:
            return
        self.state = State.DISPOSED

        for task in self._tasks:
            task.cancel()
        close_sockets(self._sockets.values())

        # Unblock flush()
        for queue in self._outgoing.values():
            while not queue.empty():
                queue.get_nowait()
                queue.task_done()

        self._handlers.clear()
        for queue in self._iterators:
            queue.put_nowait(_END)

        logging.info('Closed kernel channels (session %s)', self.header.session)

    async def aclose(self) -> None:
        """
        Dispose, then wait for the background tasks to be done
        """
        self.dispose()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.dispose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

def create_main_channel_from_sockets(sockets: Mapping[Channel | str, zmq.asyncio.Socket],
        header: HeaderFiller | None = None,
        codec: Codec | None = None) -> MainChannel:
    """
    Wrap an existing set of sockets into a duplex stream
    """
    return MainChannel(sockets, header, codec)

async def connect(info: ConnectionInfo | Mapping, subscription: str | bytes = b'',
        identity: str | bytes | None = None, header: HeaderFiller | None = None,
        codec: Codec | None = None,
        ctx: zmq.asyncio.Context | None = None) -> MainChannel:
    """
    Create the sockets of all channels and multiplex them.

    Args:
        info: connection information, or an equivalent mapping
        subscription: iopub topic filter, everything by default
        identity: routing identity of the bidirectional sockets, random by
            default
        header: session fields for outgoing messages, a new session for the
            current user by default
        codec: wire codec, by default signing with the key and scheme of info
        ctx: ØMQ context, the global asyncio context by default

    Raises:
        ConfigError: on invalid connection info or missing ports
        SocketError: if any socket cannot be created, in which case no socket
            is left open
    """
    info = load_connection_info(info)
    codec = codec or WireCodec.from_connection_info(info)
    sockets = await create_socket_set(info, subscription, identity, ctx)
    logging.info('Connected kernel channels over %s://%s', info.transport, info.ip)
    return create_main_channel_from_sockets(sockets, header, codec)
