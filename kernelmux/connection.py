"""
Plain connect/send/subscribe facade over the multiplexed channels, for
session objects that should not deal with the stream itself.
"""

import logging
from typing import Mapping

from kernelmux.config import ConnectionInfo
from kernelmux.multiplexer import MainChannel, Handler, Subscription, connect
from kernelmux.wire import Message

class JMPConnection:
    """
    Connection to a kernel over the Jupyter messaging protocol.

    Sending or subscribing before `connect` does nothing.
    """
    def __init__(self):
        self.main_channel: MainChannel | None = None

    async def connect(self, info: ConnectionInfo | Mapping, session_id: str) -> None:
        """
        Bind all channel sockets, using session_id as the routing identity
        of the bidirectional sockets
        """
        if self.main_channel is not None:
            logging.warning('Already connected, replacing previous channels')
            self.main_channel.dispose()
        self.main_channel = await connect(info, identity=session_id)

    def send_message(self, message: Message | Mapping) -> None:
        """Queue message on the channel it names"""
        if self.main_channel is not None:
            self.main_channel.push(message)

    def subscribe(self, handler: Handler) -> Subscription | None:
        """Call handler on every incoming message"""
        if self.main_channel is not None:
            return self.main_channel.subscribe(handler)
        return None

    def dispose(self) -> None:
        """Close all sockets"""
        if self.main_channel is not None:
            self.main_channel.dispose()
