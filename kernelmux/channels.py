"""
The fixed set of kernel channels and the socket pattern each one uses.
"""

from enum import Enum

import zmq

class SocketPattern(Enum):
    """
    The two socket patterns used by the channels
    """
    # Broadcast, receive-only
    SUBSCRIBE = zmq.SUB # pylint: disable=no-member
    # Bidirectional, carries the routing identity
    DEALER = zmq.DEALER # pylint: disable=no-member

class Channel(str, Enum):
    """
    A logical sub-stream of the kernel connection, backed by its own socket
    """
    SHELL = 'shell'
    CONTROL = 'control'
    STDIN = 'stdin'
    IOPUB = 'iopub'

    def __str__(self):
        return self.value

    @property
    def pattern(self) -> SocketPattern:
        """Socket pattern backing the channel"""
        if self is Channel.IOPUB:
            return SocketPattern.SUBSCRIBE
        return SocketPattern.DEALER

    @property
    def can_send(self) -> bool:
        """Whether messages can be sent on this channel"""
        return self.pattern is SocketPattern.DEALER

def parse_channel(value) -> Channel | None:
    """
    Interpret value as a channel name.

    Returns None for anything that is not one of the known channels, including
    empty strings and non-string values.
    """
    if isinstance(value, Channel):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return Channel(value)
    except ValueError:
        return None
