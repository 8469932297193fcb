"""
Multiplexed ØMQ transport for Jupyter kernel channels
"""

from .channels import Channel
from .config import ConnectionInfo, ConfigError, load_connection_file
from .connection import JMPConnection
from .endpoints import format_endpoint
from .header import HeaderFiller, make_header_filler, get_username
from .multiplexer import MainChannel, connect, create_main_channel_from_sockets
from .sockets import SocketError, create_socket, create_socket_set
from .wire import Message, WireCodec
