"""
Endpoint strings for the channel sockets
"""

from kernelmux.channels import Channel
from kernelmux.config import ConnectionInfo, ConfigError

def format_endpoint(info: ConnectionInfo, channel: Channel | str) -> str:
    """
    Build the ØMQ endpoint of a channel.

    tcp endpoints look like `tcp://127.0.0.1:5555`, while ipc endpoints append
    the port to the path with a dash, `ipc:///tmp/kernel-5555`.

    Raises:
        ConfigError: if the connection info has no port for the channel
    """
    port = info.port(channel)
    if not port:
        raise ConfigError(f'Port not found for channel "{channel}"')
    delimiter = ':' if info.transport == 'tcp' else '-'
    return f'{info.transport}://{info.ip}{delimiter}{port}'
