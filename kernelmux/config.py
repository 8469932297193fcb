"""
Utils for managing kernel connection information.

The connection information is the content of a Jupyter connection file: where
the kernel sockets live, and how messages are signed.
"""

import logging
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, NonNegativeInt, ValidationError

from kernelmux.channels import Channel

class ConfigError(Exception):
    """
    The given configuration is invalid
    """

class ConnectionInfo(BaseModel):
    """
    Immutable description of how to reach a kernel.

    A port of 0 means the port is absent. This is only an error when the
    corresponding channel is actually used.

    Attributes:
        transport: 'tcp' for network sockets, 'ipc' for local-only sockets
        ip: address, or path prefix for ipc
        key: shared secret used to sign messages, empty to disable signing
        signature_scheme: name of the signing algorithm, e.g. 'hmac-sha256'
    """
    model_config = ConfigDict(frozen=True, extra='ignore')

    transport: Literal['tcp', 'ipc'] = 'tcp'
    ip: str = '127.0.0.1'
    key: str = ''
    signature_scheme: str = 'hmac-sha256'

    shell_port: NonNegativeInt = 0
    control_port: NonNegativeInt = 0
    stdin_port: NonNegativeInt = 0
    iopub_port: NonNegativeInt = 0
    hb_port: NonNegativeInt = 0

    version: int | None = None
    kernel_name: str | None = None

    def port(self, channel: Channel | str) -> int:
        """
        Port number for a channel, 0 if not configured
        """
        return getattr(self, f'{channel}_port', 0) or 0

def load_connection_info(config: Mapping | ConnectionInfo) -> ConnectionInfo:
    """
    Validate a connection mapping.

    Raises:
        ConfigError: on any validation failure
    """
    if isinstance(config, ConnectionInfo):
        return config
    try:
        return ConnectionInfo.model_validate(config)
    except ValidationError as exc:
        raise ConfigError(f'Invalid connection info: {exc}') from exc

def load_connection_file(path) -> ConnectionInfo:
    """
    Read and validate a Jupyter connection file
    """
    try:
        with open(path, 'rb') as fd:
            data = fd.read()
    except OSError as exc:
        raise ConfigError(f'Cannot read connection file {path}: {exc}') from exc

    try:
        info = ConnectionInfo.model_validate_json(data)
    except ValidationError as exc:
        raise ConfigError(f'Invalid connection file {path}: {exc}') from exc

    logging.info('Loaded connection file %s (%s://%s)', path,
            info.transport, info.ip)
    return info
