"""
Fixtures: ØMQ contexts, connection information and sockets standing in for a
kernel, plus in-memory fake sockets for tests that do not need real I/O.
"""
import asyncio
import logging
import os
import shutil
import tempfile

import pytest

import zmq
import zmq.asyncio

from kernelmux.channels import Channel
from kernelmux.config import ConnectionInfo
from kernelmux.endpoints import format_endpoint
from kernelmux.wire import WireCodec

# pylint: disable=redefined-outer-name

@pytest.fixture
def async_ctx():
    """The ØMQ context, asyncio flavor"""
    ctx = zmq.asyncio.Context()
    yield ctx
    # Tests may leave messages in the pipes, don't wait for them
    logging.info('Now destroying context...')
    ctx.destroy(linger=1)
    logging.info('Done')

@pytest.fixture
def ipc_info():
    """
    Connection information for ipc sockets in a fresh temporary directory.

    Uses a short path since ipc endpoints have a small length limit.
    """
    dirpath = tempfile.mkdtemp(prefix='kmux-')
    yield ConnectionInfo(
            transport='ipc', ip=os.path.join(dirpath, 'kernel'),
            key='a0436f6c-1916-498b-8eb9-e81ab9368e84',
            shell_port=1, control_port=2, stdin_port=3, iopub_port=4,
            hb_port=5
            )
    shutil.rmtree(dirpath, ignore_errors=True)

@pytest.fixture
def kernel_codec(ipc_info):
    """Codec using the same key as the connection"""
    return WireCodec.from_connection_info(ipc_info)

@pytest.fixture
def kernel_sockets(async_ctx, ipc_info):
    """
    Sockets playing the role of the kernel, connected to the channel
    endpoints: a PUB for iopub and ROUTERs for the others.
    """
    sockets = {}
    for channel in Channel:
        if channel is Channel.IOPUB:
            socket = async_ctx.socket(zmq.PUB)
        else:
            socket = async_ctx.socket(zmq.ROUTER)
        socket.connect(format_endpoint(ipc_info, channel))
        sockets[channel] = socket

    yield sockets

    for socket in sockets.values():
        socket.close(linger=1)

class FakeSocket:
    """
    In-memory replacement for an asyncio ØMQ socket.

    Frames put in `incoming` are returned by recv_multipart, even after the
    socket was closed.
    """
    def __init__(self):
        self.sent: list[list[bytes]] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.close_count = 0
        self.fail_send = False

    async def send_multipart(self, frames):
        if self.fail_send:
            raise zmq.ZMQError(zmq.EAGAIN)
        self.sent.append(frames)

    async def recv_multipart(self):
        return await self.incoming.get()

    def close(self, linger=None): # pylint: disable=unused-argument
        self.close_count += 1

class RecordingCodec(WireCodec):
    """
    Unsigned wire codec keeping a copy of every message it encodes
    """
    def __init__(self):
        super().__init__()
        self.encoded = []

    def encode(self, message):
        self.encoded.append(message)
        return super().encode(message)

@pytest.fixture
def fake_sockets():
    """One fake socket per channel"""
    return {channel: FakeSocket() for channel in Channel}

@pytest.fixture
def recording_codec():
    """Codec recording encoded messages"""
    return RecordingCodec()
