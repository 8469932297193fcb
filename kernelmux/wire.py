"""
Jupyter wire format.

A message travels as a list of frames:

    [*idents, b'<IDS|MSG>', signature, header, parent_header, metadata, content, *buffers]

The four dictionaries are JSON documents, and the signature is the hex HMAC of
these four frames. Idents are a routing artifact of the ØMQ patterns and are
never exposed to the application.
"""

import hmac
import hashlib
from dataclasses import dataclass, field
from typing import Protocol, Mapping, Any

from pydantic_core import to_json, from_json, PydanticSerializationError

from kernelmux.config import ConfigError, ConnectionInfo
from kernelmux.result import Ok, Error, Result

DELIMITER = b'<IDS|MSG>'

JSON_PARTS = ('header', 'parent_header', 'metadata', 'content')

@dataclass
class Message:
    """
    A kernel message, as seen by the application

    Attributes:
        channel: name of the channel the message came from, or should be sent
            to. Used only for routing, never serialized.
    """
    header: dict = field(default_factory=dict)
    parent_header: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    content: dict = field(default_factory=dict)
    buffers: list[bytes] = field(default_factory=list)
    channel: str | None = None

    @property
    def msg_id(self) -> str | None:
        """Message id from the header, if any"""
        return self.header.get('msg_id')

    @property
    def msg_type(self) -> str | None:
        """Message type from the header, if any"""
        return self.header.get('msg_type')

    @classmethod
    def from_mapping(cls, obj: Mapping[str, Any]) -> 'Message':
        """
        Build a message from a dict-like object with the same keys
        """
        return cls(
            header=dict(obj.get('header') or {}),
            parent_header=dict(obj.get('parent_header') or {}),
            metadata=dict(obj.get('metadata') or {}),
            content=dict(obj.get('content') or {}),
            buffers=list(obj.get('buffers') or []),
            channel=obj.get('channel'),
            )

def as_message(obj: 'Message | Mapping[str, Any]') -> Message:
    """
    Accept either a Message or a mapping

    Raises:
        TypeError: for anything else
    """
    if isinstance(obj, Message):
        return obj
    if isinstance(obj, Mapping):
        return Message.from_mapping(obj)
    raise TypeError(f'Not a message: {type(obj).__name__}')

class DecodeError(Error):
    """
    A list of frames could not be read as a message
    """

class EncodeError(Exception):
    """
    A message could not be serialized
    """

class Codec(Protocol):
    """
    Conversion between messages and frame lists
    """
    def encode(self, message: Message) -> list[bytes]:
        """Serialize message, may raise"""

    def decode(self, frames: list[bytes]) -> Result[Message]:
        """Parse frames, returns a DecodeError on invalid input"""

def _digest_name(signature_scheme: str) -> str:
    """
    Extract and check the hash name from a scheme like 'hmac-sha256'
    """
    prefix, _, name = signature_scheme.partition('-')
    if prefix != 'hmac' or not name:
        raise ConfigError(f'Unsupported signature scheme "{signature_scheme}"')
    try:
        hashlib.new(name)
    except ValueError as exc:
        raise ConfigError(f'Unsupported signature scheme "{signature_scheme}"'
                ) from exc
    return name

class WireCodec:
    """
    Signing codec for the Jupyter wire format.

    Args:
        key: shared secret. If empty, messages are neither signed nor checked.
        signature_scheme: 'hmac-' followed by a hashlib algorithm name
    """
    def __init__(self, key: str | bytes = b'', signature_scheme: str = 'hmac-sha256'):
        try:
            self.key = key.encode('utf8') if isinstance(key, str) else key
        except UnicodeEncodeError as exc:
            raise ConfigError(f'Key cannot be encoded: {exc}') from exc
        self.signature_scheme = signature_scheme
        self.digest_name = _digest_name(signature_scheme)

    @classmethod
    def from_connection_info(cls, info: ConnectionInfo) -> 'WireCodec':
        """Codec using the key and scheme of a connection"""
        return cls(info.key, info.signature_scheme)

    def sign(self, parts: list[bytes]) -> bytes:
        """
        Hex signature of the serialized dictionaries
        """
        if not self.key:
            return b''
        mac = hmac.new(self.key, digestmod=self.digest_name)
        for part in parts:
            mac.update(part)
        return mac.hexdigest().encode('ascii')

    def encode(self, message: Message) -> list[bytes]:
        """
        Serialize and sign a message

        Raises:
            EncodeError: if a part is not JSON-serializable
        """
        parts = []
        for name in JSON_PARTS:
            try:
                parts.append(to_json(getattr(message, name)))
            except PydanticSerializationError as exc:
                raise EncodeError(f'Cannot serialize {name}: {exc}') from exc
        return [DELIMITER, self.sign(parts), *parts, *message.buffers]

    def decode(self, frames: list[bytes]) -> Result[Message]:
        """
        Parse and check a list of frames. Idents before the delimiter are
        dropped.
        """
        try:
            start = frames.index(DELIMITER) + 1
        except ValueError:
            return DecodeError('Missing message delimiter')

        if len(frames) - start < 1 + len(JSON_PARTS):
            return DecodeError('Too few frames after delimiter')
        signature, *parts = frames[start:]
        json_frames = parts[:len(JSON_PARTS)]
        buffers = parts[len(JSON_PARTS):]

        if self.key and not hmac.compare_digest(
                bytes(signature), self.sign(json_frames)):
            return DecodeError('Invalid signature')

        docs = {}
        for name, frame in zip(JSON_PARTS, json_frames):
            try:
                doc = from_json(frame)
            except ValueError as exc:
                return DecodeError(f'Invalid JSON in {name}: {exc}')
            if not isinstance(doc, dict):
                return DecodeError(f'Expected an object in {name}')
            docs[name] = doc

        return Ok(Message(**docs, buffers=[bytes(buf) for buf in buffers]))
