"""
Session and identity fields folded into every outgoing message header
"""

import os
import uuid
from dataclasses import dataclass, asdict
from typing import Mapping

USERNAME_VARIABLES = ('LOGNAME', 'USER', 'LNAME', 'USERNAME')

# Same fallback as the classic notebook
DEFAULT_USERNAME = 'username'

def get_username(environ: Mapping[str, str] | None = None) -> str:
    """
    Login name of the current user, from the usual environment variables
    """
    environ = os.environ if environ is None else environ
    for var in USERNAME_VARIABLES:
        name = environ.get(var)
        if name:
            return name
    return DEFAULT_USERNAME

def new_session_id() -> str:
    """Fresh unique session identifier"""
    return str(uuid.uuid4())

@dataclass(frozen=True)
class HeaderFiller:
    """
    The header fields imposed on outgoing messages

    Attributes:
        session: session id, unique per connection
        username: identity of the user sending the messages
    """
    session: str
    username: str

def make_header_filler(session: str | None = None,
        username: str | None = None) -> HeaderFiller:
    """
    Create a header filler, generating defaults for missing fields
    """
    return HeaderFiller(
            session=session or new_session_id(),
            username=username or get_username()
            )

def enrich_header(header: Mapping | None, filler: HeaderFiller) -> dict:
    """
    Returns a copy of header with session and username from filler.

    The filler wins over any session or username already in header, other
    fields are kept unchanged.
    """
    return {**(header or {}), **asdict(filler)}
