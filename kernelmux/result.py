"""
Tagged return values for operations that fail on bad input rather than on bugs
"""

import logging
import traceback
from dataclasses import dataclass
from typing import TypeAlias, Generic, TypeVar, Callable, NoReturn
from typing_extensions import Self

OkT = TypeVar('OkT', covariant=True) # pylint: disable=typevar-name-incorrect-variance
R = TypeVar('R')

@dataclass(frozen=True)
class Ok(Generic[OkT]):
    """
    Successful result
    """
    value: OkT

    def then(self, function: Callable[[OkT], R]) -> R:
        """Apply function to the wrapped value"""
        return function(self.value)

    def unwrap(self) -> OkT:
        """Wrapped value"""
        return self.value

class Error(Exception):
    """
    Failure meant to be returned rather than raised.

    Records where it was created so that logging it later still points to the
    origin of the problem. Inherits Exception only so that it can be raised by
    `unwrap` callers that prefer exceptions.
    """
    reason: str
    stack_summary: list[traceback.FrameSummary]

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
        self.stack_summary = traceback.extract_stack()[:-1]

    def then(self, _function) -> Self:
        """Propagate self"""
        return self

    def unwrap(self) -> NoReturn:
        """Raise self"""
        logging.error('Unwrap failed: %s', self.reason)
        raise self

    def __str__(self):
        return self.reason

    def format_origin(self) -> str:
        """
        Stack at creation time, followed by the error itself
        """
        return ''.join(traceback.format_list(self.stack_summary) + [
            f'{self.__class__.__module__}.{self.__class__.__qualname__}: {self.reason}'
            ])

Result: TypeAlias = Ok[OkT] | Error
