"""Trade review error types.

Only structural problems are raised. Data-quality conditions (time skew,
implausible fills, dropped trade records, indicator gaps) are reported as
flags, omissions or counters inside a successful result.
"""

from __future__ import annotations

from enum import Enum


class ReviewErrorCode(Enum):
    """Error classification codes."""

    MALFORMED_TIMESTAMP = "malformed_timestamp"
    MALFORMED_BAR = "malformed_bar"
    INVALID_RANGE = "invalid_range"
    UNKNOWN_INSTRUMENT = "unknown_instrument"
    SOURCE_ERROR = "source_error"


class ReviewError(Exception):
    """Trade review exception with error code.

    Attributes:
        message: Human-readable error description.
        code: Structured error code for programmatic handling.
        instrument: Instrument the failure belongs to, when known.
    """

    default_code = ReviewErrorCode.SOURCE_ERROR

    def __init__(
        self,
        message: str,
        code: ReviewErrorCode | None = None,
        instrument: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.instrument = instrument


class MalformedTimestamp(ReviewError):
    """A source timestamp could not be read under any supported encoding."""

    default_code = ReviewErrorCode.MALFORMED_TIMESTAMP


class MalformedBar(ReviewError):
    """A bar row has a missing/non-finite OHLCV value or a bad timestamp."""

    default_code = ReviewErrorCode.MALFORMED_BAR


class InvalidRange(ReviewError):
    default_code = ReviewErrorCode.INVALID_RANGE


class UnknownInstrument(ReviewError):
    default_code = ReviewErrorCode.UNKNOWN_INSTRUMENT


class SourceError(ReviewError):
    """The row source could not be read."""

    default_code = ReviewErrorCode.SOURCE_ERROR
