"""
HMAC request signing for the Coupang Partners API.

The partner API authenticates every call with a single-line credential::

    CEA algorithm=HmacSHA256, access-key={ak}, signed-date={ts}, signature={hex}

where ``signature`` is the lowercase hex HMAC-SHA256 of the canonical message
``{ts}{METHOD}{path}{query}`` keyed by the secret key. The receiving side
parses the header positionally and rebuilds the message from the request it
received, so both the header layout and the message bytes are a wire
contract:

- ``ts`` is generated per call and must be identical in message and header.
- ``query`` is appended exactly as it appears on the wire (same
  percent-encoding), without the leading ``?``, and is omitted entirely when
  the call carries no query.

Usage:
    signer = Signer()
    credential = signer.sign("GET", SEARCH_PATH, "keyword=laptop&limit=2", ak, sk)
    headers = {"Authorization": credential.authorization_header}

    # Deterministic signing for tests
    signer = Signer(clock=lambda: datetime(2025, 1, 17, 12, 34, 56, tzinfo=timezone.utc))
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from partners_gateway.logging_config import get_logger, mask_secret

logger = get_logger(__name__)

SCHEME = "CEA"
ALGORITHM = "HmacSHA256"
FIELD_SEPARATOR = ", "

Clock = Callable[[], datetime]


class TimestampFormat(str, Enum):
    """Fixed text layouts for the signed timestamp.

    Both are compact UTC with seconds precision and a trailing ``Z``; they
    differ only in whether the two-digit century is kept.
    """

    SHORT = "short"  # 250117T123456Z
    LONG = "long"  # 20250117T123456Z

    @property
    def strftime_pattern(self) -> str:
        if self is TimestampFormat.LONG:
            return "%Y%m%dT%H%M%SZ"
        return "%y%m%dT%H%M%SZ"

    @classmethod
    def parse(cls, value: str | "TimestampFormat") -> "TimestampFormat":
        if isinstance(value, TimestampFormat):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown timestamp format {value!r}; expected one of "
                f"{', '.join(f.value for f in cls)}"
            ) from None


@dataclass(frozen=True)
class SigningContext:
    """Everything needed to sign one upstream call."""

    method: str
    canonical_path: str
    canonical_query: Optional[str]
    access_key: str
    secret_key: str

    def __post_init__(self) -> None:
        if "?" in self.canonical_path:
            raise ValueError("canonical_path must not contain a query string")

    def __repr__(self) -> str:
        return (
            f"SigningContext(method={self.method!r}, canonical_path={self.canonical_path!r}, "
            f"canonical_query={self.canonical_query!r}, access_key={mask_secret(self.access_key)!r}, "
            f"secret_key='***')"
        )


@dataclass(frozen=True)
class SignedCredential:
    """Authorization header plus the timestamp it was signed with.

    Valid for a single request only; never cache or reuse one.
    """

    authorization_header: str
    signed_timestamp: str

    def __repr__(self) -> str:
        return f"SignedCredential(signed_timestamp={self.signed_timestamp!r}, authorization_header='***')"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime, fmt: TimestampFormat = TimestampFormat.SHORT) -> str:
    """Render ``moment`` in the signed-date layout. Naive datetimes are UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(fmt.strftime_pattern)


def canonical_message(timestamp: str, method: str, path: str, query: Optional[str] = None) -> str:
    """Build the exact string that gets hashed.

    ``query=None`` and ``query=""`` both mean "no query component".
    """
    message = timestamp + method.upper() + path
    if query:
        message += query
    return message


def compute_signature(secret_key: str, message: str) -> str:
    """Lowercase hex HMAC-SHA256 of ``message`` keyed by ``secret_key``."""
    return hmac.new(
        secret_key.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def build_authorization_header(access_key: str, timestamp: str, signature: str) -> str:
    """Assemble the positional credential string."""
    return FIELD_SEPARATOR.join(
        [
            f"{SCHEME} algorithm={ALGORITHM}",
            f"access-key={access_key}",
            f"signed-date={timestamp}",
            f"signature={signature}",
        ]
    )


class Signer:
    """Builds time-bound credentials for upstream calls.

    Args:
        clock: Zero-argument callable returning the current time. Defaults to
            the system UTC clock; inject a fixed value for deterministic tests.
        timestamp_format: Which signed-date layout to emit.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        timestamp_format: TimestampFormat | str = TimestampFormat.SHORT,
    ):
        self._clock = clock or _utc_now
        self.timestamp_format = TimestampFormat.parse(timestamp_format)

    def sign(
        self,
        method: str,
        canonical_path: str,
        canonical_query: Optional[str],
        access_key: str,
        secret_key: str,
    ) -> SignedCredential:
        """Sign one call. Pure computation; a fresh timestamp is taken each time."""
        return self.sign_context(
            SigningContext(
                method=method,
                canonical_path=canonical_path,
                canonical_query=canonical_query,
                access_key=access_key,
                secret_key=secret_key,
            )
        )

    def sign_context(self, ctx: SigningContext) -> SignedCredential:
        timestamp = format_timestamp(self._clock(), self.timestamp_format)
        message = canonical_message(timestamp, ctx.method, ctx.canonical_path, ctx.canonical_query)
        signature = compute_signature(ctx.secret_key, message)

        logger.debug(
            "Signed upstream request",
            method=ctx.method.upper(),
            path=ctx.canonical_path,
            has_query=bool(ctx.canonical_query),
            signed_date=timestamp,
            access_key=mask_secret(ctx.access_key),
        )

        return SignedCredential(
            authorization_header=build_authorization_header(ctx.access_key, timestamp, signature),
            signed_timestamp=timestamp,
        )


__all__ = [
    "SCHEME",
    "ALGORITHM",
    "TimestampFormat",
    "SigningContext",
    "SignedCredential",
    "Signer",
    "format_timestamp",
    "canonical_message",
    "compute_signature",
    "build_authorization_header",
]
