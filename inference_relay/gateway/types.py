"""Core types and DTOs for the relay layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    """Uniform error taxonomy shared by the gateway and the relay client."""

    BAD_REQUEST = "BadRequest"
    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "NotFound"
    METHOD_NOT_ALLOWED = "MethodNotAllowed"
    UNSUPPORTED_MEDIA_TYPE = "UnsupportedMediaType"
    RATE_LIMITED = "RateLimited"
    UPSTREAM_FAILURE = "UpstreamFailure"
    UNEXPECTED_UPSTREAM_FORMAT = "UnexpectedUpstreamFormat"
    CANCELLED = "Cancelled"
    INTERNAL_ERROR = "InternalError"

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES[self]


ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.METHOD_NOT_ALLOWED: 405,
    ErrorKind.UNSUPPORTED_MEDIA_TYPE: 415,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.CANCELLED: 499,  # client closed request
    ErrorKind.UNEXPECTED_UPSTREAM_FORMAT: 500,
    ErrorKind.INTERNAL_ERROR: 500,
    ErrorKind.UPSTREAM_FAILURE: 502,  # text and image alike
}


class Sender(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    AGENT = "agent"


class Intent(str, Enum):
    """Which generation path a chat message should take."""

    CHAT = "chat"
    IMAGE = "image"


class AttemptStatus(str, Enum):
    """Classification of a single upstream attempt."""

    SUCCESS = "success"
    TRANSIENT = "transient"  # network error, timeout, non-2xx without a permanent marker
    MALFORMED = "malformed"  # 2xx whose body did not match the expected shape
    PERMANENT = "permanent"  # upstream said the input itself is wrong


# ---------------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatTurn:
    """One prior turn of the conversation, oldest first."""

    sender: Sender
    text: str


@dataclass(frozen=True)
class GenerationParams:
    """Fixed generation parameters sent with every text call."""

    max_new_tokens: int = 512
    temperature: float = 0.7
    return_full_text: bool = False  # don't echo the prompt back
    wait_for_model: bool = True

    def to_payload(self) -> dict:
        return {
            "parameters": {
                "max_new_tokens": self.max_new_tokens,
                "temperature": self.temperature,
                "return_full_text": self.return_full_text,
            },
            "options": {"wait_for_model": self.wait_for_model},
        }


# ---------------------------------------------------------------------------
# Upstream side
# ---------------------------------------------------------------------------


@dataclass
class AttemptOutcome:
    """Result of exactly one upstream HTTP call."""

    status: AttemptStatus
    text: str = ""
    image: bytes = b""
    mime_type: str = ""
    detail: str = ""
    status_code: int = 0  # 0 when no HTTP response was received

    @property
    def retryable(self) -> bool:
        return self.status in (AttemptStatus.TRANSIENT, AttemptStatus.MALFORMED)


@dataclass
class UpstreamResult:
    """Normalized outcome of a relay call (after retries).

    Exactly one of ``response``, ``image`` or ``error`` is set.
    """

    response: str | None = None
    image: bytes | None = None
    mime_type: str = ""
    error: ErrorKind | None = None
    detail: str = ""
    attempts: int = 0

    @classmethod
    def text(cls, response: str, attempts: int = 1) -> UpstreamResult:
        return cls(response=response, attempts=attempts)

    @classmethod
    def picture(cls, image: bytes, mime_type: str, attempts: int = 1) -> UpstreamResult:
        return cls(image=image, mime_type=mime_type, attempts=attempts)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str, attempts: int = 0) -> UpstreamResult:
        return cls(error=error, detail=detail, attempts=attempts)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RetryConfig:
    """Bounds for the upstream retry loop."""

    max_attempts: int = 3  # total, including the first call
    base_delay: float = 0.5  # seconds
    max_delay: float = 4.0  # cap on a single delay


@dataclass(frozen=True)
class UpstreamConfig:
    """Connection settings for the inference API."""

    base_url: str
    api_key: str = ""
    image_model_id: str = ""
    timeout_seconds: float = 60.0
    generation: GenerationParams = field(default_factory=GenerationParams)
    retry: RetryConfig = field(default_factory=RetryConfig)

    def model_url(self, model_id: str) -> str:
        return f"{self.base_url.rstrip('/')}/{model_id.lstrip('/')}"
