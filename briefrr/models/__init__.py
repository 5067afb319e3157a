"""Session, rate limit and channel message models"""

from .messages import (
    GenerationRequest, ChunkMessage, DoneMessage, ErrorMessage,
    StreamMessage, parse_stream_message
)
from .rate_limit import RateLimitState, GateDecision, DenyReason
from .session import (
    Mode, SessionStatus, SettledOutcome, SessionState,
    ArticleContent, ClassifiedFailure, FailureKind, CancellationToken
)

__all__ = [
    "GenerationRequest", "ChunkMessage", "DoneMessage", "ErrorMessage",
    "StreamMessage", "parse_stream_message",
    "RateLimitState", "GateDecision", "DenyReason",
    "Mode", "SessionStatus", "SettledOutcome", "SessionState",
    "ArticleContent", "ClassifiedFailure", "FailureKind", "CancellationToken"
]
