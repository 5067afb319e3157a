"""
Session models and data structures for Briefrr
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Mode(str, Enum):
    """What the user asked for"""
    BRIEF = "brief"      # 5-10 key points
    EXPLAIN = "explain"  # 10-20 points with takeaways
    QUERY = "query"      # Answer a question about the page

    @property
    def label(self) -> str:
        return {
            Mode.BRIEF: "Brief",
            Mode.EXPLAIN: "Explain",
            Mode.QUERY: "Search",
        }[self]

    @property
    def icon(self) -> str:
        return {
            Mode.BRIEF: "⚡",
            Mode.EXPLAIN: "📖",
            Mode.QUERY: "🔍",
        }[self]


class SessionStatus(str, Enum):
    """Session state machine states"""
    IDLE = "idle"
    EXTRACTING = "extracting"
    GATING = "gating"
    STREAMING = "streaming"
    SETTLED = "settled"


class SettledOutcome(str, Enum):
    """How a settled run ended"""
    OK = "ok"
    RETRYABLE = "retryable"
    FATAL = "fatal"


class FailureKind(str, Enum):
    """Classified failure taxonomy"""
    INVALID_CREDENTIAL = "invalid_credential"
    MISSING_CREDENTIAL = "missing_credential"
    THROTTLED = "throttled"
    NETWORK = "network"
    EXTRACTION = "extraction"
    CHANNEL_LOST = "channel_lost"
    UPSTREAM = "upstream"
    EMPTY_QUERY = "empty_query"


@dataclass(frozen=True)
class ClassifiedFailure:
    """A failure turned into user-facing behavior"""
    kind: FailureKind
    message: str
    retry_after_ms: int = 0  # > 0 starts an auto-retry countdown

    @property
    def retryable(self) -> bool:
        return self.kind in (
            FailureKind.THROTTLED,
            FailureKind.NETWORK,
            FailureKind.CHANNEL_LOST,
            FailureKind.UPSTREAM,
        )

    @property
    def show_retry_button(self) -> bool:
        return self.retryable and self.retry_after_ms <= 0

    @property
    def outcome(self) -> SettledOutcome:
        return SettledOutcome.RETRYABLE if self.retryable else SettledOutcome.FATAL


@dataclass
class ArticleContent:
    """Extracted page content handed over by a content provider"""
    title: str
    content: str
    excerpt: str = ""
    site_name: str = ""
    length: int = 0

    def __post_init__(self):
        """Default length to the uncapped content length"""
        if not self.length:
            self.length = len(self.content or "")


class CancellationToken:
    """Cooperative cancellation flag shared by one run's tasks"""

    def __init__(self):
        self.cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel once; returns False if already cancelled"""
        if self.cancelled:
            return False
        self.reason = reason
        self.cancelled = True
        return True


@dataclass
class SessionState:
    """Everything the controller knows about the current run"""
    mode: Mode = Mode.BRIEF
    status: SessionStatus = SessionStatus.IDLE
    outcome: Optional[SettledOutcome] = None
    accumulated_text: str = ""
    query: str = ""
    failure: Optional[ClassifiedFailure] = None
    run_id: int = 0
    cancellation_token: CancellationToken = field(default_factory=CancellationToken)
