"""Domain models used across the analysis cycle."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Post(BaseModel):
    """A single, stand-alone tweet."""

    kind: Literal["post"] = "post"
    id: str
    username: str = ""
    text: str = ""
    created_at: datetime | None = None
    collected_at: datetime | None = None
    likes: int = 0
    retweets: int = 0
    replies: int = 0
    quotes: int = 0
    views: int = 0
    hashtags: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    is_thread: bool = False
    thread_id: str | None = None
    thread_position: int | None = None


class ThreadItem(BaseModel):
    """A multi-part thread, pre-merged into one combined text."""

    kind: Literal["thread"] = "thread"
    id: str
    username: str = ""
    combined_text: str = ""
    total_parts: int = 1
    created_at: datetime | None = None
    collected_at: datetime | None = None
    likes: int = 0
    retweets: int = 0
    hashtags: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)


ClassifiedItem = Annotated[Post | ThreadItem, Field(discriminator="kind")]


class Batch(BaseModel):
    posts: list[Post] = Field(default_factory=list)
    threads: list[ThreadItem] = Field(default_factory=list)
    total_engagement: int = 0
    total_likes: int = 0
    total_retweets: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.posts and not self.threads


class OverallSentiment(str, Enum):
    VERY_BEARISH = "very_bearish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"
    BULLISH = "bullish"
    VERY_BULLISH = "very_bullish"


class SentimentIntensity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"


def _fold_label(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower().replace("-", "_").replace(" ", "_")
    return value


class SentimentVerdict(BaseModel):
    """Structured sentiment judgment returned by the LLM.

    Unknown keys are kept so that nothing the model produced is lost on
    save. ``createdAt`` is the only optional timestamp; the analysis client
    fills it in when the model leaves it out.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, use_enum_values=True)

    overall_sentiment: OverallSentiment
    sentiment_intensity: SentimentIntensity
    analysis: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    key_events: list[str] = Field(default_factory=list)
    created_at: str | None = Field(default=None, alias="createdAt")

    @field_validator("overall_sentiment", "sentiment_intensity", mode="before")
    @classmethod
    def fold_enum_labels(cls, value: Any) -> Any:
        return _fold_label(value)

    @field_validator("key_events", mode="before")
    @classmethod
    def null_events_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("created_at", mode="before")
    @classmethod
    def stringify_created_at(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InputSummary(_CamelModel):
    tweets_analyzed: int
    threads_analyzed: int
    total_engagement: int
    lookback_hours: int


class AnalysisRecord(_CamelModel):
    """A persisted analysis document plus its store id."""

    id: str | None = None
    timestamp: datetime | None = None  # assigned by the store
    analysis_time: datetime
    input_data: InputSummary
    sentiment: SentimentVerdict
    service_version: str
    model: str
    provider: str


class SaveResult(_CamelModel):
    analysis_id: str
    timestamp: datetime
    sentiment: str
    sentiment_intensity: str
    created_at: str | None = None


class CycleStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED_RUNNING = "skipped_running"
    SKIPPED_NO_DATA = "skipped_no_data"


class CycleOutcome(BaseModel):
    status: CycleStatus
    result: SaveResult | None = None
    duration: float = 0.0

    @property
    def skipped(self) -> bool:
        return self.status is not CycleStatus.COMPLETED
