"""
State for AI-generated insights and content.

Holds the insights and generated articles produced by the AI assistant,
together with the assistant's settings (enable flag, API key, model,
analysis preferences) and its progress and error status. This state is
independent of the ledger: nothing here feeds back into ledger totals.
"""

import enum
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ledger_models import coerce_timestamp, new_id, utc_now

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-3.5-turbo"
INSIGHT_FREQUENCIES = ("daily", "weekly", "monthly")


class InsightType(enum.Enum):
    SPENDING_PATTERN = "spending_pattern"
    BUDGET_ALERT = "budget_alert"
    SAVING_OPPORTUNITY = "saving_opportunity"
    TREND_ANALYSIS = "trend_analysis"


class InsightImpact(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ContentType(enum.Enum):
    BLOG_POST = "blog_post"
    SUMMARY = "summary"
    ANALYSIS = "analysis"
    RECOMMENDATION = "recommendation"


class ContentStatus(enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


def _parse_enum(enum_cls, value: Any, default):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.debug("Unknown %s %r; using %s", enum_cls.__name__, value, default.value)
        return default


def _clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(100.0, confidence))


@dataclass
class AIInsight:
    """
    One piece of advice produced from the ledger.

    Attributes:
        id: Unique identifier
        type: Kind of insight
        title: Short actionable title
        description: Detailed explanation
        confidence: Confidence score between 0 and 100
        actionable: Whether the user can act on it
        action_text: Label of the suggested action
        action_url: Optional link for the action
        timestamp: Creation time
        category: Category name the insight is about
        impact: Expected impact of acting on it
    """
    title: str
    description: str
    type: InsightType = InsightType.TREND_ANALYSIS
    confidence: float = 0.0
    actionable: bool = False
    action_text: Optional[str] = None
    action_url: Optional[str] = None
    category: Optional[str] = None
    impact: InsightImpact = InsightImpact.MEDIUM
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.type = _parse_enum(InsightType, self.type, InsightType.TREND_ANALYSIS)
        self.impact = _parse_enum(InsightImpact, self.impact, InsightImpact.MEDIUM)
        self.confidence = _clamp_confidence(self.confidence)
        self.timestamp = coerce_timestamp(self.timestamp)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AIInsight":
        """Build an insight from a dict using snake_case or camelCase keys."""
        return cls(
            title=str(data.get("title") or "Untitled insight"),
            description=str(data.get("description") or ""),
            type=data.get("type", InsightType.TREND_ANALYSIS),
            confidence=data.get("confidence", 0),
            actionable=bool(data.get("actionable", False)),
            action_text=data.get("action_text", data.get("actionText")),
            action_url=data.get("action_url", data.get("actionUrl")),
            category=data.get("category"),
            impact=data.get("impact", InsightImpact.MEDIUM),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "actionable": self.actionable,
            "action_text": self.action_text,
            "action_url": self.action_url,
            "timestamp": self.timestamp.isoformat(),
            "category": self.category,
            "impact": self.impact.value,
        }


@dataclass
class AIGeneratedContent:
    """
    An article or summary written by the AI assistant.

    Attributes:
        id: Unique identifier
        type: Kind of content
        title: Display title
        content: Markdown body
        tags: Labels used for search
        created_at: Creation time
        status: Publication status
    """
    title: str
    content: str
    type: ContentType = ContentType.BLOG_POST
    tags: Tuple[str, ...] = ()
    status: ContentStatus = ContentStatus.DRAFT
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.type = _parse_enum(ContentType, self.type, ContentType.BLOG_POST)
        self.status = _parse_enum(ContentStatus, self.status, ContentStatus.DRAFT)
        self.tags = tuple(self.tags)
        self.created_at = coerce_timestamp(self.created_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "content": self.content,
            "tags": list(self.tags),
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
        }


@dataclass
class AISettings:
    auto_analysis: bool = True
    insight_frequency: str = "weekly"
    content_generation: bool = True
    personalized_recommendations: bool = True


class AIState:
    """
    Insights, generated content and assistant settings.

    Insights and content are kept newest first. All mutations run under one
    lock; readers get copies.
    """

    def __init__(self, enabled: bool = False, api_key: Optional[str] = None, model: str = DEFAULT_MODEL):
        self._lock = threading.RLock()
        self._initial = (enabled, api_key, model)
        self._reset_fields()

    @classmethod
    def from_config(cls, config: Dict[str, Any], api_key: Optional[str] = None) -> "AIState":
        """Build state from the ``ai`` config section."""
        ai_config = config.get("ai", {}) or {}
        state = cls(
            enabled=bool(ai_config.get("enabled", False)),
            api_key=api_key,
            model=ai_config.get("model") or DEFAULT_MODEL,
        )
        state.update_settings(
            auto_analysis=ai_config.get("auto_analysis", True),
            insight_frequency=ai_config.get("insight_frequency", "weekly"),
            content_generation=ai_config.get("content_generation", True),
            personalized_recommendations=ai_config.get("personalized_recommendations", True),
        )
        return state

    def _reset_fields(self) -> None:
        enabled, api_key, model = self._initial
        self._insights: List[AIInsight] = []
        self._content: List[AIGeneratedContent] = []
        self.enabled = enabled
        self.api_key = api_key
        self.model = model
        self.settings = AISettings()
        self.is_analyzing = False
        self.last_analysis: Optional[datetime] = None
        self.error: Optional[str] = None

    @property
    def insights(self) -> List[AIInsight]:
        with self._lock:
            return [replace(insight) for insight in self._insights]

    @property
    def generated_content(self) -> List[AIGeneratedContent]:
        with self._lock:
            return [replace(content) for content in self._content]

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = bool(enabled)

    def set_api_key(self, api_key: Optional[str]) -> None:
        self.api_key = api_key or None

    def set_model(self, model: str) -> None:
        self.model = model

    def add_insight(self, insight: AIInsight) -> AIInsight:
        """Store an insight at the front, with a fresh id and timestamp."""
        stored = replace(insight, id=new_id(), timestamp=utc_now())
        with self._lock:
            self._insights.insert(0, stored)
        return stored

    def remove_insight(self, insight_id: str) -> bool:
        with self._lock:
            before = len(self._insights)
            self._insights = [i for i in self._insights if i.id != insight_id]
            return len(self._insights) != before

    def clear_insights(self) -> None:
        with self._lock:
            self._insights = []

    def add_generated_content(self, content: AIGeneratedContent) -> AIGeneratedContent:
        """Store content at the front, with a fresh id and creation time."""
        stored = replace(content, id=new_id(), created_at=utc_now())
        with self._lock:
            self._content.insert(0, stored)
        return stored

    def update_generated_content(self, content: AIGeneratedContent) -> bool:
        """Replace stored content with the same id. Unknown ids are ignored."""
        with self._lock:
            for position, existing in enumerate(self._content):
                if existing.id == content.id:
                    self._content[position] = replace(content)
                    return True
        return False

    def delete_generated_content(self, content_id: str) -> bool:
        with self._lock:
            before = len(self._content)
            self._content = [c for c in self._content if c.id != content_id]
            return len(self._content) != before

    def set_analyzing(self, analyzing: bool) -> None:
        self.is_analyzing = bool(analyzing)

    def set_last_analysis(self, when: Optional[datetime] = None) -> None:
        self.last_analysis = when or utc_now()

    def update_settings(self, **changes: Any) -> AISettings:
        """
        Merge partial settings.

        Raises:
            ValueError: For an unknown setting or insight frequency
        """
        with self._lock:
            for key, value in changes.items():
                if not hasattr(self.settings, key):
                    raise ValueError(f"Unknown AI setting: {key}")
                if key == "insight_frequency" and value not in INSIGHT_FREQUENCIES:
                    raise ValueError(f"insight_frequency must be one of {INSIGHT_FREQUENCIES}")
                setattr(self.settings, key, value)
            return replace(self.settings)

    def set_error(self, message: Optional[str]) -> None:
        self.error = message
        if message:
            logger.warning("AI error: %s", message)

    def reset(self) -> None:
        with self._lock:
            self._reset_fields()
