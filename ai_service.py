"""
OpenAI-backed text generation for budget insights, articles and summaries.

The service only reads ledger records handed to it and returns parsed
results; storing them is left to AIState.
"""

import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openai import OpenAI, OpenAIError

from ai_state import DEFAULT_MODEL, AIGeneratedContent, AIInsight, ContentStatus, ContentType, InsightImpact, InsightType
from exceptions import AIServiceError
from ledger_models import BudgetCategory, BudgetItem

logger = logging.getLogger(__name__)

INSIGHTS_SYSTEM_PROMPT = (
    "You are a financial advisor AI that provides actionable insights based on budget data. "
    "Always provide specific, actionable advice with confidence scores."
)
BLOG_SYSTEM_PROMPT = (
    "You are a financial blogger who creates engaging, informative content about personal finance "
    "and budgeting. Write in a clear, accessible style with practical advice."
)
SUMMARY_SYSTEM_PROMPT = "You are a financial analyst. Provide clear, concise summaries of financial data."

COMMON_TAGS = ("finance", "budgeting", "personal-finance", "money-management")
DEFAULT_BLOG_TITLE = "Generated Blog Post"
SUMMARY_FALLBACK = "Unable to generate summary"
BLOG_STYLES = ("professional", "casual", "technical")
SUMMARY_PERIODS = ("week", "month", "year")


def _records_json(records: Iterable[Any]) -> str:
    return json.dumps([record.to_dict() for record in records])


class AIService:
    """Chat-completion client for the three generation flows."""

    def __init__(self, model: str = DEFAULT_MODEL):
        self.model = model
        self._api_key: Optional[str] = None
        self._client: Optional[OpenAI] = None

    def initialize(self, api_key: str) -> None:
        """Store the API key; the OpenAI client is created on first use."""
        self._api_key = api_key
        self._client = None

    def is_initialized(self) -> bool:
        return bool(self._api_key)

    @property
    def client(self) -> OpenAI:
        """Lazy initialization of OpenAI client."""
        if not self.is_initialized():
            raise AIServiceError("AI service not initialized")
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def _complete(self, system_prompt: str, prompt: str, temperature: float, max_tokens: int) -> Optional[str]:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise AIServiceError(f"AI request failed: {e}", details={"model": self.model}, original_error=e) from e

        if not response.choices:
            return None
        return response.choices[0].message.content

    def generate_insights(
        self,
        items: Sequence[BudgetItem],
        categories: Sequence[BudgetCategory],
        total_income: float,
        total_expenses: float
    ) -> List[AIInsight]:
        """
        Ask for 3-5 actionable insights about the ledger.

        Raises:
            AIServiceError: If the service is not initialized, the request
                fails or the model returns nothing
        """
        prompt = self.build_insight_prompt(items, categories, total_income, total_expenses)
        content = self._complete(INSIGHTS_SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=1000)
        if not content:
            raise AIServiceError("No response from AI")
        insights = self.parse_insights(content)
        logger.info("Generated %d insights", len(insights))
        return insights

    def generate_blog_post(
        self,
        topic: str,
        items: Sequence[BudgetItem],
        categories: Sequence[BudgetCategory],
        style: str = "professional"
    ) -> AIGeneratedContent:
        """
        Write a draft article about a topic using the ledger as examples.

        Raises:
            AIServiceError: If the service is not initialized, the request
                fails or the model returns nothing
        """
        if style not in BLOG_STYLES:
            raise AIServiceError(f"Unknown blog style: {style}", details={"styles": ", ".join(BLOG_STYLES)})

        prompt = self.build_blog_prompt(topic, items, categories, style)
        content = self._complete(BLOG_SYSTEM_PROMPT, prompt, temperature=0.8, max_tokens=2000)
        if not content:
            raise AIServiceError("No response from AI")

        return AIGeneratedContent(
            type=ContentType.BLOG_POST,
            title=self.extract_title(content),
            content=content,
            tags=tuple(self.extract_tags(content, topic)),
            status=ContentStatus.DRAFT,
        )

    def generate_summary(self, items: Sequence[BudgetItem], period: str = "month") -> str:
        """
        Summarize the ledger for a week, month or year.

        An empty completion yields a fixed fallback sentence.
        """
        if period not in SUMMARY_PERIODS:
            raise AIServiceError(f"Unknown summary period: {period}", details={"periods": ", ".join(SUMMARY_PERIODS)})

        prompt = f"Generate a concise {period}ly financial summary based on this budget data: {_records_json(items)}"
        content = self._complete(SUMMARY_SYSTEM_PROMPT, prompt, temperature=0.5, max_tokens=500)
        return content or SUMMARY_FALLBACK

    @staticmethod
    def build_insight_prompt(
        items: Sequence[BudgetItem],
        categories: Sequence[BudgetCategory],
        total_income: float,
        total_expenses: float
    ) -> str:
        return f"""
    Analyze this budget data and provide 3-5 actionable insights:

    Budget Items: {_records_json(items)}
    Categories: {_records_json(categories)}
    Total Income: ${total_income}
    Total Expenses: ${total_expenses}

    For each insight, provide:
    - Type (spending_pattern, budget_alert, saving_opportunity, trend_analysis)
    - Title (brief, actionable)
    - Description (detailed explanation)
    - Confidence (0-100)
    - Actionable (true/false)
    - Action text (if actionable)
    - Impact (low/medium/high)

    Format as JSON array.
    """

    @staticmethod
    def build_blog_prompt(
        topic: str,
        items: Sequence[BudgetItem],
        categories: Sequence[BudgetCategory],
        style: str
    ) -> str:
        budget_data = json.dumps({
            "items": [item.to_dict() for item in items],
            "categories": [category.to_dict() for category in categories],
        })
        return f"""
    Write a {style} blog post about "{topic}" incorporating insights from this budget data:

    Budget Data: {budget_data}

    Requirements:
    - 800-1200 words
    - Include practical tips
    - Use real examples from the data
    - Make it engaging and informative
    - Include a compelling title
    - Add relevant tags
    """

    @staticmethod
    def parse_insights(content: str) -> List[AIInsight]:
        """
        Turn a completion into insights.

        A JSON array becomes one insight per object. Text that is not JSON
        becomes a single trend-analysis insight carrying the text. Any other
        JSON value yields no insights.
        """
        try:
            parsed = json.loads(content)
        except ValueError:
            return [AIInsight(
                type=InsightType.TREND_ANALYSIS,
                title="AI Analysis Available",
                description=content,
                confidence=75,
                actionable=False,
                impact=InsightImpact.MEDIUM,
            )]

        if not isinstance(parsed, list):
            logger.warning("AI response was JSON but not an array; ignoring it")
            return []

        return [AIInsight.from_dict(entry) for entry in parsed if isinstance(entry, dict)]

    @staticmethod
    def extract_title(content: str) -> str:
        """Return the first markdown heading without its hashes."""
        for line in content.split("\n"):
            if line.startswith("#"):
                return line.lstrip("#").strip()
        return DEFAULT_BLOG_TITLE

    @staticmethod
    def extract_tags(content: str, topic: str) -> List[str]:
        """Common finance tags followed by topic words longer than three letters, five at most."""
        topic_tags = [word for word in topic.lower().split(" ") if len(word) > 3]
        return [*COMMON_TAGS, *topic_tags][:5]


def resolve_api_key(config: Dict[str, Any]) -> Optional[str]:
    """Read the API key from the environment variable named in ``ai.api_key_env``."""
    env_name = (config.get("ai", {}) or {}).get("api_key_env") or "OPENAI_API_KEY"
    return os.environ.get(env_name) or None
