"""
Runs the AI generation flows against the ledger and records the results.

Each flow reads one ledger snapshot, calls the AI service and stores what
comes back in AIState. Failures never escape: they are written to
``AIState.error`` as text and the analyzing flag is always cleared.
"""

import logging
from typing import List, Optional

from ai_service import AIService
from ai_state import AIGeneratedContent, AIInsight, AIState
from exceptions import BudgetAppError
from ledger import LedgerStore

logger = logging.getLogger(__name__)

NOT_ENABLED_MESSAGE = "AI not enabled or API key missing"


class AIAssistant:
    """Connects a LedgerStore, an AIState and an AIService."""

    def __init__(self, ledger: LedgerStore, state: AIState, service: Optional[AIService] = None):
        self.ledger = ledger
        self.state = state
        self.service = service or AIService(model=state.model)

    def _ready(self) -> bool:
        if not self.state.enabled or not self.state.api_key:
            self.state.set_error(NOT_ENABLED_MESSAGE)
            return False
        self.state.set_analyzing(True)
        self.state.set_error(None)
        self.service.model = self.state.model
        if not self.service.is_initialized():
            self.service.initialize(self.state.api_key)
        return True

    def generate_insights(self) -> List[AIInsight]:
        """
        Generate insights for the current ledger and store them newest first.

        Returns:
            The stored insights, or an empty list when disabled or on failure
        """
        if not self._ready():
            return []
        try:
            snapshot = self.ledger.snapshot()
            insights = self.service.generate_insights(
                snapshot.items,
                snapshot.categories,
                snapshot.total_income,
                snapshot.total_expenses,
            )
            stored = [self.state.add_insight(insight) for insight in insights]
            self.state.set_last_analysis()
            return stored
        except BudgetAppError as e:
            self.state.set_error(e.message or "Failed to generate insights")
            return []
        finally:
            self.state.set_analyzing(False)

    def generate_blog_post(self, topic: str, style: str = "professional") -> Optional[AIGeneratedContent]:
        """
        Write an article about a topic and store it as a draft.

        Returns:
            The stored content, or None when disabled or on failure
        """
        if not self._ready():
            return None
        try:
            snapshot = self.ledger.snapshot()
            content = self.service.generate_blog_post(topic, snapshot.items, snapshot.categories, style)
            return self.state.add_generated_content(content)
        except BudgetAppError as e:
            self.state.set_error(e.message or "Failed to generate blog post")
            return None
        finally:
            self.state.set_analyzing(False)

    def generate_summary(self, period: str = "month") -> str:
        """
        Summarize the ledger for a period.

        Returns:
            The summary text, or an empty string when disabled or on failure
        """
        if not self._ready():
            return ""
        try:
            return self.service.generate_summary(self.ledger.snapshot().items, period)
        except BudgetAppError as e:
            self.state.set_error(e.message or "Failed to generate summary")
            return ""
        finally:
            self.state.set_analyzing(False)
