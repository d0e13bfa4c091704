"""
Intent classifier for chat messages.
"""

from typing import Dict, Tuple
from ..models import Intent
from ..utils import get_logger


CODING_KEYWORDS: Tuple[str, ...] = (
    'code', 'function', 'class', 'debug', 'error', 'bug', 'implement',
    'refactor', 'typescript', 'javascript', 'python', 'react', 'api',
    'sql', 'query', 'regex', 'algorithm', 'data structure',
)

PLANNING_KEYWORDS: Tuple[str, ...] = (
    'plan', 'schedule', 'roadmap', 'timeline', 'milestone', 'goal',
    'project', 'workflow', 'step by step', 'outline', 'organize',
)

AUTOMATION_KEYWORDS: Tuple[str, ...] = (
    'automate', 'automation', 'cron', 'trigger', 'webhook', 'workflow',
    'schedule task', 'batch', 'pipeline', 'n8n', 'zapier',
)

COMPLEXITY_KEYWORDS: Tuple[str, ...] = (
    'explain', 'analyze', 'compare', 'design', 'architect', 'strategy',
    'pros and cons', 'trade-off', 'deep dive', 'in detail', 'comprehensive',
)


class IntentClassifier:
    """
    Keyword and length based intent classifier.

    Classification is pure: the same text always yields the same intent.
    Precedence (first match wins):

    - more than ``long_message_words`` words: COMPLEX
    - at least 2 coding keywords: CODING
    - at least 1 automation keyword: AUTOMATION
    - at least 2 planning keywords: PLANNING
    - at least 2 complexity keywords, or more than ``complex_message_words`` words: COMPLEX
    - otherwise SIMPLE
    """

    long_message_words = 80
    complex_message_words = 40

    def __init__(self):
        self.logger = get_logger(__name__)
        self.keyword_sets: Dict[Intent, Tuple[str, ...]] = {
            Intent.CODING: CODING_KEYWORDS,
            Intent.PLANNING: PLANNING_KEYWORDS,
            Intent.AUTOMATION: AUTOMATION_KEYWORDS,
            Intent.COMPLEX: COMPLEXITY_KEYWORDS,
        }

    def classify(self, text: str) -> Intent:
        """
        Classify a message into an intent.

        Args:
            text: Raw message text

        Returns:
            Intent for the message
        """
        word_count = len(text.split())
        if word_count > self.long_message_words:
            return Intent.COMPLEX

        scores = self.keyword_scores(text)

        if scores[Intent.CODING] >= 2:
            return Intent.CODING
        if scores[Intent.AUTOMATION] >= 1:
            return Intent.AUTOMATION
        if scores[Intent.PLANNING] >= 2:
            return Intent.PLANNING
        if scores[Intent.COMPLEX] >= 2 or word_count > self.complex_message_words:
            return Intent.COMPLEX

        return Intent.SIMPLE

    def keyword_scores(self, text: str) -> Dict[Intent, int]:
        """Count case-insensitive substring hits for each keyword set."""
        lower = text.lower()
        return {
            intent: sum(1 for keyword in keywords if keyword in lower)
            for intent, keywords in self.keyword_sets.items()
        }


_default_classifier = IntentClassifier()


def classify(text: str) -> Intent:
    """Classify ``text`` with the default keyword sets."""
    return _default_classifier.classify(text)
