"""
Intent classification for incoming chat messages.
Keeps small-talk out of the retrieval path; any classifier with the same
interface can be plugged into the pipeline.
"""

import enum
from abc import ABC, abstractmethod
from typing import Sequence

from docbot.llm_backend import ConversationMessage


class Intent(enum.Enum):
    QUESTION = "question"
    GREETING = "greeting"
    IDENTITY = "identity"
    THANKS = "thanks"
    HELP = "help"


class IntentClassifier(ABC):
    """Decides whether a message needs retrieval at all."""

    @abstractmethod
    def classify(self, text: str, history: Sequence[ConversationMessage] = ()) -> Intent:
        pass


class KeywordIntentClassifier(IntentClassifier):
    """Exact-phrase matching against small fixed vocabularies."""

    GREETING_PATTERNS = {
        "hi", "hello", "hey", "good morning", "good afternoon", "good evening",
        "howdy", "hola", "yo", "hii", "hiii",
    }
    GREETING_PREFIXES = ("hi ", "hey ", "hello ")
    IDENTITY_PATTERNS = {
        "who are you", "who are u", "what are you", "what are u",
        "what do you do", "introduce yourself", "what can you do", "what can u do",
    }
    THANKS_PATTERNS = {
        "thanks", "thank you", "thank u", "thx", "ty", "cheers",
    }
    HELP_PATTERNS = {
        "help", "help me", "what can i ask", "how to use",
    }

    def classify(self, text: str, history: Sequence[ConversationMessage] = ()) -> Intent:
        q = text.lower().strip().rstrip("?!.")

        # "hi there" is small talk, "hi how many sick days do I get" is not
        if q in self.GREETING_PATTERNS or (
            q.startswith(self.GREETING_PREFIXES) and len(q.split()) <= 3
        ):
            return Intent.GREETING
        if q in self.IDENTITY_PATTERNS:
            return Intent.IDENTITY
        if q in self.THANKS_PATTERNS:
            return Intent.THANKS
        if q in self.HELP_PATTERNS:
            return Intent.HELP
        return Intent.QUESTION
