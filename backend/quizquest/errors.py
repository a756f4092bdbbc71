"""Exception types raised across the QuizQuest backend.

Policy boundaries (daily limit reached, trial expired, question pool
exhausted) are not exceptions; they travel as outcome values so callers have
to branch on them.
"""

from __future__ import annotations


class QuizQuestError(Exception):
    """Base class for QuizQuest failures."""


class TransientStoreError(QuizQuestError):
    """The record store could not be read or written."""


class AuthRequired(QuizQuestError):
    """No authenticated identity accompanies a learner-scoped operation."""


class LearnerNotFound(QuizQuestError):
    """The identity is known but no learner record exists yet."""

    def __init__(self, learner_id: str) -> None:
        super().__init__(f"Learner '{learner_id}' has not completed onboarding.")
        self.learner_id = learner_id


class BillingError(QuizQuestError):
    """The billing provider rejected or failed a request."""


class WebhookSignatureError(BillingError):
    """A billing webhook payload failed signature verification."""


__all__ = [
    "AuthRequired",
    "BillingError",
    "LearnerNotFound",
    "QuizQuestError",
    "TransientStoreError",
    "WebhookSignatureError",
]
