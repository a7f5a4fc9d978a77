"""
AI summaries of a restaurant's reviews.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from backend.errors import ConfigurationMissing
from models import gemini, prompts
from shared.constants import SUMMARY_ERROR_MESSAGE
from shared.types import Rating

logger = logging.getLogger(__name__)


@dataclass
class ReviewSummary:
    text: str
    ok: bool


def summarize_reviews(
    reviews: Iterable[Rating],
    api_key: str | None = None,
    model: str = gemini.DEFAULT_MODEL,
) -> ReviewSummary:
    """
    Asks Gemini for a one-sentence summary of the given reviews.

    Never raises: a missing API key or a failed model call is logged and
    yields the fixed error message with `ok=False`.
    """
    prompt = prompts.make_review_summary_prompt([review.text for review in reviews])
    try:
        if not api_key:
            raise ConfigurationMissing(
                "GEMINI_API_KEY not set. Set it in the environment or in .env."
            )
        text = gemini.call_predict(prompt, model=model, api_key=api_key)
    except ConfigurationMissing as e:
        logger.error(str(e))
        return ReviewSummary(text=SUMMARY_ERROR_MESSAGE, ok=False)
    except Exception as e:
        logger.error(f"Error summarizing reviews: {e}")
        return ReviewSummary(text=SUMMARY_ERROR_MESSAGE, ok=False)
    return ReviewSummary(text=text, ok=True)
