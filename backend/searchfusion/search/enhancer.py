"""Query enhancement: ask the language service for a better query, or keep the original."""

from __future__ import annotations

import asyncio
import logging
import re

from searchfusion.search.errors import LanguageServiceError
from searchfusion.search.language import LanguageService

logger = logging.getLogger(__name__)

# A rewrite longer than this many times the input is treated as rambling
MAX_EXPANSION_RATIO = 3
MIN_ENHANCED_LENGTH = 3

_PREFIX_RE = re.compile(r"^\s*enhanced query\s*:\s*", re.IGNORECASE)


def clean_enhanced_query(text: str) -> str:
    """Strip an "Enhanced query:" label and surrounding quotes from model output."""
    cleaned = _PREFIX_RE.sub("", text.strip())
    return cleaned.strip().strip("\"'`").strip()


def accept_enhanced_query(original: str, enhanced: str) -> bool:
    return MIN_ENHANCED_LENGTH <= len(enhanced) <= len(original) * MAX_EXPANSION_RATIO


class QueryEnhancer:
    """Rewrites a raw query via the language service, never raising.

    Args:
        language: Language service used for the rewrite.
        timeout: Seconds allowed for the rewrite call.
    """

    def __init__(self, language: LanguageService, timeout: float) -> None:
        self._language = language
        self._timeout = timeout

    async def enhance(self, query: str) -> str:
        """Return an enhanced query, or *query* itself when enhancement is unusable."""
        try:
            raw = await asyncio.wait_for(self._language.enhance(query), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.info("Query enhancement timed out after %ss, using original query", self._timeout)
            return query
        except LanguageServiceError as exc:
            logger.info("Query enhancement failed, using original query: %s", exc)
            return query
        except Exception:
            logger.info("Query enhancement raised unexpectedly, using original query", exc_info=True)
            return query

        enhanced = clean_enhanced_query(raw)
        if not accept_enhanced_query(query, enhanced):
            logger.info("Rejected enhanced query %r for %r", enhanced[:100], query)
            return query
        return enhanced
