"""
Duplicate collapsing for stitched transcripts.
"""
import logging
from dataclasses import replace
from typing import Iterable, List

from models.data_models import Message
from services.text_normalizer import normalize_key

logger = logging.getLogger(__name__)


def dedupe(messages: Iterable[Message]) -> List[Message]:
    """Drop repeated messages, keeping the chronologically first copy.

    Input must already be in final chronological order. Messages whose
    normalized text is empty are dropped. Survivors are renumbered so that
    ``chronological_index`` runs densely from 0.
    """
    seen = set()
    unique: List[Message] = []
    dropped = 0
    for message in messages:
        key = normalize_key(message.text)
        if not key or key in seen:
            dropped += 1
            continue
        seen.add(key)
        unique.append(replace(message, chronological_index=len(unique)))
    if dropped:
        logger.debug(f"Deduplicator dropped {dropped} repeated or empty messages")
    return unique
