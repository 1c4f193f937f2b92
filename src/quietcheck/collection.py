# src/quietcheck/collection.py

from __future__ import annotations

import logging

from .work.models import RunContext

logger = logging.getLogger(__name__)

DATA_COLLECTION = "data_collection"


def collect_data(ctx: RunContext) -> bool:
    """
    Default body of the periodic data collection task.

    The actual collection is supplied by the embedding application
    (register another body under the same name); this one only reports success.
    """
    logger.info("Data collection run (attempt=%d, generation=%d)", ctx.attempt, ctx.generation)
    return True
