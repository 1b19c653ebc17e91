"""
Block time estimation
Average seconds per block sampled over a trailing window, and
extrapolation of wall-clock times for arbitrary heights
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from errors import InsufficientHistory
from penumbra_client import ChainHead, ChainQueryClient

logger = logging.getLogger(__name__)

# Number of blocks between the chain head and the sampled block
BLOCK_TIME_SAMPLE_OFFSET = 100


def estimate_block_time(
    client: ChainQueryClient,
    head: ChainHead,
    offset: int = BLOCK_TIME_SAMPLE_OFFSET,
) -> float:
    """
    Average seconds per block between the head and the block `offset` below it.

    Issues exactly one query. Compute once per request and reuse the value.
    """
    if head.height <= offset:
        raise InsufficientHistory(
            f"chain height {head.height} is too low to sample {offset} blocks"
        )

    sample = client.block_by_height(head.height - offset)
    blocks_diff = head.height - sample.height
    if blocks_diff <= 0:
        raise InsufficientHistory(
            f"sampled block {sample.height} is not below head {head.height}"
        )

    block_time = (head.time - sample.time) / blocks_diff
    logger.debug(
        f"Average block time {block_time:.3f}s over heights {sample.height}-{head.height}"
    )
    return block_time


def estimate_time_at(height: int, head: ChainHead, seconds_per_block: float) -> float:
    """Estimated epoch seconds at height, assuming a constant block rate"""
    return head.time - (head.height - height) * seconds_per_block


def format_timestamp(seconds: float) -> Optional[str]:
    """RFC 3339 UTC string truncated to whole seconds, or None when out of range"""
    try:
        moment = datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")
