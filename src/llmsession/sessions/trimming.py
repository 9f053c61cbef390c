# src/llmsession/sessions/trimming.py
"""
Boundary-safe transcript trimming.

A transcript is trimmed by keeping its most recent messages. An assistant
message directly followed by a tool message forms a protected pair: a tool
result is meaningless without the call that requested it, so a cut is never
placed between the two. When the naive cut would split a pair, the cut moves
back to include the whole pair, which lets the retained slice exceed the
budget by one message. Size is traded for a replayable transcript.
"""

import logging
from typing import List, Sequence

from ..models import Message, Role

logger = logging.getLogger(__name__)


def find_tool_pairs(messages: Sequence[Message]) -> List[int]:
    """
    Return the start index of every assistant -> tool adjacency, ascending.

    Args:
        messages: The transcript to scan.

    Returns:
        Indices `p` such that messages[p] is an assistant message and
        messages[p + 1] is a tool message.
    """
    return [
        i - 1
        for i in range(1, len(messages))
        if messages[i].role == Role.TOOL and messages[i - 1].role == Role.ASSISTANT
    ]


def trim_preserving_tool_pairs(messages: Sequence[Message], budget: int) -> List[Message]:
    """
    Keep the last `budget` messages without separating a protected pair.

    The result is always a suffix of `messages`. Trimming is idempotent and a
    no-op when the transcript already fits the budget.

    Args:
        messages: The transcript, oldest first.
        budget: Target maximum number of messages, at least 1.

    Returns:
        The retained suffix. Its length may exceed `budget` when the cut
        would otherwise fall inside an assistant/tool pair.

    Raises:
        ValueError: If budget is smaller than 1.
    """
    if budget < 1:
        raise ValueError(f"Retention budget must be at least 1, got {budget}")
    if len(messages) <= budget:
        return list(messages)

    cut = len(messages) - budget
    for pair_start in find_tool_pairs(messages):
        if pair_start < cut <= pair_start + 1:
            logger.debug(
                f"Trim cut at {cut} would split tool pair at {pair_start}; keeping {len(messages) - pair_start} "
                f"messages (budget {budget})."
            )
            cut = pair_start
            break

    return list(messages[cut:])
