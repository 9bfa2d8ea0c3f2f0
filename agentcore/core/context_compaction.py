"""Context Compaction — pure helpers for summarizing older history.

Invariants:
    - All functions are pure (no IO, no async)
    - Returns NEW lists — never mutates input
    - The split point never lands inside a tool round: the kept tail never starts
      with a tool message whose step began in the summarized head
    - A summary message is a user-role message flagged summary=True

Design Decisions:
    - The summary text itself is model-generated by AgentRunner.summarize();
      this module only decides what to summarize and how to splice it back
"""

from agentcore.core.domain_types import Role
from agentcore.core.messages import Message, TextPart


SUMMARY_PREFIX = "Summary of the earlier conversation:\n\n"

SUMMARY_INSTRUCTIONS = (
    "Summarize the conversation above so that it can replace it. Keep every "
    "fact, decision, file path, command and open task needed to continue the "
    "work. Write it as a concise briefing, not as a transcript."
)


# === Public API ===============================================================

def split_for_summary(
    messages: list[Message], keep_last_n: int,
) -> tuple[list[Message], list[Message]]:
    """Split into (head to summarize, tail kept verbatim).

    Returns ([], messages) when there is nothing worth summarizing.
    """
    keep_last_n = max(0, keep_last_n)
    if len(messages) <= keep_last_n:
        return [], list(messages)

    cut = len(messages) - keep_last_n
    cut = _align_to_round_start(messages, cut)
    if cut <= 0:
        return [], list(messages)
    return list(messages[:cut]), list(messages[cut:])


def should_summarize(
    last_input_tokens: int, context_window: int, ratio: float,
) -> bool:
    """Pure threshold check on the most recent prompt size."""
    if ratio <= 0 or context_window <= 0:
        return False
    return last_input_tokens >= int(context_window * ratio)


def build_summary_message(summary_text: str) -> Message:
    return Message(
        Role.USER, (TextPart(SUMMARY_PREFIX + summary_text.strip()),),
        summary=True,
    )


def splice_summary(summary: Message, tail: list[Message]) -> list[Message]:
    return [summary] + list(tail)


# === Private helpers ==========================================================

def _align_to_round_start(messages: list[Message], cut: int) -> int:
    """Move `cut` back while it would separate a tool message from its round."""
    while 0 < cut < len(messages):
        msg = messages[cut]
        prev = messages[cut - 1]
        same_round = (
            msg.role == Role.TOOL
            and prev.role in (Role.ASSISTANT, Role.TOOL)
            and prev.step == msg.step
        )
        if not same_round:
            break
        cut -= 1
    return cut
