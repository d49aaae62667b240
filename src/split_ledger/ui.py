"""Interactive UI components for picking members."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .models import Member

logger = logging.getLogger(__name__)


def member_label(member: Member) -> str:
    """Display label used for completion and lookup."""
    return f"{member.name} <{member.email}>"


def fuzzy_match(query: str, text: str) -> bool:
    """
    Fuzzy match: all characters in query must appear in order in text.

    Example:
        query="ali" matches "Alice <alice@example.com>"
        query="bex" matches "Bob <bob@example.com>"
    """
    query_idx = 0
    for char in text:
        if query_idx < len(query) and char == query[query_idx]:
            query_idx += 1
    return query_idx == len(query)


class MemberCompleter(Completer):
    """Fuzzy search completer for group members."""

    def __init__(self, members: list[Member]):
        """Initialize the completer with the selectable members."""
        self.members = members
        self.label_to_id = {member_label(m): m.id for m in members}

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for label in self.label_to_id:
            if not query or fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )


def select_member_interactive(members: list[Member], prompt: str) -> int | None:
    """
    Interactive member selection with fuzzy search.

    Args:
        members: Members to choose from
        prompt: Question shown above the input line

    Returns:
        Selected member ID, or None to cancel
    """
    print(f"\n👤 {prompt}")
    print("   Type to search, press Enter to confirm, Ctrl+C to cancel\n")

    completer = MemberCompleter(members)
    session: PromptSession[str] = PromptSession(completer=completer)

    try:
        while True:
            result = session.prompt("Member: ", complete_while_typing=True)

            if not result:
                return None

            member_id = completer.label_to_id.get(result)
            if member_id is not None:
                logger.info(f"User selected member {member_id}")
                return member_id

            print("❌ Unknown member. Select from the list or press Tab to complete.")

    except KeyboardInterrupt:
        print("\n⏭️  Cancelled")
        return None
    except EOFError:
        return None
