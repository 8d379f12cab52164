"""Album grouping for display (pure view transform)."""

from __future__ import annotations

from typing import Iterable, List, Tuple

from core.models import Message


def group_for_display(messages: Iterable[Message]) -> List[Tuple[Message, ...]]:
    """Fold adjacent messages of the same album into one group.

    Order is never changed. A message without an album id is always a group
    of its own, and the same album split by another message yields two
    groups.
    """

    groups: List[List[Message]] = []
    for message in messages:
        previous = groups[-1][-1] if groups else None
        if (
            previous is not None
            and message.album_group_id is not None
            and previous.album_group_id == message.album_group_id
        ):
            groups[-1].append(message)
        else:
            groups.append([message])
    return [tuple(group) for group in groups]
