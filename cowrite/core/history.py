"""
Undo/Redo history for shared documents.

Two bounded stacks per document, most-recent-first. Only human-attributed
content changes touch them. Undo and redo are computed here and written
through the store's explicit-stacks path, so the store never pushes its
own entry on top.
"""

from typing import List, Sequence, Tuple


UNDO_REDO_CAP = 30


class HistoryEmptyError(Exception):
    """Raised when undo or redo is requested with an empty stack."""
    pass


def cap_stack(stack: Sequence[str], cap: int = UNDO_REDO_CAP) -> List[str]:
    """Truncate to the newest `cap` entries; older ones are dropped silently."""
    return list(stack)[:cap]


def push_bounded(stack: Sequence[str], entry: str, cap: int = UNDO_REDO_CAP) -> List[str]:
    """Push onto the front of a most-recent-first stack."""
    return cap_stack([entry, *stack], cap)


def record_edit(
    previous: str,
    new: str,
    undo_stack: Sequence[str],
    redo_stack: Sequence[str]
) -> Tuple[List[str], List[str]]:
    """
    Stacks after a normal edit.

    A changed edit pushes the previous content onto undo and discards the
    redo branch. Byte-identical content leaves both stacks alone.

    Returns:
        (undo_stack, redo_stack)
    """
    if new == previous:
        return cap_stack(undo_stack), cap_stack(redo_stack)
    return push_bounded(undo_stack, previous), []


def plan_undo(
    content: str,
    undo_stack: Sequence[str],
    redo_stack: Sequence[str]
) -> Tuple[str, List[str], List[str]]:
    """
    Compute an undo step.

    Returns:
        (new_content, undo_stack, redo_stack)

    Raises:
        HistoryEmptyError: If there is nothing to undo.

    Example:
        >>> plan_undo("new text", ["old text"], [])
        ('old text', [], ['new text'])
    """
    if not undo_stack:
        raise HistoryEmptyError("Nothing to undo")
    previous, *rest = undo_stack
    return previous, cap_stack(rest), push_bounded(redo_stack, content)


def plan_redo(
    content: str,
    undo_stack: Sequence[str],
    redo_stack: Sequence[str]
) -> Tuple[str, List[str], List[str]]:
    """
    Compute a redo step (mirror of plan_undo).

    Returns:
        (new_content, undo_stack, redo_stack)

    Raises:
        HistoryEmptyError: If there is nothing to redo.
    """
    if not redo_stack:
        raise HistoryEmptyError("Nothing to redo")
    following, *rest = redo_stack
    return following, push_bounded(undo_stack, content), cap_stack(rest)


__all__ = [
    "UNDO_REDO_CAP",
    "HistoryEmptyError",
    "cap_stack",
    "push_bounded",
    "record_edit",
    "plan_undo",
    "plan_redo",
]
