"""Confirmation gates for destructive actions."""

from typing import Optional

CONFIRMATION_WORD = "DELETE"


def confirm(typed_text: Optional[str] = "", checkbox_checked: bool = False) -> bool:
    """Return True when the user has confirmed intent to erase.

    Either typing DELETE (any case) or ticking the acknowledgement box is
    enough. The two paths are alternatives, not a combined requirement.
    Each call is independent of earlier attempts.
    """
    if checkbox_checked is True:
        return True
    return (typed_text or "").upper() == CONFIRMATION_WORD


def confirm_stop(acknowledged: bool = False) -> bool:
    """Second confirmation for stopping a job that has already overwritten data.

    The acknowledgement must be an explicit True; stopping leaves the device
    partially erased and that cannot be undone.
    """
    return acknowledged is True
