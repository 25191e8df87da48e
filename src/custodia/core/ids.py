from __future__ import annotations

import uuid
from typing import Callable

from custodia.core.errors import IdentifierExhaustedError

DEFAULT_ID_ATTEMPTS = 32


def new_uuid() -> str:
    """Generate a new UUID4 as a string."""
    return str(uuid.uuid4())


def new_unique_id(
    exists: Callable[[str], bool],
    attempts: int = DEFAULT_ID_ATTEMPTS,
    factory: Callable[[], str] = new_uuid,
) -> str:
    """Generate an id for which ``exists`` is false, trying at most ``attempts`` times."""
    for _ in range(max(1, attempts)):
        candidate = factory()
        if not exists(candidate):
            return candidate
    raise IdentifierExhaustedError(f"No free identifier found after {attempts} attempts")
