# src/chunk_egress/resolver.py

"""
Collision resolution for object keys.

Starting at attempt 0, the resolver renders a candidate key and asks the
remote store whether it exists. Existing keys move the resolver to the next
attempt, which changes the per-attempt placeholders (``%{index}`` and
friends). When a new attempt renders exactly the key of the previous one, the
template cannot tell attempts apart: the colliding key is either overwritten,
if allowed, or the chunk fails with CollisionExhaustedError.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .exceptions import CollisionExhaustedError
from .template import BoundTemplate

logger = logging.getLogger(__name__)

AttemptValues = Callable[[int], Mapping[str, str]]
ExistsCheck = Callable[[str], bool]


@dataclass
class AttemptState:
    index: int = 0
    last_rendered_key: Optional[str] = None


@dataclass(frozen=True)
class ResolvedKey:
    key: str
    attempts: int
    overwritten: bool = False


def resolve_key(
    bound: BoundTemplate,
    attempt_values_for: AttemptValues,
    exists: ExistsCheck,
    overwrite: bool = False,
) -> ResolvedKey:
    """
    Finds the key a chunk should be written to.

    Args:
        bound: The template with static and metadata values already applied.
        attempt_values_for: Returns the per-attempt placeholder values for an
            attempt index.
        exists: Remote existence check. Exceptions raised by it propagate
            unchanged.
        overwrite: Accept a colliding key when the template cannot produce a
            new one.

    Raises:
        CollisionExhaustedError: The template produced the same key twice and
            overwriting is forbidden.
    """
    state = AttemptState()
    while True:
        key = bound.render(attempt_values_for(state.index))

        if state.index > 0 and key == state.last_rendered_key:
            if overwrite:
                logger.warning(
                    f"File: {key} already exists, but will overwrite!",
                    extra={"key": key, "attempts": state.index + 1},
                )
                return ResolvedKey(key=key, attempts=state.index + 1, overwritten=True)
            raise CollisionExhaustedError(key=key, attempts=state.index + 1)

        if not exists(key):
            logger.info(
                f"File flushing: {key}",
                extra={"key": key, "attempts": state.index + 1},
            )
            return ResolvedKey(key=key, attempts=state.index + 1)

        logger.debug("Object key already taken", extra={"key": key, "index": state.index})
        state.last_rendered_key = key
        state.index += 1
