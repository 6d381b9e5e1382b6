"""Ordered "first success" runner used by every fallback chain."""
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from ytgrab.core.logging import get_logger

logger = get_logger(__name__)

I = TypeVar("I")
O = TypeVar("O")


@dataclass(frozen=True)
class Tier(Generic[I, O]):
    """One named attempt in a fallback chain."""

    name: str
    run: Callable[[I], Awaitable[O]]


class FallbackExhausted(Exception):
    """Every tier of a chain raised."""

    def __init__(self, chain: str, errors: list[tuple[str, Exception]]) -> None:
        self.chain = chain
        self.errors = errors
        super().__init__(f"{chain}: all {len(errors)} tier(s) failed")

    def summary(self) -> str:
        """One line per tier, in attempt order."""
        return "; ".join(f"{name}: {exc}" for name, exc in self.errors) or "no tiers"


async def first_success(
    tiers: Sequence[Tier[I, O]],
    value: I,
    *,
    chain: str = "fallback",
) -> tuple[O, Tier[I, O]]:
    """Run ``tiers`` in order with ``value`` and return the first result.

    A tier fails by raising; the error is logged and the next tier runs.
    Cancellation is not caught.

    Args:
        tiers: Attempts in preference order
        value: Input passed to every tier
        chain: Name used in logs and in the exhaustion error

    Returns:
        The winning result and the tier that produced it

    Raises:
        FallbackExhausted: If every tier raised (or ``tiers`` is empty)
    """
    errors: list[tuple[str, Exception]] = []
    for tier in tiers:
        try:
            result = await tier.run(value)
        except Exception as exc:
            logger.warning(f"{chain}: tier '{tier.name}' failed: {exc}")
            errors.append((tier.name, exc))
            continue
        if errors:
            logger.info(f"{chain}: tier '{tier.name}' succeeded after {len(errors)} failure(s)")
        return result, tier
    raise FallbackExhausted(chain, errors)
