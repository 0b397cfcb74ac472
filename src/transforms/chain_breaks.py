"""Exchange chain consistency diagnostics.

Consecutive events for one territory should chain, with each defender
equal to the previous attacker. Real feeds drop and reorder events, so
breaks are reported here for operators and never rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from core.types import ExchangeEvent, Owner


@dataclass(frozen=True)
class ChainBreak:
    """One event whose defender does not match the prior attacker."""

    territory: str
    previous: ExchangeEvent
    current: ExchangeEvent

    @property
    def expected_defender(self) -> Owner:
        return self.previous.attacker


def find_chain_breaks(events: Iterable[ExchangeEvent]) -> list[ChainBreak]:
    """List chain violations in an event sequence.

    Args:
        events: Events in store query order.

    Returns:
        Breaks in encounter order.
    """
    last_by_territory: dict[str, ExchangeEvent] = {}
    breaks: list[ChainBreak] = []
    for event in events:
        previous = last_by_territory.get(event.territory)
        if previous is not None and event.defender != previous.attacker:
            breaks.append(ChainBreak(territory=event.territory, previous=previous, current=event))
        last_by_territory[event.territory] = event
    return breaks
