"""Compounding chains: the ancestor -> focal -> descendant sequence of an investment.

Investments point backwards with ``builds_on_id`` and forwards with
``led_to_id``. Storage does not stop those pointers from forming a loop, so
every walk keeps a visited set and stops at the first id it has already seen.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from culturemap.records import Investment

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainLink:
    role: str  # "builds_on" | "focal" | "led_to" | "builds_on_focal"
    investment: Investment


def _walk(start: Investment, pointer: str, investment_by_id: Mapping[str, Investment],
          visited: set[str]) -> list[Investment]:
    """Follow *pointer* from *start* until it runs out, dangles, or loops."""
    out: list[Investment] = []
    current = start
    while True:
        next_id = getattr(current, pointer)
        if not next_id:
            break
        if next_id in visited:
            log.debug("Cycle in %s links at investment %s; chain cut", pointer, next_id)
            break
        nxt = investment_by_id.get(next_id)
        if nxt is None:
            break
        visited.add(next_id)
        out.append(nxt)
        current = nxt
    return out


def _chain_parts(
    focal: Investment,
    investment_by_id: Mapping[str, Investment],
    building_on: Mapping[str, Sequence[Investment]] | None,
) -> tuple[list[Investment], list[Investment], list[Investment]]:
    ancestors = _walk(focal, "builds_on_id", investment_by_id, {focal.id})
    ancestors.reverse()

    seen = {focal.id, *(a.id for a in ancestors)}
    descendants = _walk(focal, "led_to_id", investment_by_id, set(seen))
    seen.update(d.id for d in descendants)

    if building_on is not None:
        candidates = building_on.get(focal.id, ())
    else:
        candidates = [i for i in investment_by_id.values() if i.builds_on_id == focal.id]
    children = []
    for inv in candidates:
        if inv.id not in seen:
            seen.add(inv.id)
            children.append(inv)
    return ancestors, descendants, children


def investment_chain(
    focal: Investment,
    investment_by_id: Mapping[str, Investment],
    building_on: Mapping[str, Sequence[Investment]] | None = None,
) -> list[Investment]:
    """Ordered causal chain around *focal*.

    Ancestors oldest first, then *focal*, then ``led_to`` descendants nearest
    first, then any other investments that build on *focal* directly. Each
    investment appears at most once; the result always contains *focal*.
    *building_on* is the precomputed inverse of ``builds_on_id``; without it
    the children are found by scanning *investment_by_id*.
    """
    ancestors, descendants, children = _chain_parts(focal, investment_by_id, building_on)
    return [*ancestors, focal, *descendants, *children]


def chain_links(
    focal: Investment,
    investment_by_id: Mapping[str, Investment],
    building_on: Mapping[str, Sequence[Investment]] | None = None,
) -> list[ChainLink]:
    """The same sequence as ``investment_chain``, with each element's role."""
    ancestors, descendants, children = _chain_parts(focal, investment_by_id, building_on)
    return [
        *(ChainLink("builds_on", i) for i in ancestors),
        ChainLink("focal", focal),
        *(ChainLink("led_to", i) for i in descendants),
        *(ChainLink("builds_on_focal", i) for i in children),
    ]


def has_connections(chain: Sequence[object]) -> bool:
    """A chain of length one is just the focal investment: nothing to show."""
    return len(chain) > 1
