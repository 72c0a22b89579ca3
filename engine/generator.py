"""
engine/generator.py — Strategy dispatch and jingle interleaving.
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from engine import strategies
from engine.models import MAX_TRACKS, Algorithm, ClockHourTemplate, GenerationOptions

logger = logging.getLogger(__name__)

MAX_POOL = 5000


@dataclass
class GenerationContext:
    """Per-run collaborators: random source, clock, jingles and clock templates."""
    rng: random.Random = field(default_factory=random.Random)
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    jingles: List[dict] = field(default_factory=list)
    clock_templates: List[ClockHourTemplate] = field(default_factory=list)


STRATEGIES: Dict[Algorithm, Callable] = {
    Algorithm.WEIGHTED_RANDOM: strategies.run_weighted_random,
    Algorithm.SMART_ROTATION:  strategies.run_smart_rotation,
    Algorithm.HOT_ROTATION:    strategies.run_hot_rotation,
    Algorithm.CLOCK_WHEEL:     strategies.run_clock_wheel,
    Algorithm.GENRE_BLOCK:     strategies.run_genre_block,
    Algorithm.ENERGY_FLOW:     strategies.run_energy_flow,
    Algorithm.AI_ADAPTIVE:     strategies.run_ai_adaptive,
    Algorithm.DAYPART:         strategies.run_daypart,
}

_missing = set(Algorithm) - set(STRATEGIES)
if _missing:
    raise RuntimeError(f"No strategy registered for: {sorted(a.value for a in _missing)}")


def interleave_jingles(result: List[dict], jingles: List[dict], every_n: int) -> List[dict]:
    """Splice one jingle after every ``every_n`` music tracks, cycling the jingles.

    The first jingle lands at index ``every_n``; nothing is appended after the
    last music track.
    """
    if every_n < 1 or not jingles:
        return list(result)

    out = list(result)
    j_idx = 0
    i = every_n
    while i < len(out):
        out.insert(i, jingles[j_idx % len(jingles)])
        j_idx += 1
        i += every_n + 1
    return out


def generate(pool: List[dict], options: GenerationOptions, count: int,
             ctx: Optional[GenerationContext] = None) -> List[dict]:
    """Run the selected strategy over ``pool`` and interleave jingles.

    ``count`` is clamped to 1..MAX_TRACKS.  Pools larger than MAX_POOL are
    shuffled and truncated first to bound the strategies' running time.
    """
    ctx = ctx or GenerationContext()
    count = max(1, min(MAX_TRACKS, int(count)))

    if len(pool) > MAX_POOL:
        logger.info(f"Pool of {len(pool)} tracks capped to {MAX_POOL}")
        pool = list(pool)
        ctx.rng.shuffle(pool)
        pool = pool[:MAX_POOL]

    strategy = STRATEGIES[options.algorithm]
    result = strategy(pool, count, options, ctx)[:count]
    logger.debug(f"{options.algorithm.value}: {len(result)}/{count} tracks from a pool of {len(pool)}")

    every_n = int(options.rules.get("jingle_every_n", 0) or 0)
    if every_n > 0 and ctx.jingles:
        result = interleave_jingles(result, ctx.jingles, every_n)

    return result
