"""
Information-gain selection.

Given a pool of eligible items, score every candidate pair by how much one
more comparison would teach us and pick among the best few at random:

    uncertainty   max(floor, 100 * decay ** comparisons), averaged over the pair
    proximity     max(0, 1 - |mean_a - mean_b| / spread)
    deficit       how far each item trails the pool's average comparison count
    priority      optional external weight

Pair scores are computed as dense numpy matrices over the (truncated) pool.
Choosing among the top-k with geometrically decaying weights keeps the
sequence unpredictable while staying close to the optimum. A bounded cache
of recent pairs prevents repeats until the pool runs out of fresh pairs.
"""

import random

import numpy as np
import structlog

from src.errors import SelectionStarvedError
from src.selection.config import SelectionConfig
from src.selection.recent_pairs import RecentPairs
from src.selection.schemas import (
    PairSelection,
    SelectionCandidate,
    SingleSelection,
)

logger = structlog.get_logger(__name__)

HIGH_UNCERTAINTY = 75.0
MODERATE_UNCERTAINTY = 50.0
CLOSE_RATING_GAP = 100.0
UNDERREPRESENTED_DEFICIT = 0.3


def uncertainty(comparison_count: int, config: SelectionConfig | None = None) -> float:
    """Bounded proxy for what one more observation of an item would teach us."""
    config = config or SelectionConfig()
    return max(
        config.uncertainty_floor,
        100.0 * config.uncertainty_decay ** max(comparison_count, 0),
    )


def _dedupe(pool: list[SelectionCandidate]) -> list[SelectionCandidate]:
    seen: set[str] = set()
    unique = []
    for candidate in pool:
        if candidate.item_id not in seen:
            seen.add(candidate.item_id)
            unique.append(candidate)
    return unique


class SelectionEngine:
    """
    Chooses the next pair or single item to show.

    Holds the per-process recent-pairs cache, so one instance should serve
    all requests of a process.

    Usage:
        engine = SelectionEngine(SelectionConfig(seed=7))
        selection = engine.select_pair(candidates)
    """

    def __init__(
        self,
        config: SelectionConfig | None = None,
        rng: random.Random | None = None,
        recent_pairs: RecentPairs | None = None,
    ):
        self._config = config or SelectionConfig()
        self._rng = rng or random.Random(self._config.seed)
        self._recent = recent_pairs or RecentPairs(self._config.recent_pairs_size)

    @property
    def recent_pairs(self) -> RecentPairs:
        return self._recent

    def _truncate(self, pool: list[SelectionCandidate]) -> list[SelectionCandidate]:
        if len(pool) <= self._config.max_pool_size:
            return pool
        ranked = sorted(pool, key=lambda c: c.comparison_count)
        return ranked[: self._config.max_pool_size]

    def pair_scores(
        self,
        pool: list[SelectionCandidate],
    ) -> tuple[np.ndarray, np.ndarray, dict[str, np.ndarray]]:
        """Score all unordered pairs of the pool.

        Returns:
            (rows, cols, components) where rows/cols index the pool for
            each pair in upper-triangle order and components holds the
            per-pair "score", "uncertainty", "gap", "deficit" and
            "priority" arrays.
        """
        cfg = self._config
        means = np.array([c.mean for c in pool], dtype=np.float64)
        counts = np.array([c.comparison_count for c in pool], dtype=np.float64)
        priorities = np.array([c.priority_weight for c in pool], dtype=np.float64)

        item_uncertainty = np.maximum(
            cfg.uncertainty_floor, 100.0 * np.power(cfg.uncertainty_decay, counts)
        )
        avg_count = float(counts.mean())
        deficits = np.clip((avg_count - counts) / max(1.0, avg_count), 0.0, 1.0)

        rows, cols = np.triu_indices(len(pool), k=1)
        pair_uncertainty = (item_uncertainty[rows] + item_uncertainty[cols]) / 2.0
        gap = np.abs(means[rows] - means[cols])
        proximity = np.clip(1.0 - gap / cfg.proximity_spread, 0.0, 1.0)
        pair_deficit = (deficits[rows] + deficits[cols]) / 2.0
        pair_priority = (priorities[rows] + priorities[cols]) / 2.0

        score = (
            cfg.weight_uncertainty * pair_uncertainty / 100.0
            + cfg.weight_proximity * proximity
            + cfg.weight_deficit * pair_deficit
            + cfg.weight_priority * pair_priority
        )
        components = {
            "score": score,
            "uncertainty": pair_uncertainty,
            "gap": gap,
            "deficit": pair_deficit,
            "priority": pair_priority,
        }
        return rows, cols, components

    def _fresh(
        self,
        pool: list[SelectionCandidate],
        rows: np.ndarray,
        cols: np.ndarray,
        ranked: np.ndarray,
    ) -> list[int]:
        """Up to top_k pair indices from ``ranked`` that are not in the recent cache."""
        fresh: list[int] = []
        for idx in ranked:
            if not self._recent.contains(pool[rows[idx]].item_id, pool[cols[idx]].item_id):
                fresh.append(int(idx))
                if len(fresh) >= self._config.top_k:
                    break
        return fresh

    def _weighted_pick(self, count: int) -> int:
        weights = [self._config.rank_decay**rank for rank in range(count)]
        return self._rng.choices(range(count), weights=weights, k=1)[0]

    def select_pair(self, pool: list[SelectionCandidate]) -> PairSelection:
        """
        Pick the next pair to compare.

        Raises:
            SelectionStarvedError: If the pool has fewer than two distinct items.
        """
        pool = self._truncate(_dedupe(pool))
        if len(pool) < 2:
            raise SelectionStarvedError(
                f"Pair selection needs at least 2 items, got {len(pool)}"
            )

        rows, cols, components = self.pair_scores(pool)
        order = np.argsort(-components["score"], kind="stable")

        scan = self._config.max_scan
        fresh = self._fresh(pool, rows, cols, order[:scan])
        if not fresh:
            # all top-ranked pairs are recent
            fresh = self._fresh(pool, rows, cols, order[scan:])

        repeated = not fresh
        if repeated:
            shortlist = [int(i) for i in order[: self._config.top_k]]
            logger.warning(
                "Selection pool exhausted by anti-repeat, allowing a repeat",
                pool_size=len(pool),
                recent_pairs=len(self._recent),
            )
        else:
            shortlist = fresh

        chosen = shortlist[self._weighted_pick(len(shortlist))]
        item_a = pool[rows[chosen]].item_id
        item_b = pool[cols[chosen]].item_id
        self._recent.add(item_a, item_b)

        reasons = self._pair_reasons(
            uncertainty=float(components["uncertainty"][chosen]),
            gap=float(components["gap"][chosen]),
            deficit=float(components["deficit"][chosen]),
            priority=float(components["priority"][chosen]),
            repeated=repeated,
        )
        return PairSelection(
            item_a=item_a,
            item_b=item_b,
            score=float(components["score"][chosen]),
            rationale="; ".join(reasons),
            repeated=repeated,
            reasons=reasons,
        )

    @staticmethod
    def _pair_reasons(
        uncertainty: float,
        gap: float,
        deficit: float,
        priority: float,
        repeated: bool,
    ) -> list[str]:
        reasons = []
        if uncertainty > HIGH_UNCERTAINTY:
            reasons.append("High uncertainty - maximum learning potential")
        elif uncertainty > MODERATE_UNCERTAINTY:
            reasons.append("Moderate uncertainty")
        if gap < CLOSE_RATING_GAP:
            reasons.append(f"Close ratings (gap {gap:.0f})")
        if deficit > UNDERREPRESENTED_DEFICIT:
            reasons.append("Underrepresented items")
        if priority > 0:
            reasons.append("Priority boost")
        if repeated:
            reasons.append("Repeat allowed: no fresh pair left in pool")
        if not reasons:
            reasons.append("Best available information gain")
        return reasons

    def select_single(self, pool: list[SelectionCandidate]) -> SingleSelection:
        """
        Pick the next item to collect a raw signal for.

        Favours items with the fewest raw signals and the highest
        comparison uncertainty.

        Raises:
            SelectionStarvedError: If the pool is empty.
        """
        pool = _dedupe(pool)
        if not pool:
            raise SelectionStarvedError("Single selection needs at least 1 item")

        target = self._config.single_signal_target
        scored = []
        for candidate in pool:
            u = uncertainty(candidate.comparison_count, self._config)
            need = 1.0 - min(candidate.signal_count, target) / target
            scored.append((0.5 * u / 100.0 + 0.5 * need, u, candidate))
        scored.sort(key=lambda entry: entry[0], reverse=True)

        shortlist = scored[: self._config.top_k]
        score, u, candidate = shortlist[self._weighted_pick(len(shortlist))]

        reasons = []
        if candidate.signal_count < target:
            reasons.append(f"Few raw signals ({candidate.signal_count}/{target})")
        if u > HIGH_UNCERTAINTY:
            reasons.append("High uncertainty - maximum learning potential")
        if not reasons:
            reasons.append("Best available information gain")

        return SingleSelection(
            item_id=candidate.item_id,
            score=score,
            rationale="; ".join(reasons),
            reasons=reasons,
        )
