"""Selection service: resolves pool ids against the store and selects."""

import time
from enum import Enum

import structlog

from src.errors import SelectionStarvedError
from src.observability.metrics import get_metrics
from src.selection.config import SelectionConfig
from src.selection.engine import SelectionEngine
from src.selection.schemas import PairSelection, SelectionCandidate, SingleSelection
from src.storage.base import RatingStore

logger = structlog.get_logger(__name__)


class SelectionMode(str, Enum):
    PAIR = "pair"
    SINGLE = "single"


class SelectionService:
    """
    Answers "what should be shown next" for a caller-supplied eligible pool.

    Eligibility is decided outside the engine; ids the store does not know
    are dropped from the pool with a warning.

    Usage:
        service = SelectionService(store)
        selection = await service.select(["a", "b", "c"], SelectionMode.PAIR)
    """

    def __init__(
        self,
        store: RatingStore,
        engine: SelectionEngine | None = None,
        config: SelectionConfig | None = None,
    ):
        self._store = store
        self._config = config or SelectionConfig()
        self._engine = engine or SelectionEngine(self._config)

    @property
    def engine(self) -> SelectionEngine:
        return self._engine

    async def _load_candidates(
        self,
        pool_ids: list[str],
        priority_weights: dict[str, float] | None = None,
    ) -> list[SelectionCandidate]:
        priority_weights = priority_weights or {}
        unique_ids = list(dict.fromkeys(pool_ids))
        items = await self._store.get_items(unique_ids)

        unknown = [item_id for item_id in unique_ids if item_id not in items]
        if unknown:
            logger.warning(
                "Dropping unknown items from selection pool",
                unknown_count=len(unknown),
                sample=unknown[:5],
            )

        candidates = []
        for item_id in unique_ids:
            item = items.get(item_id)
            if item is None:
                continue
            candidates.append(
                SelectionCandidate(
                    item_id=item_id,
                    mean=item.mean,
                    comparison_count=item.comparison_count,
                    signal_count=item.signal_count,
                    priority_weight=priority_weights.get(item_id, 0.0),
                )
            )
        return candidates

    async def select(
        self,
        pool_ids: list[str],
        mode: SelectionMode = SelectionMode.PAIR,
        priority_weights: dict[str, float] | None = None,
    ) -> PairSelection | SingleSelection:
        """
        Select the next pair or single item from the pool.

        Raises:
            SelectionStarvedError: If too few known items remain in the pool.
        """
        mode = SelectionMode(mode)
        metrics = get_metrics()
        start = time.perf_counter()

        candidates = await self._load_candidates(pool_ids, priority_weights)
        try:
            if mode == SelectionMode.PAIR:
                selection = self._engine.select_pair(candidates)
            else:
                selection = self._engine.select_single(candidates)
        except SelectionStarvedError as e:
            metrics.record_selection(mode.value, "starved")
            logger.warning(
                "Selection starved",
                mode=mode.value,
                requested=len(pool_ids),
                known=len(candidates),
                error=str(e),
            )
            raise

        latency = time.perf_counter() - start
        repeated = isinstance(selection, PairSelection) and selection.repeated
        metrics.record_selection(
            mode.value, "repeated" if repeated else "selected", latency
        )
        logger.debug(
            "Selection made",
            mode=mode.value,
            pool_size=len(candidates),
            rationale=selection.rationale,
        )
        return selection

    async def next_pair(
        self,
        pool_ids: list[str],
        priority_weights: dict[str, float] | None = None,
    ) -> PairSelection:
        return await self.select(pool_ids, SelectionMode.PAIR, priority_weights)

    async def next_single(self, pool_ids: list[str]) -> SingleSelection:
        return await self.select(pool_ids, SelectionMode.SINGLE)
