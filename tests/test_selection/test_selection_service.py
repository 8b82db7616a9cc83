"""Tests for SelectionService against the memory store."""

import pytest

from src.errors import SelectionStarvedError
from src.selection.config import SelectionConfig
from src.selection.schemas import PairSelection, SingleSelection
from src.selection.service import SelectionMode, SelectionService


class TestSelectionService:
    @pytest.mark.asyncio
    async def test_pair_from_known_items(self, memory_store):
        await memory_store.register_items(["a", "b", "c"], 1200.0, 350.0)
        service = SelectionService(memory_store, config=SelectionConfig(seed=1))

        selection = await service.select(["a", "b", "c"], SelectionMode.PAIR)

        assert isinstance(selection, PairSelection)
        assert {selection.item_a, selection.item_b} <= {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_unknown_ids_dropped(self, memory_store):
        await memory_store.register_items(["a", "b"], 1200.0, 350.0)
        service = SelectionService(memory_store, config=SelectionConfig(seed=1))

        selection = await service.next_pair(["a", "ghost", "b", "phantom"])

        assert {selection.item_a, selection.item_b} == {"a", "b"}

    @pytest.mark.asyncio
    async def test_starved_when_only_one_known(self, memory_store):
        await memory_store.register_items(["a"], 1200.0, 350.0)
        service = SelectionService(memory_store)

        with pytest.raises(SelectionStarvedError):
            await service.next_pair(["a", "ghost"])

    @pytest.mark.asyncio
    async def test_single_mode(self, memory_store):
        await memory_store.register_items(["a", "b"], 1200.0, 350.0)
        service = SelectionService(memory_store, config=SelectionConfig(seed=1))

        selection = await service.select(["a", "b"], "single")

        assert isinstance(selection, SingleSelection)

    @pytest.mark.asyncio
    async def test_recent_pairs_shared_across_calls(self, memory_store):
        await memory_store.register_items(["a", "b", "c"], 1200.0, 350.0)
        service = SelectionService(memory_store, config=SelectionConfig(seed=9))

        keys = {(await service.next_pair(["a", "b", "c"])).pair_key for _ in range(3)}

        assert len(keys) == 3
        assert (await service.next_pair(["a", "b", "c"])).repeated

    @pytest.mark.asyncio
    async def test_priority_weights_passed_through(self, memory_store):
        await memory_store.register_items(["a", "b", "c", "d"], 1200.0, 350.0)
        service = SelectionService(
            memory_store, config=SelectionConfig(seed=1, top_k=1)
        )

        selection = await service.next_pair(
            ["a", "b", "c", "d"], priority_weights={"c": 1.0, "d": 1.0}
        )

        assert {selection.item_a, selection.item_b} == {"c", "d"}
        assert "Priority boost" in selection.reasons
