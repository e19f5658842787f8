# tests/test_assembler.py
"""
Tests for the context assembler.

Covers:
- the reference scenarios (fresh session, saturated session, ceiling at
  Core's cost, ceiling below Core's cost)
- the hard ceiling: partial tiers, skipped lower tiers, never exceeded
- Summary excerpts and Omit skipping the Reference fetch
- determinism and inclusion order
- graceful provider failure, concurrency and cancellation
- rendering to text and chat messages
"""

import asyncio
import logging
from datetime import datetime

import pytest

from chuk_context_budget.assembler import (
    AssemblerConfig,
    ContextAssembler,
    calculate_token_savings,
    condense_text,
    rank_candidates,
)
from chuk_context_budget.exceptions import CoreOverflow, InvalidCeiling
from chuk_context_budget.models import CandidateItem, PruningBracket, PruningPolicy, ReferenceMode, TierKind
from chuk_context_budget.providers import CallbackProvider, StaticProvider
from chuk_context_budget.pruning import PruningStrategySelector
from tests.helpers import BASE_TIME, make_document, make_records, words


def make_assembler(tracker, providers, **kwargs) -> ContextAssembler:
    return ContextAssembler(tracker, providers, selector=PruningStrategySelector.default(), **kwargs)


def counting_provider(tier, records, calls):
    async def fetch(session_id):
        calls.append(session_id)
        return records

    return CallbackProvider(tier, fetch)


class BrokenProvider:
    """Satisfies the provider protocol but raises on every fetch."""

    tier = TierKind.CURATED

    async def fetch_candidates(self, session_id):
        raise RuntimeError("seed store offline")


class TestScenarios:
    @pytest.mark.asyncio
    async def test_fresh_session_includes_everything(self, tracker, scenario_providers):
        assembler = make_assembler(tracker, scenario_providers)
        context, breakdown = await assembler.assemble("s1", 1000)

        assert breakdown.core.tokens == 50
        assert breakdown.curated.tokens == 90
        assert breakdown.reference.tokens == 200
        assert breakdown.history.tokens == 200
        assert breakdown.history.items == 10
        assert breakdown.total == 540
        assert breakdown.present_tiers() == [TierKind.CORE, TierKind.CURATED, TierKind.REFERENCE, TierKind.HISTORY]

        assert context.total_tokens == 540
        assert context.bracket == "<40%"
        assert context.policy.reference_mode == ReferenceMode.FULL
        assert not context.truncated_by_ceiling
        assert context.breakdown == breakdown

    @pytest.mark.asyncio
    async def test_saturated_session_prunes(self, tracker, scenario_providers):
        assembler = make_assembler(tracker, scenario_providers)
        fresh, _ = await assembler.assemble("s1", 1000)

        tracker.apply_usage("s1", 850)
        context, breakdown = await assembler.assemble("s1", 1000)

        assert context.consumed_fraction == 0.85
        assert context.policy.reference_mode == ReferenceMode.OMIT
        assert breakdown.reference.items == 0
        assert breakdown.curated.items == 0
        assert [item.id for item in context.items_for(TierKind.HISTORY)] == ["turn9", "turn8"]
        assert breakdown.total == 90
        assert breakdown.total < fresh.total_tokens

    @pytest.mark.asyncio
    async def test_ceiling_equal_to_core(self, tracker, scenario_providers):
        context, breakdown = await make_assembler(tracker, scenario_providers).assemble("s1", 50)

        assert breakdown.core.tokens == 50
        assert breakdown.curated == {"tokens": 0, "items": 0}
        assert breakdown.reference.items == 0
        assert breakdown.history.items == 0
        assert breakdown.total == 50
        assert context.truncated_by_ceiling
        assert context.truncated_at == TierKind.CURATED

    @pytest.mark.asyncio
    async def test_ceiling_below_core(self, tracker, scenario_providers):
        with pytest.raises(CoreOverflow, match="budget too small") as excinfo:
            await make_assembler(tracker, scenario_providers).assemble("s1", 40)
        assert excinfo.value.core_tokens == 50
        assert excinfo.value.ceiling == 40

    @pytest.mark.asyncio
    async def test_usage_recorded_concurrently_then_assembled(self, tracker, scenario_providers):
        await asyncio.gather(tracker.record_usage("s1", 100), tracker.record_usage("s1", 100))
        context, _ = await make_assembler(tracker, scenario_providers).assemble("s1", 1000)
        assert context.consumed_fraction == 0.2


class TestCeiling:
    @pytest.mark.parametrize("ceiling", [0, -5, 1.5, True, "100", None])
    @pytest.mark.asyncio
    async def test_invalid_ceiling_rejected_before_fetch(self, tracker, ceiling):
        calls = []
        providers = {TierKind.CORE: counting_provider(TierKind.CORE, [{"id": "c", "text": "x"}], calls)}
        with pytest.raises(InvalidCeiling):
            await make_assembler(tracker, providers).assemble("s1", ceiling)
        assert calls == []

    @pytest.mark.asyncio
    async def test_lower_tiers_skipped_after_cutoff(self, tracker, scenario_providers, caplog):
        assembler = make_assembler(tracker, scenario_providers)
        with caplog.at_level(logging.INFO, logger="chuk_context_budget.assembler"):
            context, breakdown = await assembler.assemble("s1", 200)

        # Reference (200) does not fit after 140; History items would, but are skipped
        assert breakdown.total == 140
        assert breakdown.reference.items == 0
        assert breakdown.history.items == 0
        assert context.truncated_at == TierKind.REFERENCE
        assert "ceiling of 200 tokens reached" in caplog.text

    @pytest.mark.asyncio
    async def test_partial_tier_keeps_newest(self, tracker, scenario_providers):
        context, breakdown = await make_assembler(tracker, scenario_providers).assemble("s1", 400)

        assert breakdown.total == 400
        assert [item.id for item in context.items_for(TierKind.HISTORY)] == ["turn9", "turn8", "turn7"]
        assert context.truncated_at == TierKind.HISTORY

    @pytest.mark.asyncio
    async def test_never_exceeds_ceiling(self, tracker, scenario_providers):
        assembler = make_assembler(tracker, scenario_providers)
        for used in (0, 450, 700, 950):
            session_id = f"s{used}"
            tracker.apply_usage(session_id, used)
            for ceiling in range(50, 700, 13):
                context, breakdown = await assembler.assemble(session_id, ceiling)
                assert breakdown.total <= ceiling
                priorities = [item.tier.priority for item in context.items]
                assert priorities == sorted(priorities)

    @pytest.mark.asyncio
    async def test_core_limit_caps_items(self, tracker):
        selector = PruningStrategySelector([PruningBracket(upper_bound=1.0, policy=PruningPolicy(core_limit=1))])
        providers = {TierKind.CORE: StaticProvider(TierKind.CORE, make_records("core", 3, 5))}
        context, _ = await ContextAssembler(tracker, providers, selector=selector).assemble("s1", 100)
        assert [item.id for item in context.items] == ["core2"]


class TestReferenceModes:
    @pytest.mark.asyncio
    async def test_summary_excerpt(self, tracker, scenario_providers):
        tracker.apply_usage("s1", 500)
        context, breakdown = await make_assembler(tracker, scenario_providers).assemble("s1", 1000)

        assert context.policy.reference_mode == ReferenceMode.SUMMARY
        [doc] = context.items_for(TierKind.REFERENCE)
        assert doc.excerpt is True
        assert doc.text.splitlines()[:10] == make_document(20, 10).splitlines()[:10]
        assert doc.text.endswith("... [truncated: 20 lines total]")
        assert breakdown.reference.tokens == 105
        assert breakdown.total == 50 + 90 + 105 + 200

    @pytest.mark.asyncio
    async def test_summary_of_short_document_is_unchanged(self, tracker):
        tracker.apply_usage("s1", 500)
        providers = {TierKind.REFERENCE: StaticProvider(TierKind.REFERENCE, [{"id": "d", "text": "one\ntwo"}])}
        context, _ = await make_assembler(tracker, providers).assemble("s1", 100)
        [doc] = context.items
        assert doc.excerpt is False
        assert doc.text == "one\ntwo"

    @pytest.mark.asyncio
    async def test_summary_lines_configurable(self, tracker, scenario_providers):
        tracker.apply_usage("s1", 500)
        assembler = make_assembler(tracker, scenario_providers, config=AssemblerConfig(summary_lines=2))
        _, breakdown = await assembler.assemble("s1", 1000)
        assert breakdown.reference.tokens == 25

    @pytest.mark.asyncio
    async def test_omit_skips_reference_fetch(self, tracker):
        calls = []
        providers = {
            TierKind.CURATED: StaticProvider(TierKind.CURATED, make_records("seed", 5, 1)),
            TierKind.REFERENCE: counting_provider(TierKind.REFERENCE, [{"id": "d", "text": "doc"}], calls),
        }
        tracker.apply_usage("s1", 700)
        context, _ = await make_assembler(tracker, providers).assemble("s1", 1000)

        assert calls == []
        assert [item.id for item in context.items_for(TierKind.CURATED)] == ["seed4", "seed3", "seed2"]


class TestDeterminism:
    @pytest.mark.asyncio
    async def test_identical_inputs_identical_output(self, tracker, scenario_providers):
        assembler = make_assembler(tracker, scenario_providers)
        first, first_breakdown = await assembler.assemble("s1", 600)
        second, second_breakdown = await assembler.assemble("s1", 600)

        assert first.text == second.text
        assert [item.id for item in first.items] == [item.id for item in second.items]
        assert first_breakdown == second_breakdown

    @pytest.mark.asyncio
    async def test_inclusion_order(self, tracker, scenario_providers):
        context, _ = await make_assembler(tracker, scenario_providers).assemble("s1", 1000)
        ids = [item.id for item in context.items]
        assert ids[:5] == ["core", "seed2", "seed1", "seed0", "doc"]
        assert ids[5:] == [f"turn{i}" for i in range(9, -1, -1)]

    @pytest.mark.asyncio
    async def test_providers_as_list(self, tracker, scenario_providers):
        context, _ = await make_assembler(tracker, list(scenario_providers.values())).assemble("s1", 1000)
        assert context.total_tokens == 540


class TestProviderFailures:
    @pytest.mark.asyncio
    async def test_failing_provider_is_empty_tier(self, tracker, scenario_providers):
        async def broken(session_id):
            raise ConnectionError("history store unreachable")

        scenario_providers[TierKind.HISTORY] = CallbackProvider(TierKind.HISTORY, broken)
        context, breakdown = await make_assembler(tracker, scenario_providers).assemble("s1", 1000)

        assert breakdown.history.items == 0
        assert breakdown.total == 340
        assert not context.truncated_by_ceiling

    @pytest.mark.asyncio
    async def test_protocol_provider_exception_absorbed(self, tracker, scenario_providers):
        scenario_providers[TierKind.CURATED] = BrokenProvider()
        _, breakdown = await make_assembler(tracker, scenario_providers).assemble("s1", 1000)
        assert breakdown.curated.items == 0
        assert breakdown.total == 450

    @pytest.mark.asyncio
    async def test_protocol_provider_with_mixed_timestamps(self, tracker):
        class PlainHistory:
            tier = TierKind.HISTORY

            async def fetch_candidates(self, session_id):
                return [
                    CandidateItem(id="naive", tier=TierKind.HISTORY, text="a b", recency=datetime(2025, 1, 1, 12)),
                    CandidateItem.from_record(
                        TierKind.HISTORY, {"id": "aware", "text": "c", "timestamp": "2025-01-01T13:00:00Z"}
                    ),
                ]

        context, breakdown = await make_assembler(tracker, {TierKind.HISTORY: PlainHistory()}).assemble("s1", 100)
        assert breakdown.history.items == 2
        assert [item.id for item in context.items] == ["aware", "naive"]

    @pytest.mark.asyncio
    async def test_missing_tiers(self, tracker):
        providers = {TierKind.CORE: StaticProvider(TierKind.CORE, [{"id": "c", "text": words(5)}])}
        context, breakdown = await make_assembler(tracker, providers).assemble("s1", 100)
        assert breakdown.present_tiers() == [TierKind.CORE]
        assert context.text == words(5)

    @pytest.mark.asyncio
    async def test_items_from_other_tiers_dropped(self, tracker):
        stray = CandidateItem(id="stray", tier=TierKind.HISTORY, text="misfiled")
        providers = {TierKind.CURATED: StaticProvider(TierKind.CURATED, [stray])}
        context, _ = await make_assembler(tracker, providers).assemble("s1", 100)
        assert context.items == []


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_fetches_run_concurrently(self, tracker):
        history_started = asyncio.Event()

        async def curated(session_id):
            await history_started.wait()
            return [{"id": "seed", "text": "seed"}]

        async def history(session_id):
            history_started.set()
            return [{"id": "turn", "text": "turn"}]

        providers = {
            TierKind.CURATED: CallbackProvider(TierKind.CURATED, curated),
            TierKind.HISTORY: CallbackProvider(TierKind.HISTORY, history),
        }
        context, _ = await asyncio.wait_for(make_assembler(tracker, providers).assemble("s1", 100), timeout=2)
        assert [item.id for item in context.items] == ["seed", "turn"]

    @pytest.mark.asyncio
    async def test_cancellation_cancels_fetches(self, tracker):
        started = asyncio.Event()
        cancelled = []

        async def slow(session_id):
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(session_id)
                raise
            return []

        providers = {TierKind.HISTORY: CallbackProvider(TierKind.HISTORY, slow)}
        task = asyncio.create_task(make_assembler(tracker, providers).assemble("s1", 100))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert cancelled == ["s1"]


class TestRanking:
    def _items(self, hints):
        return [
            CandidateItem.from_record(
                TierKind.CURATED,
                {"id": f"seed{i}", "text": "x", "timestamp": (BASE_TIME.timestamp() + i), "relevance_hint": hint},
            )
            for i, hint in enumerate(hints)
        ]

    def test_pure_recency_by_default(self):
        ranked = rank_candidates(self._items([0.9, 0.1, 0.5]))
        assert [item.id for item in ranked] == ["seed2", "seed1", "seed0"]

    def test_pure_relevance(self):
        ranked = rank_candidates(self._items([0.9, 0.1, 0.5]), relevance_weight=1.0)
        assert [item.id for item in ranked] == ["seed0", "seed2", "seed1"]

    def test_blended(self):
        ranked = rank_candidates(self._items([0.9, 0.1, 0.5]), relevance_weight=0.5)
        assert [item.id for item in ranked] == ["seed2", "seed0", "seed1"]

    @pytest.mark.asyncio
    async def test_assembler_uses_relevance_weight(self, tracker):
        providers = {TierKind.CURATED: StaticProvider(TierKind.CURATED, self._items([0.9, 0.1, 0.5]))}
        assembler = make_assembler(tracker, providers, config=AssemblerConfig(relevance_weight=1.0))
        context, _ = await assembler.assemble("s1", 100)
        assert [item.id for item in context.items] == ["seed0", "seed2", "seed1"]


class TestRendering:
    @pytest.mark.asyncio
    async def test_to_messages(self, tracker, scenario_providers):
        context, _ = await make_assembler(tracker, scenario_providers).assemble("s1", 1000)
        query = {"role": "user", "content": "What now?"}
        messages = context.to_messages(query)

        assert [m["role"] for m in messages] == ["system"] * 4 + ["user"]
        assert messages[0]["content"] == words(50, "core")
        assert messages[1]["content"].startswith("Active Seeds:\n\nseed2")
        assert messages[2]["content"].startswith("Referenced Files:\n\n")
        history = messages[3]["content"]
        assert history.startswith("Conversation History:\n\nturn0")
        assert history.index("turn0") < history.index("turn9")
        assert messages[-1] is query

    @pytest.mark.asyncio
    async def test_text_joins_tiers_in_order(self, tracker, scenario_providers):
        context, _ = await make_assembler(tracker, scenario_providers).assemble("s1", 1000)
        text = context.text
        assert text.startswith(words(50, "core"))
        assert text.index("seed2") < text.index("doc0") < text.index("turn0") < text.index("turn9")


class TestHelpers:
    def test_condense_text(self):
        doc = make_document(5, 2)
        assert condense_text(doc, 10) == doc
        assert condense_text(doc, 2) == "doc0 doc0\ndoc1 doc1\n... [truncated: 5 lines total]"

    @pytest.mark.asyncio
    async def test_token_savings(self, tracker, scenario_providers):
        context, _ = await make_assembler(tracker, scenario_providers).assemble("s1", 1000)
        savings = calculate_token_savings(1000, context)
        assert savings.saved_tokens == 460
        assert savings.percent_saved == pytest.approx(46.0)
        assert calculate_token_savings(0, context).saved_tokens == 0

    def test_config_validation(self):
        with pytest.raises(ValueError):
            AssemblerConfig(summary_lines=0)
        with pytest.raises(ValueError):
            AssemblerConfig(relevance_weight=1.5)
