"""Tests for per-unit orchestration and ordered reassembly."""
from __future__ import annotations

import asyncio

from interlinear.dispatcher import BoundedDispatcher
from interlinear.errors import ErrorCategory, FailureKind
from interlinear.policy import ErrorPolicy
from interlinear.translator import PipelineCoordinator, SegmentTranslator


class ExplodingTranslator(SegmentTranslator):
    """Raises instead of resolving for segments containing ``boom``."""

    async def translate(self, segment, max_retries=None):
        if "boom" in segment:
            raise RuntimeError("reassembly defect")
        return await super().translate(segment, max_retries)


class TestPipelineCoordinator:
    """Tests for PipelineCoordinator.translate_unit."""

    def test_blank_text_passes_through(self, scripted_endpoint, make_coordinator):
        endpoint = scripted_endpoint()

        async def scenario():
            coordinator = make_coordinator(endpoint)
            return await coordinator.translate_unit("   "), await coordinator.translate_unit("")

        assert asyncio.run(scenario()) == ("   ", "")
        assert endpoint.calls == []

    def test_reassembles_in_index_order_despite_completion_order(
        self, scripted_endpoint, make_coordinator
    ):
        endpoint = scripted_endpoint(
            delays={"First. ": 0.06, "Second. ": 0.03, "Third.": 0.0},
        )

        async def scenario():
            coordinator = make_coordinator(endpoint, max_segment_length=8)
            return await coordinator.translate_unit("First. Second. Third.")

        assert asyncio.run(scenario()) == "FIRST. SECOND. THIRD."
        assert endpoint.completed == ["Third.", "Second. ", "First. "]

    def test_rejected_segment_becomes_index_placeholder(self, scripted_endpoint):
        endpoint = scripted_endpoint()
        policy = ErrorPolicy(quiet=True)

        async def scenario():
            translator = ExplodingTranslator(
                endpoint,
                source_language="en",
                target_language="zh-CN",
                retry_delay=0.0,
                error_policy=policy,
            )
            coordinator = PipelineCoordinator(
                translator, BoundedDispatcher(2), max_segment_length=8
            )
            return await coordinator.translate_unit("Fine. boom. Good.")

        assert asyncio.run(scenario()) == "FINE. [Segment 1 failed to translate]GOOD."
        assert policy.count(ErrorCategory.REASSEMBLY) == 1

    def test_timed_out_segment_falls_back_between_translated_siblings(
        self, scripted_endpoint, make_coordinator
    ):
        endpoint = scripted_endpoint(hang={"Second. "})

        async def scenario():
            coordinator = make_coordinator(
                endpoint, max_segment_length=8, max_retries=3, timeout=0.01
            )
            result = await coordinator.translate_unit("First. Second. Third.")
            return result, coordinator

        result, coordinator = asyncio.run(scenario())
        assert result == "FIRST. " + FailureKind.TIMEOUT.fallback_text + "THIRD."
        assert endpoint.calls_for("Second. ") == 4
        assert coordinator.segments_translated == 2
        assert coordinator.segments_failed == 1

    def test_successful_units_are_cached(self, scripted_endpoint, make_coordinator):
        endpoint = scripted_endpoint()

        async def scenario():
            coordinator = make_coordinator(endpoint)
            first = await coordinator.translate_unit("Hello there.")
            second = await coordinator.translate_unit("Hello there.")
            return first, second

        assert asyncio.run(scenario()) == ("HELLO THERE.", "HELLO THERE.")
        assert len(endpoint.calls) == 1

    def test_units_with_fallbacks_are_not_cached(self, scripted_endpoint, make_coordinator):
        endpoint = scripted_endpoint(["garbage"])

        async def scenario():
            coordinator = make_coordinator(endpoint, max_retries=0)
            first = await coordinator.translate_unit("Hello there.")
            second = await coordinator.translate_unit("Hello there.")
            return first, second

        first, second = asyncio.run(scenario())
        assert first == FailureKind.PARSE_ERROR.fallback_text
        assert second == "HELLO THERE."
        assert len(endpoint.calls) == 2

    def test_shared_dispatcher_bounds_fan_out_across_units(
        self, scripted_endpoint, make_translator
    ):
        endpoint = scripted_endpoint(delay=0.01)

        async def scenario():
            translator = make_translator(endpoint)
            coordinator = PipelineCoordinator(
                translator, BoundedDispatcher(2), max_segment_length=10, use_cache=False
            )
            texts = [f"Unit {i}. has two parts." for i in range(6)]
            return await asyncio.gather(*(coordinator.translate_unit(t) for t in texts))

        results = asyncio.run(scenario())
        assert results[3] == "UNIT 3. HAS TWO PARTS."
        assert endpoint.peak <= 2
        assert len(endpoint.calls) >= 12

    def test_cache_evicts_least_recently_used_units(self, scripted_endpoint, make_translator):
        endpoint = scripted_endpoint()

        async def scenario():
            coordinator = PipelineCoordinator(
                make_translator(endpoint), BoundedDispatcher(2), cache_size=2
            )
            for text in ["One.", "Two.", "One.", "Three.", "One.", "Two."]:
                await coordinator.translate_unit(text)
            return coordinator

        coordinator = asyncio.run(scenario())
        assert endpoint.calls == ["One.", "Two.", "Three.", "Two."]
        assert list(coordinator._cache) == ["One.", "Two."]

    def test_zero_cache_size_disables_the_cache(self, scripted_endpoint, make_translator):
        endpoint = scripted_endpoint()

        async def scenario():
            coordinator = PipelineCoordinator(
                make_translator(endpoint), BoundedDispatcher(2), cache_size=0
            )
            await coordinator.translate_unit("Again.")
            await coordinator.translate_unit("Again.")

        asyncio.run(scenario())
        assert endpoint.calls == ["Again.", "Again."]
