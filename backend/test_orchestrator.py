"""
Tests for the provider fallback chain and the analyzers it drives.

Providers are stubs implementing the InsightProvider interface; no network.
"""
from unittest.mock import AsyncMock, Mock

import pytest

from analysis import FanOutAnalyzer, SingleShotAnalyzer
from errors import (
    AnalysisFailedError,
    InputValidationError,
    ProviderQuotaError,
    ProviderTimeoutError,
    ProviderTransientError,
)
from fallback import DeterministicAnalyzer, speech_score
from feedback import SUMMARY_FALLBACK, SUMMARY_FALLBACK_ACTIONS, compose_content, compose_overall
from language.lexical import extract_stats
from language.structure import analyze_structure
from llm import InsightProvider, ProviderInsight
from non_verbal.pose import body_language_from_pose
from orchestrator import ProviderFallbackOrchestrator, validate_request
from schemas import AnalyzeSpeechRequest, CompositeAnalysis, PoseSummary, SpeechInput

TRANSCRIPT = (
    "Our team built a new park in the city center. Families gather there every weekend. "
    "Children play on the grass while parents read books under tall oak trees. Everyone loves it."
)


class TaskProvider(InsightProvider):
    """Answers each provider task from a table; an exception entry is raised."""

    name = "stub"

    def __init__(self, responses):
        super().__init__(timeout=1.0)
        self.responses = responses
        self.tasks = []

    async def _complete(self, system_prompt, user_prompt, temperature):
        raise AssertionError("score() is stubbed")

    async def score(self, transcript, hints=None):
        task = (hints or {}).get("task", "language")
        self.tasks.append(task)
        response = self.responses[task]
        if isinstance(response, Exception):
            raise response
        scores = {
            k: float(v) for k, v in response.items()
            if isinstance(v, (int, float)) and not isinstance(v, bool)
        }
        return ProviderInsight(scores=scores, insights=response.get("insights", []), payload=response)


class UnreachableProvider(InsightProvider):
    """Every completion fails at the connection level."""

    name = "unreachable"

    def __init__(self):
        super().__init__(timeout=1.0)

    async def _complete(self, system_prompt, user_prompt, temperature):
        raise ConnectionError("connection refused")


GOOD_RESPONSES = {
    "language": {"coherence": 80, "engagement": 80, "readability": 80, "insights": ["Good."]},
    "structure": {
        "score": 60, "hasIntroduction": True, "hasConclusion": False,
        "logicalFlow": 70, "cohesiveness": 65, "insights": ["Clear opening."],
    },
    "confidence": {
        "score": 75, "voiceModulation": 70, "pacing": 80, "presence": 72, "recovery": 60,
        "insights": ["Steady."],
    },
    "summary": {"summary": "Well done.", "actionItems": ["Pause more.", "Add a story."]},
}


def request(transcript=TRANSCRIPT, duration=12.0, pose=None):
    return AnalyzeSpeechRequest(transcript=transcript, duration=duration, pose_data=pose)


def analyzer_returning(result=None, error=None):
    analyzer = Mock()
    analyzer.analyze = AsyncMock(return_value=result, side_effect=error)
    return analyzer


class TestValidation:
    def test_valid_request(self):
        speech = validate_request(request())
        assert speech.duration == 12.0

    @pytest.mark.parametrize("duration", [0, -5, None])
    def test_non_positive_duration_rejected(self, duration):
        with pytest.raises(InputValidationError):
            validate_request(request(duration=duration))

    def test_missing_transcript_rejected(self):
        with pytest.raises(InputValidationError):
            validate_request(AnalyzeSpeechRequest(duration=10))


class TestProviderFallbackOrchestrator:
    @pytest.mark.asyncio
    async def test_primary_success(self):
        primary_result = CompositeAnalysis(overall_score=88)
        primary = analyzer_returning(primary_result)
        secondary = analyzer_returning(CompositeAnalysis())
        orchestrator = ProviderFallbackOrchestrator(primary, secondary, DeterministicAnalyzer())

        result, tag = await orchestrator.run(request())

        assert tag == "primary"
        assert result is primary_result
        secondary.analyze.assert_not_called()

    @pytest.mark.asyncio
    async def test_quota_error_falls_back_to_secondary_once(self):
        secondary_result = CompositeAnalysis(overall_score=64)
        primary = analyzer_returning(error=ProviderQuotaError("quota", provider="openai"))
        secondary = analyzer_returning(secondary_result)
        orchestrator = ProviderFallbackOrchestrator(primary, secondary, DeterministicAnalyzer())

        result, tag = await orchestrator.run(request())

        assert tag == "secondary"
        assert result is secondary_result
        secondary.analyze.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_falls_back_like_quota(self):
        primary = analyzer_returning(error=ProviderTimeoutError("slow", provider="openai"))
        secondary = analyzer_returning(CompositeAnalysis())
        orchestrator = ProviderFallbackOrchestrator(primary, secondary, DeterministicAnalyzer())

        _, tag = await orchestrator.run(request())
        assert tag == "secondary"

    @pytest.mark.asyncio
    async def test_transient_primary_error_falls_back(self):
        primary = analyzer_returning(error=ProviderTransientError("connection reset", provider="openai"))
        secondary = analyzer_returning(CompositeAnalysis())
        orchestrator = ProviderFallbackOrchestrator(primary, secondary, DeterministicAnalyzer())

        _, tag = await orchestrator.run(request())
        assert tag == "secondary"
        secondary.analyze.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable_primary_provider_uses_secondary(self):
        secondary_result = CompositeAnalysis(overall_score=66)
        secondary = analyzer_returning(secondary_result)
        orchestrator = ProviderFallbackOrchestrator(
            FanOutAnalyzer(UnreachableProvider()), secondary, DeterministicAnalyzer()
        )

        result, tag = await orchestrator.run(request())

        assert tag == "secondary"
        assert result is secondary_result
        secondary.analyze.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_both_providers_fail_returns_deterministic_result(self):
        primary = analyzer_returning(error=ProviderQuotaError("quota"))
        secondary = analyzer_returning(error=ProviderTransientError("bad json"))
        local = DeterministicAnalyzer()
        orchestrator = ProviderFallbackOrchestrator(primary, secondary, local)

        result, tag = await orchestrator.run(request())

        assert tag == "fallback"
        assert result == local.analyze(validate_request(request()))
        secondary.analyze.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_secondary_unexpected_error_still_falls_back(self):
        primary = analyzer_returning(error=ProviderQuotaError("quota"))
        secondary = analyzer_returning(error=RuntimeError("sdk bug"))
        orchestrator = ProviderFallbackOrchestrator(primary, secondary, DeterministicAnalyzer())

        _, tag = await orchestrator.run(request())
        assert tag == "fallback"

    @pytest.mark.asyncio
    async def test_non_provider_primary_error_is_terminal(self):
        primary = analyzer_returning(error=RuntimeError("unexpected"))
        secondary = analyzer_returning(CompositeAnalysis())
        orchestrator = ProviderFallbackOrchestrator(primary, secondary, DeterministicAnalyzer())

        with pytest.raises(AnalysisFailedError):
            await orchestrator.run(request())
        secondary.analyze.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_providers_go_straight_to_local(self):
        orchestrator = ProviderFallbackOrchestrator(None, None, DeterministicAnalyzer())
        _, tag = await orchestrator.run(request())
        assert tag == "fallback"

    @pytest.mark.asyncio
    async def test_missing_primary_uses_secondary(self):
        secondary = analyzer_returning(CompositeAnalysis())
        orchestrator = ProviderFallbackOrchestrator(None, secondary, DeterministicAnalyzer())
        _, tag = await orchestrator.run(request())
        assert tag == "secondary"

    @pytest.mark.asyncio
    async def test_invalid_duration_runs_no_analyzer(self):
        primary = analyzer_returning(CompositeAnalysis())
        local = Mock()
        orchestrator = ProviderFallbackOrchestrator(primary, None, local)

        with pytest.raises(InputValidationError):
            await orchestrator.run(request(duration=0))
        primary.analyze.assert_not_called()
        local.analyze.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_transcript_short_circuits(self):
        primary = analyzer_returning(CompositeAnalysis())
        orchestrator = ProviderFallbackOrchestrator(primary, None, DeterministicAnalyzer())

        result, tag = await orchestrator.run(
            request(transcript="   ", pose=PoseSummary(posture=90, gestures=90))
        )

        assert tag == "none"
        assert result.speech_content.score == 0
        assert result.overall_score == 0
        assert result.speech_content.insights == ["No speech detected to analyze."]
        primary.analyze.assert_not_called()


class TestFanOutAnalyzer:
    @pytest.mark.asyncio
    async def test_all_dimensions_combined(self):
        provider = TaskProvider(GOOD_RESPONSES)
        speech = validate_request(request())

        result = await FanOutAnalyzer(provider).analyze(speech)

        language_score = result.speech_content.grammar_and_language.score
        assert result.speech_content.structure.score == 60
        assert result.speech_content.structure.has_introduction is True
        assert result.confidence.score == 75
        assert result.body_language.score == 50
        assert result.speech_content.score == compose_content(language_score, 60)
        assert result.overall_score == compose_overall(result.speech_content.score, 50, 75)
        assert result.speech_content.insights == ["Good.", "Clear opening."]
        assert result.summary == "Well done."
        assert result.top_action_items == ["Pause more.", "Add a story."]
        assert sorted(provider.tasks) == ["confidence", "language", "structure", "summary"]

    @pytest.mark.asyncio
    async def test_transient_failure_uses_default(self):
        provider = TaskProvider({**GOOD_RESPONSES, "structure": ProviderTransientError("bad json")})
        result = await FanOutAnalyzer(provider).analyze(validate_request(request()))

        structure = result.speech_content.structure
        assert structure.score == 50
        assert structure.has_introduction is False
        assert structure.insights == ["Error occurred during structure analysis."]
        assert result.confidence.score == 75

    @pytest.mark.asyncio
    async def test_quota_in_any_dimension_raises(self):
        provider = TaskProvider({**GOOD_RESPONSES, "confidence": ProviderQuotaError("quota")})
        with pytest.raises(ProviderQuotaError):
            await FanOutAnalyzer(provider).analyze(validate_request(request()))

    @pytest.mark.asyncio
    async def test_every_provider_call_failing_raises(self):
        down = ProviderTransientError("connection refused")
        provider = TaskProvider({"language": down, "structure": down, "confidence": down, "summary": down})
        with pytest.raises(ProviderTransientError):
            await FanOutAnalyzer(provider).analyze(validate_request(request()))
        assert "summary" not in provider.tasks

    @pytest.mark.asyncio
    async def test_short_transcript_with_failing_provider_raises(self):
        # under the word floor the language step never calls the provider
        down = ProviderTransientError("connection refused")
        provider = TaskProvider({"structure": down, "confidence": down})
        with pytest.raises(ProviderTransientError):
            await FanOutAnalyzer(provider).analyze(
                validate_request(request(transcript="Thank you all for coming today."))
            )
        assert "language" not in provider.tasks

    @pytest.mark.asyncio
    async def test_summary_failure_uses_canned_feedback(self):
        provider = TaskProvider({**GOOD_RESPONSES, "summary": ProviderTransientError("down")})
        result = await FanOutAnalyzer(provider).analyze(validate_request(request()))

        assert result.summary == SUMMARY_FALLBACK
        assert result.top_action_items == SUMMARY_FALLBACK_ACTIONS

    @pytest.mark.asyncio
    async def test_pose_data_drives_body_language(self):
        pose = PoseSummary(frames=90, posture=80, gestures=60, movement=40, stability=100)
        provider = TaskProvider(GOOD_RESPONSES)
        result = await FanOutAnalyzer(provider).analyze(validate_request(request(pose=pose)))
        assert result.body_language.score == 74


class TestSingleShotAnalyzer:
    @pytest.mark.asyncio
    async def test_response_is_sanitized(self):
        provider = TaskProvider({
            "full": {
                "speechContent": {"score": 120},
                "confidence": {"score": 80},
                "summary": "Solid talk.",
            }
        })
        result = await SingleShotAnalyzer(provider).analyze(validate_request(request()))

        assert result.speech_content.score == 100
        assert result.body_language.score == 70
        assert result.overall_score == compose_overall(100, 70, 80)
        assert len(result.top_action_items) == 3
        assert provider.tasks == ["full"]

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self):
        provider = TaskProvider({"full": ProviderTransientError("down")})
        with pytest.raises(ProviderTransientError):
            await SingleShotAnalyzer(provider).analyze(validate_request(request()))


class TestDeterministicAnalyzer:
    def test_speech_score_rules(self):
        assert speech_score(10, 90, 0, 10) == 60
        assert speech_score(100, 150, 3, 12) == 74
        assert speech_score(5, 200, 50, 30) == 0

    def test_confidence_from_pace_and_fillers(self):
        result = DeterministicAnalyzer().analyze(SpeechInput(transcript=TRANSCRIPT, duration=12))
        # in-band pace (90) and no fillers (100)
        assert result.confidence.score == 94

    def test_structure_formula(self):
        result = DeterministicAnalyzer().analyze(SpeechInput(transcript=TRANSCRIPT, duration=12))
        metrics = analyze_structure(extract_stats(TRANSCRIPT).sentences)
        expected = round(
            0.4 * metrics.pacing_score + 0.3 * metrics.variety_score + 0.3 * metrics.complexity_score
        )
        assert result.speech_content.structure.score == expected

    def test_scores_in_range_and_composed(self):
        pose = PoseSummary(frames=60, posture=30, gestures=20, movement=50, stability=90)
        result = DeterministicAnalyzer().analyze(
            SpeechInput(transcript=TRANSCRIPT, duration=12, pose=pose)
        )

        for score in (
            result.speech_content.score,
            result.speech_content.grammar_and_language.score,
            result.speech_content.structure.score,
            result.body_language.score,
            result.confidence.score,
            result.overall_score,
        ):
            assert 0 <= score <= 100
        assert result.body_language == body_language_from_pose(pose)
        assert result.overall_score == compose_overall(
            result.speech_content.score, result.body_language.score, result.confidence.score
        )
        assert result.summary
        assert 1 <= len(result.top_action_items) <= 5
        assert any("shoulders" in item for item in result.top_action_items)
