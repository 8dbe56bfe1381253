"""Tests for weighted chunk ranking."""

import pytest

from context_engine.core.schemas_context import ChunkCandidate
from context_engine.pipeline.ranking import priority_bonus, rank_chunks, score_candidate, source_weight


def _candidate(text: str, research_source: str = "exa", quality: float = 0.8, **kwargs) -> ChunkCandidate:
    return ChunkCandidate(
        text=text, source=research_source, research_source=research_source, quality_score=quality, **kwargs
    )


def test_source_weights():
    assert source_weight("exa") == 1.0
    assert source_weight("wikipedia") == 0.9
    assert source_weight("llm_generation") == 0.7
    assert source_weight("something_else") == 0.5


@pytest.mark.parametrize(
    "priority,expected",
    [(None, 0.0), (1, 1.0), (3, 0.6), (5, 0.2), (9, 0.2), (0, 1.0)],
)
def test_priority_bonus(priority, expected):
    assert priority_bonus(priority) == pytest.approx(expected)


def test_score_combines_all_factors():
    candidate = _candidate("t", "exa", 0.8, agent_utility=["facts"], priority=1)

    # 0.5*1.0 + 0.35*0.8 + 0.15*1 + 0.05*1.0
    assert score_candidate(candidate) == pytest.approx(0.98)


def test_glossary_only_utility_earns_no_agent_match():
    with_glossary = _candidate("t", agent_utility=["glossary"])
    with_cards = _candidate("t", agent_utility=["cards"])

    assert score_candidate(with_cards) - score_candidate(with_glossary) == pytest.approx(0.15)


def test_quality_is_clamped():
    assert score_candidate(_candidate("t", quality=3.0)) == score_candidate(_candidate("t", quality=1.0))
    assert score_candidate(_candidate("t", quality=-1.0)) == score_candidate(_candidate("t", quality=0.0))


def test_ranks_are_dense_and_best_first():
    candidates = [
        _candidate("filler", "llm_generation", 0.7),
        _candidate("search", "exa", 0.9),
        _candidate("wiki", "wikipedia", 0.8),
    ]

    ranked = rank_chunks(candidates, target_count=10)

    assert [r.candidate.text for r in ranked] == ["search", "wiki", "filler"]
    assert [r.rank for r in ranked] == [1, 2, 3]
    assert ranked[0].score >= ranked[1].score >= ranked[2].score


def test_ranking_truncates_to_target():
    candidates = [_candidate(f"c{i}", quality=i / 10) for i in range(10)]

    ranked = rank_chunks(candidates, target_count=4)

    assert len(ranked) == 4
    assert [r.candidate.text for r in ranked] == ["c9", "c8", "c7", "c6"]


def test_ties_keep_input_order():
    candidates = [_candidate("first"), _candidate("second"), _candidate("third")]

    ranked = rank_chunks(candidates, target_count=3)

    assert [r.candidate.text for r in ranked] == ["first", "second", "third"]


def test_zero_target_returns_nothing():
    assert rank_chunks([_candidate("a")], target_count=0) == []
