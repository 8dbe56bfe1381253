"""Tests for glossary snippet selection."""

from context_engine.core.schemas_blueprint import GlossaryTermPlan
from context_engine.core.schemas_context import ResearchChunk
from context_engine.pipeline.snippet_selector import score_snippet, select_relevant_snippets


def _chunk(content: str, quality: float | None = None, utility: list[str] | None = None) -> ResearchChunk:
    metadata = {"agent_utility": utility} if utility else {}
    return ResearchChunk(content=content, api="exa", quality_score=quality, metadata=metadata)


def test_no_chunks_returns_empty():
    assert select_relevant_snippets(GlossaryTermPlan(term="SLO"), []) == []


def test_term_words_and_uppercase_forms_score():
    term = GlossaryTermPlan(term="service level objective")
    chunk = _chunk("A Service Level Objective (SERVICE LEVEL OBJECTIVE) sets a target.")

    # 3 words found (+6), 3 long words in uppercase (+3)
    assert score_snippet(term, chunk) == 9


def test_quality_and_agent_utility_add_to_score():
    term = GlossaryTermPlan(term="zzz", agent_utility=["facts"])

    plain = score_snippet(term, _chunk("nothing here"))
    boosted = score_snippet(term, _chunk("nothing here", quality=5.0, utility=["facts"]))

    assert plain == 0
    assert boosted == 1.5


def test_best_snippets_come_first_and_are_limited():
    term = GlossaryTermPlan(term="kubernetes")
    chunks = [
        _chunk("Unrelated text about cooking."),
        _chunk("Kubernetes schedules containers.", quality=0.2),
        _chunk("Kubernetes operators extend Kubernetes.", quality=0.9),
        _chunk("More on kubernetes networking.", quality=0.5),
        _chunk("Kubernetes storage.", quality=0.1),
    ]

    snippets = select_relevant_snippets(term, chunks, limit=3)

    assert snippets == [
        "Kubernetes operators extend Kubernetes.",
        "More on kubernetes networking.",
        "Kubernetes schedules containers.",
    ]


def test_falls_back_to_first_chunks_when_nothing_matches():
    term = GlossaryTermPlan(term="zzz")
    chunks = [_chunk(f"text {i}") for i in range(5)]

    snippets = select_relevant_snippets(term, chunks)

    assert snippets == ["text 0", "text 1", "text 2"]


def test_long_snippets_are_truncated():
    term = GlossaryTermPlan(term="term")
    chunk = _chunk("term " + "x" * 1000)

    (snippet,) = select_relevant_snippets(term, [chunk])

    assert len(snippet) == 501
    assert snippet.endswith("…")
