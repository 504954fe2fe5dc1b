"""Weighted Reciprocal Rank Fusion (RRF) of lexical and vector result lists.

For a document at 1-based rank ``r`` in a source list::

    contribution = weight_source / (k + r)

and its fused score is the sum over the sources that returned it. Only rank
positions matter; raw backend scores are carried along for display but never
mixed into the fused score.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from searchfusion.constants import RetrievalSource
from searchfusion.search.schemas import (
    FusedResult,
    FusionExplanation,
    FusionWeights,
    RankBreakdown,
    RetrievedDocument,
    ScoreBreakdown,
)


@dataclass
class _Candidate:
    document: RetrievedDocument
    lexical_rank: int = 0
    vector_rank: int = 0
    lexical_score: float = 0.0
    vector_score: float = 0.0
    highlights: list[str] = field(default_factory=list)


def _merge_highlights(target: list[str], extra: list[str]) -> None:
    for highlight in extra:
        if highlight not in target:
            target.append(highlight)


def _format_term(label: str, contribution: float, weight: float, k: int, rank: int) -> str:
    if not rank:
        return f"{contribution:.4f} ({label}: absent)"
    return f"{contribution:.4f} ({label}: {weight:g}/({k}+{rank}))"


def rrf_fuse(
    lexical: list[RetrievedDocument],
    vector: list[RetrievedDocument],
    k: int = 60,
    weights: FusionWeights | None = None,
    include_explanation: bool = False,
) -> list[FusedResult]:
    """Fuse two best-first result lists into one ranking.

    Ties on the fused score are broken by lexical presence (documents with a
    lexical rank first, better lexical rank first), then by ``id`` ascending,
    so the output depends only on the two input lists.

    Args:
        lexical: Lexical results, best first, ids unique.
        vector: Vector results, best first, ids unique.
        k: RRF smoothing constant, must be positive.
        weights: Per-source weights (defaults 0.6 lexical / 0.4 vector).
        include_explanation: Attach a per-document score explanation.

    Returns:
        One ``FusedResult`` per distinct id across both lists, ranked.

    Raises:
        ValueError: If ``k <= 0`` or a weight is negative.
    """
    weights = weights or FusionWeights()
    if k <= 0:
        raise ValueError(f"RRF k must be positive, got {k}")
    if weights.lexical < 0 or weights.vector < 0:
        raise ValueError("Fusion weights must be non-negative")

    candidates: dict[str, _Candidate] = {}

    for rank, document in enumerate(lexical, start=1):
        candidate = candidates.get(document.id)
        if candidate is None:
            candidate = candidates[document.id] = _Candidate(document=document)
        if candidate.lexical_rank:
            continue
        candidate.lexical_rank = rank
        candidate.lexical_score = document.raw_score
        _merge_highlights(candidate.highlights, document.highlights)

    for rank, document in enumerate(vector, start=1):
        candidate = candidates.get(document.id)
        if candidate is None:
            candidate = candidates[document.id] = _Candidate(document=document)
        if candidate.vector_rank:
            continue
        candidate.vector_rank = rank
        candidate.vector_score = document.raw_score
        _merge_highlights(candidate.highlights, document.highlights)

    scored: list[tuple[float, float, float, _Candidate]] = []
    for candidate in candidates.values():
        lex_contribution = weights.lexical / (k + candidate.lexical_rank) if candidate.lexical_rank else 0.0
        vec_contribution = weights.vector / (k + candidate.vector_rank) if candidate.vector_rank else 0.0
        scored.append((lex_contribution + vec_contribution, lex_contribution, vec_contribution, candidate))

    scored.sort(
        key=lambda item: (
            -item[0],
            0 if item[3].lexical_rank else 1,
            item[3].lexical_rank,
            item[3].document.id,
        )
    )

    fused: list[FusedResult] = []
    for final_rank, (rrf, lex_contribution, vec_contribution, candidate) in enumerate(scored, start=1):
        explanation = None
        if include_explanation:
            formula = (
                "RRF = "
                + _format_term("lexical", lex_contribution, weights.lexical, k, candidate.lexical_rank)
                + " + "
                + _format_term("vector", vec_contribution, weights.vector, k, candidate.vector_rank)
                + f" = {rrf:.4f}"
            )
            explanation = FusionExplanation(
                lexical_contribution=lex_contribution,
                vector_contribution=vec_contribution,
                formula=formula,
            )

        document = candidate.document
        fused.append(
            FusedResult(
                id=document.id,
                title=document.title,
                content=document.content,
                url=document.url,
                metadata=document.metadata,
                raw_score=document.raw_score,
                highlights=candidate.highlights,
                scores=ScoreBreakdown(
                    lexical=candidate.lexical_score,
                    vector=candidate.vector_score,
                    rrf=rrf,
                    final=rrf,
                ),
                ranks=RankBreakdown(
                    lexical=candidate.lexical_rank,
                    vector=candidate.vector_rank,
                    final=final_rank,
                ),
                explanation=explanation,
            )
        )
    return fused


def wrap_single_source(documents: list[RetrievedDocument], source: RetrievalSource) -> list[FusedResult]:
    """Present one source's list as fused results without RRF.

    Used by the keyword-only and vector-only modes: the final score is the
    backend's raw score and the final rank is the source rank.
    """
    results: list[FusedResult] = []
    for rank, document in enumerate(documents, start=1):
        is_lexical = source == RetrievalSource.LEXICAL
        results.append(
            FusedResult(
                **document.model_dump(),
                scores=ScoreBreakdown(
                    lexical=document.raw_score if is_lexical else 0.0,
                    vector=0.0 if is_lexical else document.raw_score,
                    rrf=0.0,
                    final=document.raw_score,
                ),
                ranks=RankBreakdown(
                    lexical=rank if is_lexical else 0,
                    vector=0 if is_lexical else rank,
                    final=rank,
                ),
            )
        )
    return results
