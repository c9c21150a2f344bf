"""Multi-signal similarity between question texts and uniqueness against a corpus.

similarity = 0.3 * lexical + 0.3 * structural + 0.4 * semantic

lexical     Jaccard index of the token sets
structural  normalised Levenshtein similarity of the structural skeletons
semantic    external oracle estimate, or concept-set Jaccard when it is unavailable
"""
from __future__ import annotations
import asyncio
import logging
import math
from typing import Optional, Sequence, Tuple

from .oracles import (
	CallLimiter,
	ConceptSimilarityOracle,
	SemanticSimilarityOracle,
	close_oracle,
	default_similarity_oracle,
)
from .schemas import SimilarityBreakdown
from .text_features import extract_structure, jaccard_index, levenshtein_distance, tokenize


logger = logging.getLogger(__name__)


LEXICAL_WEIGHT = 0.3
STRUCTURAL_WEIGHT = 0.3
SEMANTIC_WEIGHT = 0.4


def _clamp_unit(value: float) -> float:
	return min(1.0, max(0.0, value))


def lexical_similarity(text_a: str, text_b: str) -> float:
	return jaccard_index(tokenize(text_a), tokenize(text_b))


def structural_similarity(text_a: str, text_b: str) -> float:
	skeleton_a = extract_structure(text_a)
	skeleton_b = extract_structure(text_b)
	max_length = max(len(skeleton_a), len(skeleton_b))
	if max_length == 0:
		return 1.0
	return 1 - levenshtein_distance(skeleton_a, skeleton_b) / max_length


class SimilarityEngine:
	def __init__(
		self,
		semantic_oracle: Optional[SemanticSimilarityOracle] = None,
		*,
		concurrency: Optional[int] = None,
	) -> None:
		self.semantic_oracle = semantic_oracle
		self._fallback_oracle = ConceptSimilarityOracle()
		# Shared by every caller of this engine so pairwise scans cannot flood the oracle
		self.limiter = CallLimiter(concurrency)

	async def similarity(self, text_a: str, text_b: str) -> float:
		breakdown = await self.similarity_breakdown(text_a, text_b)
		return breakdown.combined

	async def similarity_breakdown(self, text_a: str, text_b: str) -> SimilarityBreakdown:
		if text_a == text_b:
			return SimilarityBreakdown(lexical=1.0, structural=1.0, semantic=1.0, combined=1.0)
		# Canonical order keeps the score symmetric even if the oracle is not
		first, second = sorted((text_a, text_b))
		lexical = lexical_similarity(first, second)
		structural = structural_similarity(first, second)
		semantic, oracle_used = await self._semantic_similarity(first, second)
		combined = _clamp_unit(
			LEXICAL_WEIGHT * lexical + STRUCTURAL_WEIGHT * structural + SEMANTIC_WEIGHT * semantic
		)
		logger.debug(
			"similarity lexical=%.3f structural=%.3f semantic=%.3f combined=%.3f oracle=%s",
			lexical, structural, semantic, combined, oracle_used,
		)
		return SimilarityBreakdown(
			lexical=lexical,
			structural=structural,
			semantic=semantic,
			combined=combined,
			oracle_used=oracle_used,
		)

	async def _semantic_similarity(self, text_a: str, text_b: str) -> Tuple[float, bool]:
		if self.semantic_oracle is not None:
			value: Optional[float] = None
			# Only the oracle call is guarded; limiter errors are bugs, not outages
			async with self.limiter.semaphore():
				try:
					value = float(await self.semantic_oracle.estimate_similarity(text_a, text_b))
				except Exception as exc:
					logger.warning("Semantic oracle unavailable, using concept overlap: %s", exc)
			if value is not None:
				if math.isfinite(value):
					return _clamp_unit(value), True
				logger.warning("Semantic oracle returned a non-finite score; using concept overlap")
		return await self._fallback_oracle.estimate_similarity(text_a, text_b), False

	async def aclose(self) -> None:
		await close_oracle(self.semantic_oracle)

	async def uniqueness(self, candidate: str, corpus: Sequence[str]) -> float:
		"""1 minus the highest similarity to any corpus member, floored at 0."""
		if not corpus:
			return 1.0
		similarities = await asyncio.gather(
			*(self.similarity(candidate, existing) for existing in corpus)
		)
		return max(0.0, 1 - max(similarities))


def create_similarity_engine() -> SimilarityEngine:
	return SimilarityEngine(default_similarity_oracle())
