"""Near-duplicate detection across question sets and plagiarism screening of answers.

Both scans compare every unordered pair, so cost grows quadratically with the
input. That is fine for class-sized answer sets and generation batches; a
corpus of more than a few hundred items needs an index this module does not
provide.
"""
from __future__ import annotations
import asyncio
import logging
from itertools import combinations
from typing import List, Sequence, Tuple

from .schemas import DuplicatePair, PlagiarismFinding, QuestionSetReport, RiskLevel, StudentAnswer
from .similarity import SimilarityEngine


logger = logging.getLogger(__name__)


SIMILARITY_THRESHOLD = 0.7
HIGH_SIMILARITY_THRESHOLD = 0.9


def classify_risk(similarity: float) -> RiskLevel:
	if similarity > HIGH_SIMILARITY_THRESHOLD:
		return "high"
	if similarity > SIMILARITY_THRESHOLD:
		return "medium"
	return "low"


class DuplicateDetector:
	def __init__(self, engine: SimilarityEngine) -> None:
		self.engine = engine

	async def _pairwise(self, texts: Sequence[str]) -> List[Tuple[int, int, float]]:
		pairs = list(combinations(range(len(texts)), 2))
		# gather cancels the remaining comparisons if the caller is cancelled
		scores = await asyncio.gather(
			*(self.engine.similarity(texts[i], texts[j]) for i, j in pairs)
		)
		return [(i, j, score) for (i, j), score in zip(pairs, scores)]

	async def validate_question_set(self, questions: Sequence[str]) -> QuestionSetReport:
		duplicates: List[DuplicatePair] = []
		uniqueness_samples: List[float] = []
		for i, j, similarity in await self._pairwise(questions):
			uniqueness_samples.append(1 - similarity)
			if similarity > HIGH_SIMILARITY_THRESHOLD:
				duplicates.append(DuplicatePair(question1=i, question2=j, similarity=similarity))

		if uniqueness_samples:
			avg_uniqueness = sum(uniqueness_samples) / len(uniqueness_samples)
		else:
			avg_uniqueness = 1.0
		is_valid = not duplicates and avg_uniqueness >= SIMILARITY_THRESHOLD

		recommendations: List[str] = []
		if duplicates:
			recommendations.append(f"Found {len(duplicates)} highly similar question pairs")
			recommendations.append("Consider regenerating questions with higher variation parameters")
		if avg_uniqueness < SIMILARITY_THRESHOLD:
			recommendations.append("Overall uniqueness is below threshold")
			recommendations.append("Increase template variety or generation parameters")

		logger.info(
			"validated %d questions: %d duplicate pairs, avg uniqueness %.3f",
			len(questions), len(duplicates), avg_uniqueness,
		)
		return QuestionSetReport(
			is_valid=is_valid,
			duplicates=duplicates,
			avg_uniqueness=avg_uniqueness,
			recommendations=recommendations,
		)

	async def identify_plagiarism(self, answers: Sequence[StudentAnswer]) -> List[PlagiarismFinding]:
		findings: List[PlagiarismFinding] = []
		for i, j, similarity in await self._pairwise([a.answer for a in answers]):
			risk_level = classify_risk(similarity)
			if risk_level == "low":
				continue
			findings.append(
				PlagiarismFinding(
					student1=answers[i].student_id,
					student2=answers[j].student_id,
					similarity=similarity,
					risk_level=risk_level,
				)
			)
		if findings:
			logger.info("flagged %d of %d answer pairs for review", len(findings), len(answers) * (len(answers) - 1) // 2)
		return findings
