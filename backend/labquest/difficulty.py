from __future__ import annotations
import asyncio
import logging
import math
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .oracles import CallLimiter, DifficultyOracle, close_oracle, default_difficulty_oracle
from .schemas import DifficultyBalance


logger = logging.getLogger(__name__)


MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
DEFAULT_DIFFICULTY = 5.0

AI_WEIGHT = 0.7
RULE_WEIGHT = 0.3
TARGET_PULL = 0.2

BALANCE_TOLERANCE = 0.15

EASY = "Easy (1-3)"
MEDIUM = "Medium (4-6)"
HARD = "Hard (7-10)"
DEFAULT_TARGET_DISTRIBUTION: Dict[str, float] = {EASY: 0.25, MEDIUM: 0.50, HARD: 0.25}

# Keyword bonuses per subject; subject names match case-insensitively
SUBJECT_KEYWORDS: Dict[str, List[Tuple[Tuple[str, ...], float]]] = {
	"chemistry": [
		(("equilibrium",), 1.0),
		(("stoichiometry",), 0.5),
		(("reaction mechanism",), 1.5),
		(("ph", "buffer"), 0.5),
	],
	"physics": [
		(("quantum",), 2.0),
		(("electromagnetic",), 1.0),
		(("thermodynamics",), 1.0),
		(("wave",), 0.5),
	],
	"biology": [
		(("genetics",), 1.0),
		(("molecular",), 1.5),
		(("metabolism",), 1.0),
		(("evolution",), 0.5),
	],
	"computer science": [
		(("algorithm",), 1.0),
		(("complexity",), 1.5),
		(("recursion",), 1.0),
		(("data structure",), 0.5),
	],
}
SUBJECT_ALIASES: Dict[str, str] = {
	"chemistry lab": "chemistry",
	"physics lab": "physics",
	"biology lab": "biology",
}

MATH_PATTERNS: List[re.Pattern[str]] = [
	re.compile(r"\d+\.?\d*\s*[+\-*/^]\s*\d+\.?\d*", re.ASCII),  # arithmetic
	re.compile(r"\b(?:log|ln|sin|cos|tan|sqrt|integral|derivative)\b", re.IGNORECASE),
	re.compile(r"\b(?:matrix|vector|differential|equation)\b", re.IGNORECASE),
	re.compile(r"\([^)]+\)"),
	re.compile(r"\b\d+\.?\d*\s*[×÷±√∫∑]", re.ASCII),
]
MATH_MATCH_WEIGHT = 0.3
MULTI_STEP_MARKERS = ("step", "calculate", "solve")
MULTI_STEP_BONUS = 0.5
MAX_MATH_COMPLEXITY = 2.0

_WHITESPACE = re.compile(r"\s+")
_SENTENCE_END = re.compile(r"[.!?]+")
_LONG_WORD = re.compile(r"\b\w{8,}\b", re.ASCII)


def _clamp(value: float) -> float:
	return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, value))


def _round_one_decimal(value: float) -> float:
	# Half-up, so 6.25 -> 6.3 rather than banker's 6.2
	return math.floor(value * 10 + 0.5) / 10


def text_complexity(text: str) -> Dict[str, float]:
	# Split counts include empty edge pieces, so both are always >= 1
	words = len(_WHITESPACE.split(text))
	sentences = len(_SENTENCE_END.split(text))
	long_words = len(_LONG_WORD.findall(text))
	return {
		"length_factor": min(2.0, words / 50),
		"vocabulary_factor": min(1.5, long_words / words * 10),
		"structure_factor": min(1.0, words / sentences / 15),
	}


def subject_adjustment(text: str, subject: str) -> float:
	key = subject.strip().lower()
	key = SUBJECT_ALIASES.get(key, key)
	lower_text = text.lower()
	adjustment = 0.0
	for keywords, bonus in SUBJECT_KEYWORDS.get(key, []):
		if any(keyword in lower_text for keyword in keywords):
			adjustment += bonus
	return adjustment


def mathematical_complexity(text: str) -> float:
	complexity = sum(len(pattern.findall(text)) * MATH_MATCH_WEIGHT for pattern in MATH_PATTERNS)
	if any(marker in text for marker in MULTI_STEP_MARKERS):
		complexity += MULTI_STEP_BONUS
	return min(MAX_MATH_COMPLEXITY, complexity)


def rule_based_score(text: str, subject: str) -> float:
	score = DEFAULT_DIFFICULTY
	score += sum(text_complexity(text).values())
	score += subject_adjustment(text, subject)
	score += mathematical_complexity(text)
	return _clamp(score)


def difficulty_distribution(scores: Sequence[float]) -> Dict[str, int]:
	distribution = {EASY: 0, MEDIUM: 0, HARD: 0}
	for score in scores:
		if score <= 3:
			distribution[EASY] += 1
		elif score <= 6:
			distribution[MEDIUM] += 1
		else:
			distribution[HARD] += 1
	return distribution


def validate_difficulty_balance(
	scores: Sequence[float],
	target_distribution: Optional[Mapping[str, float]] = None,
) -> DifficultyBalance:
	current = difficulty_distribution(scores)
	target = target_distribution or DEFAULT_TARGET_DISTRIBUTION
	total = len(scores)
	recommendations: List[str] = []
	if total == 0:
		return DifficultyBalance(is_balanced=True, recommendations=recommendations, current_distribution=current)
	is_balanced = True
	for level, expected_ratio in target.items():
		current_ratio = current.get(level, 0) / total
		if abs(current_ratio - expected_ratio) > BALANCE_TOLERANCE:
			is_balanced = False
			if current_ratio < expected_ratio:
				recommendations.append(f"Need more {level} questions")
			else:
				recommendations.append(f"Too many {level} questions")
	return DifficultyBalance(is_balanced=is_balanced, recommendations=recommendations, current_distribution=current)


class DifficultyAnalyzer:
	"""Blends an AI difficulty estimate with rule-based text heuristics.

	When the oracle is missing or fails, the score degrades to the caller's
	target difficulty (or 5.0) instead of raising.
	"""

	def __init__(self, oracle: Optional[DifficultyOracle] = None, *, concurrency: Optional[int] = None) -> None:
		self.oracle = oracle
		self.limiter = CallLimiter(concurrency)

	async def aclose(self) -> None:
		await close_oracle(self.oracle)

	def _fallback(self, target_difficulty: Optional[float]) -> float:
		if target_difficulty is None:
			return DEFAULT_DIFFICULTY
		return _round_one_decimal(_clamp(target_difficulty))

	async def analyze_difficulty(
		self,
		question_text: str,
		subject: str,
		target_difficulty: Optional[float] = None,
	) -> float:
		if self.oracle is None:
			return self._fallback(target_difficulty)
		async with self.limiter.semaphore():
			try:
				ai_score = float(await self.oracle.estimate_difficulty(question_text, subject))
			except Exception as exc:
				logger.warning("Difficulty oracle unavailable, using fallback score: %s", exc)
				return self._fallback(target_difficulty)
		if not math.isfinite(ai_score):
			logger.warning("Difficulty oracle returned a non-finite score, using fallback score")
			return self._fallback(target_difficulty)

		rule_score = rule_based_score(question_text, subject)
		final_score = _clamp(AI_WEIGHT * _clamp(ai_score) + RULE_WEIGHT * rule_score)
		if target_difficulty is not None:
			final_score = _clamp(final_score + (target_difficulty - final_score) * TARGET_PULL)
		logger.debug("difficulty ai=%.2f rule=%.2f final=%.2f", ai_score, rule_score, final_score)
		return _round_one_decimal(final_score)

	async def batch_analyze(self, questions: Sequence[Tuple[str, str]]) -> List[float]:
		async def _one(text: str, subject: str) -> float:
			try:
				return await self.analyze_difficulty(text, subject)
			except Exception as exc:
				logger.error("Error analyzing question difficulty: %s", exc)
				return DEFAULT_DIFFICULTY

		return list(await asyncio.gather(*(_one(text, subject) for text, subject in questions)))

	def get_difficulty_distribution(self, scores: Sequence[float]) -> Dict[str, int]:
		return difficulty_distribution(scores)

	def validate_difficulty_balance(
		self,
		scores: Sequence[float],
		target_distribution: Optional[Mapping[str, float]] = None,
	) -> DifficultyBalance:
		return validate_difficulty_balance(scores, target_distribution)


def create_difficulty_analyzer() -> DifficultyAnalyzer:
	return DifficultyAnalyzer(default_difficulty_oracle())
