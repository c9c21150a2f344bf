"""External estimate providers for semantic similarity and difficulty.

The engine treats every oracle as best effort: implementations raise
``OracleUnavailable`` and the caller substitutes its local fallback.
"""
from __future__ import annotations
import asyncio
import logging
import math
import weakref
from typing import Any, Dict, Optional, Protocol

import httpx

from .gemini_client import GeminiClient
from .settings import settings
from .text_features import extract_concepts, jaccard_index


logger = logging.getLogger(__name__)


class OracleUnavailable(RuntimeError):
	"""The oracle could not produce a usable estimate."""


class CallLimiter:
	"""Caps concurrent oracle calls; one semaphore per running event loop."""

	def __init__(self, concurrency: Optional[int] = None) -> None:
		if concurrency is None:
			concurrency = settings.oracle_concurrency
		if concurrency < 1:
			raise ValueError(f"concurrency must be at least 1, got {concurrency}")
		self.concurrency = concurrency
		self._semaphores: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = weakref.WeakKeyDictionary()

	def semaphore(self) -> asyncio.Semaphore:
		loop = asyncio.get_running_loop()
		semaphore = self._semaphores.get(loop)
		if semaphore is None:
			semaphore = asyncio.Semaphore(self.concurrency)
			self._semaphores[loop] = semaphore
		return semaphore


async def close_oracle(oracle: Any) -> None:
	aclose = getattr(oracle, "aclose", None)
	if aclose is not None:
		await aclose()


class SemanticSimilarityOracle(Protocol):
	async def estimate_similarity(self, text_a: str, text_b: str) -> float: ...


class DifficultyOracle(Protocol):
	async def estimate_difficulty(self, question_text: str, subject: str) -> float: ...


class ConceptSimilarityOracle:
	"""Local stand-in: Jaccard overlap of extracted domain concepts."""

	async def estimate_similarity(self, text_a: str, text_b: str) -> float:
		return jaccard_index(extract_concepts(text_a), extract_concepts(text_b))


def _build_similarity_prompt(text_a: str, text_b: str) -> str:
	return (
		"Compare these two lab questions and rate their similarity from 0 to 1 "
		"(0 = completely different, 1 = identical).\n\n"
		f"Question 1: \"{text_a}\"\n"
		f"Question 2: \"{text_b}\"\n\n"
		"Consider conceptual similarity, problem structure, the required solution approach, "
		"and the variable values and context.\n\n"
		"Return ONLY a JSON object with exactly one key: similarityScore (number)."
	)


def _build_difficulty_prompt(question_text: str, subject: str) -> str:
	return (
		f"Rate the difficulty of this {subject} question on a scale of 1 to 10.\n\n"
		f"\"{question_text}\"\n\n"
		"Consider conceptual complexity, number of steps, mathematical operations, "
		"prerequisite knowledge and time to solve.\n\n"
		"Return ONLY a JSON object with exactly one key: difficultyScore (number)."
	)


def _read_number(data: Dict[str, Any], key: str) -> float:
	value = data.get(key)
	if isinstance(value, bool) or not isinstance(value, (int, float, str)):
		raise OracleUnavailable(f"missing numeric {key} in response: {data!r}")
	try:
		number = float(value)
	except ValueError as exc:
		raise OracleUnavailable(f"non-numeric {key} in response: {value!r}") from exc
	if not math.isfinite(number):
		raise OracleUnavailable(f"non-finite {key} in response: {value!r}")
	return number


class _GeminiOracle:
	system_instruction = ""

	def __init__(self, client: Optional[GeminiClient] = None, *, model: Optional[str] = None) -> None:
		self._client = client
		self._model = model

	def _get_client(self) -> GeminiClient:
		if self._client is None:
			try:
				self._client = GeminiClient(model=self._model)
			except ValueError as exc:
				raise OracleUnavailable(str(exc)) from exc
		return self._client

	async def _ask(self, prompt: str) -> Dict[str, Any]:
		client = self._get_client()
		try:
			return await client.generate_json(prompt, system_instruction=self.system_instruction)
		except (httpx.HTTPError, RuntimeError, ValueError) as exc:
			raise OracleUnavailable(f"Gemini call failed: {exc}") from exc

	async def aclose(self) -> None:
		if self._client is not None:
			await self._client.aclose()


class GeminiSimilarityOracle(_GeminiOracle):
	system_instruction = (
		"You are an expert in educational content analysis. "
		"Provide accurate similarity assessments between academic questions."
	)

	def __init__(self, client: Optional[GeminiClient] = None) -> None:
		super().__init__(client, model=settings.gemini_model)

	async def estimate_similarity(self, text_a: str, text_b: str) -> float:
		data = await self._ask(_build_similarity_prompt(text_a, text_b))
		score = _read_number(data, "similarityScore")
		return min(1.0, max(0.0, score))


class GeminiDifficultyOracle(_GeminiOracle):
	system_instruction = (
		"You are an educational assessment expert. "
		"Provide objective difficulty ratings for academic questions."
	)

	def __init__(self, client: Optional[GeminiClient] = None) -> None:
		super().__init__(client, model=settings.gemini_model_difficulty)

	async def estimate_difficulty(self, question_text: str, subject: str) -> float:
		data = await self._ask(_build_difficulty_prompt(question_text, subject))
		score = _read_number(data, "difficultyScore")
		return min(10.0, max(1.0, score))


def default_similarity_oracle() -> SemanticSimilarityOracle:
	if settings.gemini_api_key:
		return GeminiSimilarityOracle()
	logger.info("GEMINI_API_KEY not set; semantic similarity uses concept overlap only")
	return ConceptSimilarityOracle()


def default_difficulty_oracle() -> Optional[DifficultyOracle]:
	if settings.gemini_api_key:
		return GeminiDifficultyOracle()
	logger.info("GEMINI_API_KEY not set; difficulty falls back to target/default scores")
	return None
