import asyncio
from typing import Any, Dict, List, Optional

import pytest

from labquest.oracles import OracleUnavailable
from labquest.settings import settings


class FixedSimilarityOracle:
	def __init__(self, value: float) -> None:
		self.value = value
		self.calls: List[tuple] = []

	async def estimate_similarity(self, text_a: str, text_b: str) -> float:
		self.calls.append((text_a, text_b))
		return self.value


class LopsidedSimilarityOracle:
	"""Deliberately order-dependent, to check the engine symmetrises it."""

	async def estimate_similarity(self, text_a: str, text_b: str) -> float:
		return len(text_a) / (len(text_a) + len(text_b))


class FailingOracle:
	def __init__(self, exc: Optional[Exception] = None) -> None:
		self.exc = exc or OracleUnavailable("quota exceeded")
		self.calls = 0

	async def estimate_similarity(self, text_a: str, text_b: str) -> float:
		self.calls += 1
		raise self.exc

	async def estimate_difficulty(self, question_text: str, subject: str) -> float:
		self.calls += 1
		raise self.exc


class FixedDifficultyOracle:
	def __init__(self, value: float) -> None:
		self.value = value

	async def estimate_difficulty(self, question_text: str, subject: str) -> float:
		return self.value


class SlowSimilarityOracle:
	"""Tracks how many calls are in flight at once."""

	def __init__(self, delay: float = 0.01) -> None:
		self.delay = delay
		self.in_flight = 0
		self.max_in_flight = 0

	async def estimate_similarity(self, text_a: str, text_b: str) -> float:
		self.in_flight += 1
		self.max_in_flight = max(self.max_in_flight, self.in_flight)
		try:
			await asyncio.sleep(self.delay)
		finally:
			self.in_flight -= 1
		return 0.0


class ClosableOracle:
	"""Answers both oracle calls and records whether it was closed."""

	def __init__(self) -> None:
		self.closed = False

	async def estimate_similarity(self, text_a: str, text_b: str) -> float:
		return 0.5

	async def estimate_difficulty(self, question_text: str, subject: str) -> float:
		return 5.0

	async def aclose(self) -> None:
		self.closed = True


class FakeGeminiClient:
	"""Returns queued JSON replies in order; an Exception entry is raised instead."""

	def __init__(self, replies: List[Any]) -> None:
		self.replies = list(replies)
		self.prompts: List[str] = []
		self.closed = False

	async def generate_json(self, prompt: str, *, system_instruction: Optional[str] = None) -> Dict[str, Any]:
		self.prompts.append(prompt)
		reply = self.replies.pop(0)
		if isinstance(reply, Exception):
			raise reply
		return reply

	async def aclose(self) -> None:
		self.closed = True


@pytest.fixture
def gemini_settings(monkeypatch):
	monkeypatch.setattr(settings, "gemini_api_key", "test-key")
	monkeypatch.setattr(settings, "gemini_provider", "ai_studio")
	monkeypatch.setattr(settings, "openrouter_api_key", None)
	return settings
