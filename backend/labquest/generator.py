"""Template-driven question generation with difficulty scoring and duplicate rejection.

The caller owns storage: existing questions come in as plain text and accepted
questions go back out as ``ScoredQuestion`` records.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from .difficulty import DifficultyAnalyzer, difficulty_distribution
from .gemini_client import GeminiClient
from .schemas import (
	GenerationResult,
	GenerationStatistics,
	QuestionStatistics,
	QuestionTemplate,
	QuestionVariant,
	ScoredQuestion,
)
from .settings import settings
from .similarity import SimilarityEngine


logger = logging.getLogger(__name__)


MIN_UNIQUENESS = 0.7


class GenerationError(RuntimeError):
	pass


def _build_variants_prompt(template: QuestionTemplate, num_variants: int) -> str:
	return (
		f"You are an expert educational content creator specializing in {template.subject}.\n"
		f"Generate {num_variants} unique question variants based on this template:\n"
		f"\"{template.template}\"\n\n"
		f"Difficulty level: {template.difficulty_level}.\n"
		"Each variant must be significantly different from the others, use realistic numerical values "
		"and parameters, test the same learning objective, and be practical for lab work.\n\n"
		"Return ONLY a JSON object with one key: questions (array). Each item has keys: "
		"questionText (string), answer (string, numerical answer with units), explanation (string, "
		"step-by-step), variables (object), estimatedDifficulty (number 1-10 where 1-3 is recall, "
		"4-6 is moderate application and 7-10 is multi-step problem solving)."
	)


def _build_template_prompt(subject: str, topic: str, difficulty_level: str) -> str:
	return (
		f"Create a question template for {subject} on the topic of {topic} at {difficulty_level} difficulty.\n"
		"Use variables in {brackets} for elements that can be varied. It must suit lab or practical work, "
		"test key concepts and be unambiguous.\n"
		"Example: \"Calculate the {measurement_type} of a {substance} sample containing {amount} {units} "
		"when {condition_description}.\"\n\n"
		"Return ONLY a JSON object with exactly one key: template (string)."
	)


def _parse_variant(item: Any) -> Optional[QuestionVariant]:
	if not isinstance(item, dict):
		return None
	text = str(item.get("questionText") or "").strip()
	if not text:
		return None
	try:
		estimated = float(item.get("estimatedDifficulty", 5.0))
	except (TypeError, ValueError):
		estimated = 5.0
	variables = item.get("variables")
	try:
		return QuestionVariant(
			question_text=text,
			answer=str(item.get("answer") or ""),
			explanation=str(item.get("explanation") or ""),
			variables=variables if isinstance(variables, dict) else {},
			estimated_difficulty=max(1.0, min(10.0, estimated)),
		)
	except ValidationError:
		return None


def question_statistics(questions: Sequence[ScoredQuestion]) -> QuestionStatistics:
	if not questions:
		return QuestionStatistics(total_questions=0, avg_difficulty=0.0, avg_uniqueness=0.0)
	total = len(questions)
	return QuestionStatistics(
		total_questions=total,
		avg_difficulty=sum(q.difficulty_score for q in questions) / total,
		avg_uniqueness=sum(q.uniqueness_score for q in questions) / total,
		difficulty_distribution=difficulty_distribution([q.difficulty_score for q in questions]),
	)


class QuestionGenerator:
	def __init__(
		self,
		engine: SimilarityEngine,
		analyzer: DifficultyAnalyzer,
		client: Optional[GeminiClient] = None,
	) -> None:
		self.engine = engine
		self.analyzer = analyzer
		self._client = client

	def _get_client(self) -> GeminiClient:
		if self._client is None:
			self._client = GeminiClient(model=settings.gemini_model_generation)
		return self._client

	async def _ask(self, prompt: str, system_instruction: str) -> Dict[str, Any]:
		try:
			return await self._get_client().generate_json(prompt, system_instruction=system_instruction)
		except (httpx.HTTPError, RuntimeError, ValueError) as exc:
			raise GenerationError(f"Failed to generate content: {exc}") from exc

	async def generate_variants(self, template: QuestionTemplate, num_variants: int) -> List[QuestionVariant]:
		data = await self._ask(
			_build_variants_prompt(template, num_variants),
			"You are an expert educational content creator. "
			"Generate unique, educationally sound question variants in valid JSON format.",
		)
		items = data.get("questions")
		if not isinstance(items, list):
			raise GenerationError("Model response did not contain a questions array")
		variants: List[QuestionVariant] = []
		for item in items:
			variant = _parse_variant(item)
			if variant is None:
				logger.info("skipping malformed variant: %r", item)
				continue
			variants.append(variant)
		return variants

	async def generate_template(self, subject: str, topic: str, difficulty_level: str) -> str:
		data = await self._ask(
			_build_template_prompt(subject, topic, difficulty_level),
			"You are an expert curriculum designer. "
			"Create educational question templates that can generate multiple unique variants.",
		)
		template = str(data.get("template") or "").strip()
		if not template:
			raise GenerationError("Model response did not contain a template")
		return template

	async def generate_questions(
		self,
		template: QuestionTemplate,
		num_variants: int,
		existing_questions: Iterable[str] = (),
		*,
		target_difficulty: Optional[float] = None,
		ensure_uniqueness: bool = True,
	) -> GenerationResult:
		variants = await self.generate_variants(template, num_variants)
		corpus = list(existing_questions)
		accepted: List[ScoredQuestion] = []
		rejected_duplicates = 0

		for variant in variants:
			difficulty_score = variant.estimated_difficulty
			if target_difficulty is not None:
				difficulty_score = await self.analyzer.analyze_difficulty(
					variant.question_text, template.subject, target_difficulty
				)

			uniqueness_score = 1.0
			if ensure_uniqueness:
				uniqueness_score = await self.engine.uniqueness(variant.question_text, corpus)
				if uniqueness_score < MIN_UNIQUENESS:
					rejected_duplicates += 1
					logger.info("rejected variant with uniqueness %.3f: %s", uniqueness_score, variant.question_text[:80])
					continue

			accepted.append(
				ScoredQuestion(
					template_id=template.id,
					question_text=variant.question_text,
					answer=variant.answer,
					explanation=variant.explanation,
					difficulty_score=difficulty_score,
					uniqueness_score=uniqueness_score,
					metadata={
						"variables": variant.variables,
						"generation_method": "gemini",
						"original_template": template.template,
					},
				)
			)
			# Later variants must also be unique against the ones accepted here
			corpus.append(variant.question_text)

		generated = len(accepted)
		statistics = GenerationStatistics(
			requested=num_variants,
			generated=generated,
			avg_difficulty=sum(q.difficulty_score for q in accepted) / generated if generated else 0.0,
			avg_uniqueness=sum(q.uniqueness_score for q in accepted) / generated if generated else 0.0,
			rejected_duplicates=rejected_duplicates,
		)
		return GenerationResult(questions=accepted, statistics=statistics)

	async def assign_to_students(
		self,
		student_ids: Sequence[str],
		templates: Sequence[QuestionTemplate],
		questions_per_student: int = 3,
		existing_questions: Iterable[str] = (),
	) -> Dict[str, List[ScoredQuestion]]:
		if not templates:
			raise GenerationError("No question templates available for assignment")
		corpus = list(existing_questions)
		assignments: Dict[str, List[ScoredQuestion]] = {}
		for student_id in student_ids:
			student_questions: List[ScoredQuestion] = []
			for slot in range(questions_per_student):
				template = templates[slot % len(templates)]
				result = await self.generate_questions(template, 1, corpus)
				if result.questions:
					question = result.questions[0]
					student_questions.append(question)
					corpus.append(question.question_text)
				else:
					logger.info("no unique question for student %s from template %s", student_id, template.id)
			assignments[student_id] = student_questions
		return assignments

	async def aclose(self) -> None:
		if self._client is not None:
			await self._client.aclose()
