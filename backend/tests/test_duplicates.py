"""
Tests for question-set duplicate detection and answer plagiarism screening.
"""

import asyncio

import pytest

from conftest import FixedSimilarityOracle, SlowSimilarityOracle
from labquest.duplicates import DuplicateDetector, classify_risk
from labquest.schemas import StudentAnswer
from labquest.similarity import SimilarityEngine


MOLARITY = "Calculate the molarity of 2 mol NaCl in 1 L water."
PHOTOSYNTHESIS = "Describe photosynthesis in plants."


class TestValidateQuestionSet:

	def setup_method(self):
		self.detector = DuplicateDetector(SimilarityEngine())

	@pytest.mark.asyncio
	async def test_identical_questions_are_duplicates(self):
		report = await self.detector.validate_question_set([MOLARITY, MOLARITY, PHOTOSYNTHESIS])
		assert report.is_valid is False
		assert len(report.duplicates) == 1
		pair = report.duplicates[0]
		assert (pair.question1, pair.question2) == (0, 1)
		assert pair.similarity > 0.9
		assert "Found 1 highly similar question pairs" in report.recommendations

	@pytest.mark.asyncio
	async def test_changed_numbers_are_still_duplicates(self):
		# Same tokens, skeleton and concepts; only the numeric values differ
		variant = "Calculate the molarity of 3 mol NaCl in 2 L water."
		report = await self.detector.validate_question_set([MOLARITY, variant])
		assert [(d.question1, d.question2) for d in report.duplicates] == [(0, 1)]
		assert report.avg_uniqueness < 0.7
		assert "Overall uniqueness is below threshold" in report.recommendations

	@pytest.mark.asyncio
	async def test_distinct_questions_are_valid(self):
		report = await self.detector.validate_question_set([MOLARITY, PHOTOSYNTHESIS])
		assert report.is_valid is True
		assert report.duplicates == []
		assert report.recommendations == []
		assert report.avg_uniqueness >= 0.7

	@pytest.mark.asyncio
	@pytest.mark.parametrize("questions", [[], [MOLARITY]])
	async def test_fewer_than_two_questions(self, questions):
		report = await self.detector.validate_question_set(questions)
		assert report.is_valid is True
		assert report.avg_uniqueness == 1.0

	@pytest.mark.asyncio
	async def test_low_average_uniqueness_without_duplicates(self):
		# Oracle says "very alike" while the texts share little; no pair crosses 0.9
		detector = DuplicateDetector(SimilarityEngine(FixedSimilarityOracle(1.0)))
		questions = ["heat the water", "cool the water", "stir the water"]
		report = await detector.validate_question_set(questions)
		assert report.duplicates == []
		assert report.is_valid is False
		assert report.recommendations == [
			"Overall uniqueness is below threshold",
			"Increase template variety or generation parameters",
		]

	@pytest.mark.asyncio
	async def test_oracle_calls_are_bounded(self):
		oracle = SlowSimilarityOracle()
		detector = DuplicateDetector(SimilarityEngine(oracle, concurrency=2))
		questions = [f"question number {'x' * n}" for n in range(1, 7)]
		await detector.validate_question_set(questions)
		assert 1 <= oracle.max_in_flight <= 2

	@pytest.mark.asyncio
	async def test_cancellation_propagates(self):
		detector = DuplicateDetector(SimilarityEngine(SlowSimilarityOracle(delay=10)))
		task = asyncio.create_task(detector.validate_question_set(["a b c", "d e f", "g h i"]))
		await asyncio.sleep(0.01)
		task.cancel()
		with pytest.raises(asyncio.CancelledError):
			await task


class TestIdentifyPlagiarism:

	def setup_method(self):
		self.detector = DuplicateDetector(SimilarityEngine())

	@pytest.mark.parametrize(
		"similarity,expected",
		[(0.95, "high"), (0.9, "medium"), (0.8, "medium"), (0.7, "low"), (0.1, "low")],
	)
	def test_classify_risk(self, similarity, expected):
		assert classify_risk(similarity) == expected

	@pytest.mark.asyncio
	async def test_identical_answers_are_high_risk(self):
		copied = "Newton's second law says force equals mass times acceleration."
		answers = [
			StudentAnswer(student_id="s1", answer=copied),
			StudentAnswer(student_id="s2", answer=copied),
			StudentAnswer(student_id="s3", answer="The mitochondria is the powerhouse of the cell."),
		]
		findings = await self.detector.identify_plagiarism(answers)
		assert len(findings) == 1
		finding = findings[0]
		assert (finding.student1, finding.student2) == ("s1", "s2")
		assert finding.risk_level == "high"
		assert finding.similarity == 1.0

	@pytest.mark.asyncio
	async def test_unrelated_answers_are_omitted(self):
		answers = [
			StudentAnswer(student_id="s1", answer="Newton's second law says force equals mass times acceleration."),
			StudentAnswer(student_id="s2", answer="The mitochondria is the powerhouse of the cell."),
		]
		assert await self.detector.identify_plagiarism(answers) == []

	@pytest.mark.asyncio
	async def test_single_answer(self):
		answers = [StudentAnswer(student_id="s1", answer="anything")]
		assert await self.detector.identify_plagiarism(answers) == []
