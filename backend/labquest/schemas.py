from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


RiskLevel = Literal["low", "medium", "high"]


class SimilarityBreakdown(BaseModel):
	lexical: float = Field(ge=0, le=1)
	structural: float = Field(ge=0, le=1)
	semantic: float = Field(ge=0, le=1)
	combined: float = Field(ge=0, le=1)
	# False when the semantic score came from the local concept fallback
	oracle_used: bool = False


class DuplicatePair(BaseModel):
	question1: int
	question2: int
	similarity: float


class QuestionSetReport(BaseModel):
	is_valid: bool
	duplicates: List[DuplicatePair] = Field(default_factory=list)
	avg_uniqueness: float
	recommendations: List[str] = Field(default_factory=list)


class StudentAnswer(BaseModel):
	student_id: str
	answer: str


class PlagiarismFinding(BaseModel):
	student1: str
	student2: str
	similarity: float
	risk_level: RiskLevel


class DifficultyBalance(BaseModel):
	is_balanced: bool
	recommendations: List[str] = Field(default_factory=list)
	current_distribution: Dict[str, int]


class QuestionTemplate(BaseModel):
	id: str
	template: str
	subject: str
	difficulty_level: str = "medium"
	topic: Optional[str] = None


class QuestionVariant(BaseModel):
	question_text: str
	answer: str = ""
	explanation: str = ""
	variables: Dict[str, Any] = Field(default_factory=dict)
	estimated_difficulty: float = Field(default=5.0, ge=1, le=10)


class ScoredQuestion(BaseModel):
	template_id: str
	question_text: str
	answer: str = ""
	explanation: str = ""
	difficulty_score: float
	uniqueness_score: float
	metadata: Dict[str, Any] = Field(default_factory=dict)


class GenerationStatistics(BaseModel):
	requested: int
	generated: int
	avg_difficulty: float
	avg_uniqueness: float
	rejected_duplicates: int


class GenerationResult(BaseModel):
	questions: List[ScoredQuestion] = Field(default_factory=list)
	statistics: GenerationStatistics


class QuestionStatistics(BaseModel):
	total_questions: int
	avg_difficulty: float
	avg_uniqueness: float
	difficulty_distribution: Dict[str, int] = Field(default_factory=dict)
