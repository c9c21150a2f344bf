"""Token, skeleton and concept extraction used by the similarity engine."""
from __future__ import annotations
import re
from typing import AbstractSet, List, Set


_NON_WORD = re.compile(r"[^\w\s]", re.ASCII)
_WHITESPACE = re.compile(r"\s+")

# Substitution order matters: later passes must not re-match earlier markers
_STRUCTURE_PASSES = [
	(re.compile(r"\d+\.?\d*", re.ASCII), "NUM"),
	(re.compile(r"[A-Z][a-z]+"), "WORD"),
	(re.compile(r"[a-z]+"), "word"),
]

UNITS: List[str] = [
	"mol", "gram", "liter", "meter", "second", "kelvin", "pascal", "joule",
	"watt", "ampere", "volt", "ohm", "newton", "celsius", "fahrenheit",
]
OPERATIONS: List[str] = [
	"calculate", "solve", "find", "determine", "compute", "derive", "integrate", "differentiate",
]
SCIENCE_TERMS: List[str] = [
	"molarity", "concentration", "pressure", "temperature", "velocity", "acceleration",
	"force", "energy", "power", "current", "voltage", "resistance", "frequency",
	"wavelength", "ph", "buffer", "equilibrium", "reaction", "solution", "compound",
	"element", "atom", "molecule", "ion",
]


def _vocabulary_pattern(terms: List[str]) -> re.Pattern[str]:
	return re.compile(r"\b(?:" + "|".join(terms) + r")\b", re.IGNORECASE | re.ASCII)


_CONCEPT_PATTERNS = [_vocabulary_pattern(terms) for terms in (UNITS, OPERATIONS, SCIENCE_TERMS)]
# Simplified: NaCl, H2O, C6H12O6 (also catches the leading letters of capitalized words)
_FORMULA = re.compile(r"\b[A-Z][a-z]?[0-9]*(?:[A-Z][a-z]?[0-9]*)*", re.ASCII)


def tokenize(text: str) -> Set[str]:
	cleaned = _NON_WORD.sub(" ", text.lower())
	return {word for word in cleaned.split() if len(word) > 2}


def extract_structure(text: str) -> str:
	for pattern, marker in _STRUCTURE_PASSES:
		text = pattern.sub(marker, text)
	return _WHITESPACE.sub(" ", text).strip()


def extract_concepts(text: str) -> Set[str]:
	concepts: Set[str] = set()
	for pattern in _CONCEPT_PATTERNS:
		concepts.update(match.group(0).lower() for match in pattern.finditer(text))
	# Formulas keep their case: "CO" and "Co" are different things
	concepts.update(match.group(0) for match in _FORMULA.finditer(text))
	return concepts


def jaccard_index(first: AbstractSet[str], second: AbstractSet[str]) -> float:
	"""|A ∩ B| / |A ∪ B|, with two empty sets counted as identical."""
	if not first and not second:
		return 1.0
	if not first or not second:
		return 0.0
	return len(first & second) / len(first | second)


def levenshtein_distance(source: str, target: str) -> int:
	"""Minimum number of single-character edits turning ``source`` into ``target``."""
	if source == target:
		return 0
	if not source:
		return len(target)
	if not target:
		return len(source)
	previous = list(range(len(source) + 1))
	for j, target_char in enumerate(target, start=1):
		current = [j] + [0] * len(source)
		for i, source_char in enumerate(source, start=1):
			substitution_cost = 0 if source_char == target_char else 1
			current[i] = min(
				previous[i] + 1,  # deletion
				current[i - 1] + 1,  # insertion
				previous[i - 1] + substitution_cost,
			)
		previous = current
	return previous[len(source)]
