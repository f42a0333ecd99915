"""
Weighted scoring with negative marking.

Pure functions: no database access, no clock. Every question of a test is
classified exactly once as correct, wrong or unanswered and the matching
weight is added to the score. The score is never clamped, so a paper full
of wrong answers under negative marking ends below zero.

Percentage depends only on the correct count:

    percentage = round(correct / total * 100, 1)
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from examprep.core.test_definitions import Question, ScoringWeights


class Outcome(str, enum.Enum):
    """Classification of a single question in a submission."""

    CORRECT = "correct"
    WRONG = "wrong"
    UNANSWERED = "unanswered"


@dataclass(frozen=True)
class QuestionResult:
    """Per-question detail, stored verbatim on the performance record."""

    question_index: int
    selected_option: Optional[str]
    correct_option: Optional[str]
    outcome: Outcome
    points: float
    difficulty: str
    area: str
    time_spent_seconds: Optional[int] = None
    qid: Optional[str] = None
    question_text: Optional[str] = None
    explanation: Optional[str] = None

    @property
    def is_correct(self) -> bool:
        return self.outcome == Outcome.CORRECT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_index": self.question_index,
            "qid": self.qid,
            "selected_option": self.selected_option,
            "correct_option": self.correct_option,
            "is_correct": self.is_correct,
            "outcome": self.outcome.value,
            "points": self.points,
            "difficulty": self.difficulty,
            "area": self.area,
            "time_spent_seconds": self.time_spent_seconds,
            "question_text": self.question_text,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class ScoreResult:
    weighted_score: float
    correct: int
    wrong: int
    unanswered: int
    total: int
    percentage: float
    questions: List[QuestionResult] = field(default_factory=list)

    @property
    def breakdown(self) -> Dict[str, int]:
        return {
            "correct": self.correct,
            "wrong": self.wrong,
            "unanswered": self.unanswered,
            "total": self.total,
        }


def calculate_percentage(correct: int, total: int) -> float:
    """Share of correct answers, 0-100, one decimal. Empty tests score 0."""
    if total <= 0:
        return 0.0
    return round(correct / total * 100, 1)


def normalize_answers(answers: Mapping[int, Optional[str]]) -> Dict[int, str]:
    """
    Drop empty answers and upper-case the rest.

    Keys are kept as given; out-of-range indices are filtered by
    :func:`score_submission`, not here.
    """
    normalized: Dict[int, str] = {}
    for index, option in answers.items():
        if option is None:
            continue
        option = str(option).strip().upper()
        if option:
            normalized[int(index)] = option
    return normalized


def classify_answer(question: Question, selected: Optional[str]) -> Outcome:
    """
    Classify one answer.

    A question without exactly one correct option cannot be matched and is
    classified as unanswered whatever was selected.
    """
    if not selected:
        return Outcome.UNANSWERED
    correct_option = question.correct_option
    if correct_option is None:
        return Outcome.UNANSWERED
    return Outcome.CORRECT if selected == correct_option else Outcome.WRONG


def score_submission(
    questions: Sequence[Question],
    answers: Mapping[int, Optional[str]],
    weights: ScoringWeights,
    time_spent: Optional[Mapping[int, int]] = None,
) -> ScoreResult:
    """
    Score a submission against a test's questions.

    Args:
        questions: Questions of the test, in index order
        answers: Question index -> selected option key; missing or empty
            means unanswered, indices outside the test are ignored
        weights: Points per outcome
        time_spent: Optional question index -> seconds spent

    Returns:
        ScoreResult with counts summing to ``len(questions)``
    """
    selected_by_index = normalize_answers(answers)
    time_spent = time_spent or {}
    points_for = {
        Outcome.CORRECT: weights.correct,
        Outcome.WRONG: weights.wrong,
        Outcome.UNANSWERED: weights.unanswered,
    }

    results: List[QuestionResult] = []
    counts = {outcome: 0 for outcome in Outcome}
    weighted_score = 0.0

    for question in questions:
        selected = selected_by_index.get(question.index)
        outcome = classify_answer(question, selected)
        points = points_for[outcome]
        counts[outcome] += 1
        weighted_score += points
        results.append(
            QuestionResult(
                question_index=question.index,
                selected_option=selected,
                correct_option=question.correct_option,
                outcome=outcome,
                points=points,
                difficulty=question.difficulty,
                area=question.area,
                time_spent_seconds=time_spent.get(question.index),
                qid=question.qid,
                question_text=question.text,
                explanation=question.explanation,
            )
        )

    total = len(questions)
    correct = counts[Outcome.CORRECT]
    return ScoreResult(
        weighted_score=weighted_score,
        correct=correct,
        wrong=counts[Outcome.WRONG],
        unanswered=counts[Outcome.UNANSWERED],
        total=total,
        percentage=calculate_percentage(correct, total),
        questions=results,
    )
