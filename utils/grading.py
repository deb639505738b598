from Levenshtein import ratio as lev_ratio
from typing import Any, Dict, List, Optional, Tuple
from config import load_config


def _clean(text: Optional[str]) -> str:
    return " ".join((text or "").split()).lower()


def answer_matches(question: Dict[str, Any], answer: Optional[str], threshold: float) -> bool:
    """Multiple-choice answers must match an option exactly; free text is fuzzy-matched."""
    user_clean = _clean(answer)
    if not user_clean:
        return False
    correct_clean = _clean(question["correct_answer"])
    if question.get("options"):
        return user_clean == correct_clean
    return lev_ratio(user_clean, correct_clean) >= threshold


def score_attempt(
    questions: List[Dict[str, Any]],
    answers: Dict[str, str],
    config: Dict[str, Any] = None,
) -> Tuple[int, List[Dict[str, Any]]]:
    """Return the percentage score and a per-question breakdown."""
    if not config:
        config = load_config()
    threshold = config.get('quizzes', {}).get('free_text_threshold', 0.85)
    results = []
    correct = 0
    for question in questions:
        answer = answers.get(question["id"])
        is_correct = answer_matches(question, answer, threshold)
        correct += 1 if is_correct else 0
        results.append({
            "question_id": question["id"],
            "answer": answer,
            "correct": is_correct,
            "correct_answer": question["correct_answer"],
        })
    score = round(correct / len(questions) * 100) if questions else 0
    return score, results
