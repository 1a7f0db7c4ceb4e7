"""Best-effort conversion of raw model text into cards, quizzes and feedback.

The model is asked for raw JSON but frequently wraps it in commentary or
markdown code fences, or returns a slightly different shape. Extraction runs
an ordered list of candidate strategies; the first candidate that parses and
passes the shape check wins. When nothing does, each entry point returns a
synthetic fallback instead of raising, so a malformed reply never breaks a
session.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Callable, Iterator, Optional, TypeVar

from pydantic import ValidationError

from app.core.logging import get_logger
from app.modules.learning.models import (
    Card,
    ExplanationResult,
    QuestionType,
    QuizFeedback,
    QuizQuestion,
)

logger = get_logger(__name__)

T = TypeVar("T")

MAX_CHOICES = 4

_FENCE_BLOCK_RE = re.compile(r"```[ \t]*[A-Za-z]*[ \t]*\n?(.*?)```", re.DOTALL)
_FENCE_MARKER_RE = re.compile(r"```[A-Za-z]*")
_LETTER_RE = re.compile(r"^\(?([A-Da-d])[\).:]?$")


class Shape(str, Enum):
    OBJECT = "object"
    ARRAY = "array"
    ANY = "any"


_BRACKETS = {
    Shape.OBJECT: (("{", "}"),),
    Shape.ARRAY: (("[", "]"),),
    Shape.ANY: (("{", "}"), ("[", "]")),
}


def strip_code_fences(text: str) -> str:
    """Remove literal code-fence markers (```json, ```) and surrounding blanks."""
    return _FENCE_MARKER_RE.sub("", text or "").strip()


# Candidate strategies ------------------------------------------------------


def _whole_text(text: str, shape: Shape) -> Iterator[str]:
    yield text.strip()


def _fenced_block(text: str, shape: Shape) -> Iterator[str]:
    match = _FENCE_BLOCK_RE.search(text)
    if match:
        yield match.group(1).strip()


def _pairs_in_order(text: str, shape: Shape) -> list[tuple[str, str]]:
    """Bracket pairs for ``shape``, outermost (earliest opener) first."""
    pairs = [p for p in _BRACKETS[shape] if p[0] in text]
    return sorted(pairs, key=lambda p: text.find(p[0]))


def _greedy_span(text: str, shape: Shape) -> Iterator[str]:
    # First opening bracket to the last closing one
    for opener, closer in _pairs_in_order(text, shape):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            yield text[start : end + 1]


def _balanced_span(text: str, shape: Shape) -> Iterator[str]:
    for opener, closer in _pairs_in_order(text, shape):
        start = text.find(opener)
        if start == -1:
            continue
        depth = 0
        in_string = False
        escape = False
        for i, ch in enumerate(text[start:], start):
            if escape:
                escape = False
                continue
            if ch == "\\" and in_string:
                escape = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    yield text[start : i + 1]
                    break


STRATEGIES: tuple[Callable[[str, Shape], Iterator[str]], ...] = (
    _whole_text,
    _fenced_block,
    _greedy_span,
    _balanced_span,
)


def iter_candidates(text: str, shape: Shape = Shape.ANY) -> Iterator[str]:
    """Yield distinct JSON candidates from ``text`` in strategy order."""
    seen: set[str] = set()
    for strategy in STRATEGIES:
        for candidate in strategy(text or "", shape):
            if candidate and candidate not in seen:
                seen.add(candidate)
                yield candidate


def extract_json(
    text: str,
    shape: Shape = Shape.ANY,
    coerce: Optional[Callable[[Any], Optional[T]]] = None,
) -> Optional[T]:
    """Return the first candidate that parses and that ``coerce`` accepts."""
    for candidate in iter_candidates(text, shape):
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if coerce is None:
            return value
        result = coerce(value)
        if result is not None:
            return result
    return None


# Shape coercion ------------------------------------------------------------


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _coerce_card(item: Any, default_title: str) -> Optional[Card]:
    if not isinstance(item, dict):
        return None
    content = item.get("content")
    if isinstance(content, list):
        content = "\n".join(_text(c) for c in content if _text(c))
    content = _text(content)
    if not content:
        return None
    return Card(title=_text(item.get("title")) or default_title, content=content)


def _coerce_cards(value: Any, default_title: str) -> Optional[list[Card]]:
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        return None
    cards = [c for c in (_coerce_card(i, default_title) for i in value) if c]
    return cards or None


def _match_answer(raw: Any, options: list[str]) -> Optional[str]:
    if isinstance(raw, int) and not isinstance(raw, bool):
        return options[raw] if 0 <= raw < len(options) else None
    answer = _text(raw)
    if not answer:
        return None
    if answer in options:
        return answer
    folded = answer.casefold()
    for option in options:
        if option.casefold() == folded:
            return option
    letter = _LETTER_RE.match(answer)
    if letter:
        idx = ord(letter.group(1).upper()) - ord("A")
        if idx < len(options):
            return options[idx]
    return None


def _coerce_question(item: Any) -> Optional[QuizQuestion]:
    if not isinstance(item, dict):
        return None
    question = _text(item.get("question"))
    raw_options = item.get("options")
    if not question or not isinstance(raw_options, list):
        return None

    options: list[str] = []
    for o in raw_options:
        s = _text(o)
        if s and s not in options:
            options.append(s)
    if len(options) < 2:
        return None

    answer = _match_answer(
        item.get("correctAnswer", item.get("correct_answer")), options
    )
    if answer is None:
        return None

    try:
        qtype = QuestionType(_text(item.get("type")).lower())
    except ValueError:
        qtype = (
            QuestionType.TRUE_FALSE if len(options) == 2 else QuestionType.MULTIPLE_CHOICE
        )
    # The option count decides the type; multiple choice needs a full set
    if len(options) == 2:
        qtype = QuestionType.TRUE_FALSE
    elif qtype == QuestionType.TRUE_FALSE:
        qtype = QuestionType.MULTIPLE_CHOICE
    if qtype == QuestionType.MULTIPLE_CHOICE and len(options) < MAX_CHOICES:
        return None

    if len(options) > MAX_CHOICES:
        others = [o for o in options if o != answer][: MAX_CHOICES - 1]
        options = [o for o in options if o == answer or o in others]

    try:
        return QuizQuestion(
            question=question,
            type=qtype,
            options=options,
            correct_answer=answer,
            explanation=_text(item.get("explanation")),
        )
    except ValidationError:
        return None


def _coerce_questions(value: Any) -> Optional[list[QuizQuestion]]:
    if isinstance(value, dict):
        value = value.get("questions", [value])
    if not isinstance(value, list):
        return None
    out = [q for q in (_coerce_question(i) for i in value) if q]
    return out or None


# Entry points --------------------------------------------------------------


def normalize_explanation(raw: str, topic: str) -> ExplanationResult:
    def coerce(value: Any) -> Optional[ExplanationResult]:
        if isinstance(value, dict) and "cards" in value:
            cards = _coerce_cards(value.get("cards"), "Explanation")
            if not cards:
                return None
            clean = _text(value.get("cleanTopic")) or topic
            return ExplanationResult(clean_topic=clean, cards=cards)
        cards = _coerce_cards(value, "Explanation")
        if not cards:
            return None
        return ExplanationResult(clean_topic=topic, cards=cards)

    result = extract_json(raw, Shape.ANY, coerce)
    if result is not None:
        return result
    logger.warning("Explanation JSON parse failed, falling back to text")
    return ExplanationResult(
        clean_topic=topic,
        cards=[Card(title="Explanation", content=strip_code_fences(raw))],
    )


def normalize_clarification(raw: str) -> list[Card]:
    cards = extract_json(
        raw, Shape.ANY, lambda v: _coerce_cards(v, "Clarification")
    )
    if cards is not None:
        return cards
    logger.warning("Clarification JSON parse failed, falling back to text")
    return [Card(title="Clarification", content=strip_code_fences(raw))]


def fallback_question(topic: str) -> QuizQuestion:
    return QuizQuestion(
        question=f"What is the main concept of {topic}?",
        type=QuestionType.TRUE_FALSE,
        options=["True", "False"],
        correct_answer="True",
        explanation="This is a basic understanding check.",
    )


def normalize_quiz(
    raw: str, topic: str, limit: Optional[int] = None
) -> list[QuizQuestion]:
    questions = extract_json(raw, Shape.ARRAY, _coerce_questions)
    if questions is None:
        questions = extract_json(raw, Shape.OBJECT, _coerce_questions)
    if questions is None:
        logger.warning("Quiz JSON parse failed, using placeholder question")
        return [fallback_question(topic)]
    if limit is not None and limit > 0:
        questions = questions[:limit]
    return questions


def normalize_feedback(raw: str) -> QuizFeedback:
    def coerce(value: Any) -> Optional[QuizFeedback]:
        if isinstance(value, dict):
            text = _text(value.get("feedback"))
            if text:
                return QuizFeedback(feedback=text)
        return None

    result = extract_json(raw, Shape.OBJECT, coerce)
    if result is not None:
        return result
    return QuizFeedback(feedback=strip_code_fences(raw) or "Nice work, keep practicing!")
