"""
Question and Answer Codecs

This module provides the only two parsers of the serialized texts stored with
assessments and results:

1. QuestionSetCodec - converts an assessment's question set between its JSON
   text and a list of validated Question values
2. AnswerCodec - converts a submission's answers between JSON text and a list
   of Answer values, validated against the assessment's questions

Both codecs collect every problem in the input before failing, so that a
caller can fix all offending questions or answers at once. Each problem is
reported as ``{"index", "question_id", "reason"}``.

Question set wire format::

    [{"id": "q1", "type": "single_choice", "prompt": "2 + 2 = ?",
      "options": [{"id": "A", "text": "3"}, {"id": "B", "text": "4"}],
      "correct": "B", "points": 10}]

Legacy question sets (``Id``, ``Text``, ``Options`` as plain strings,
``CorrectAnswer``, ``Points``) are accepted as single-choice questions whose
option ids equal their texts.
"""

import json
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from edusync.assessments.models import Answer, Option, Question, QuestionType, Response
from edusync.common.error_handling import MalformedAnswersError, MalformedQuestionSetError

MIN_CHOICE_OPTIONS = 2

_PROMPT_KEYS = ("prompt", "text")
_CORRECT_KEYS = ("correct", "correctanswer")
_QUESTION_ID_KEYS = ("question_id", "questionid", "id")
_RESPONSE_KEYS = ("response", "useranswer")


class _Problem(Exception):
    """A single validation failure inside one question or answer."""


def _lower_keys(item: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key).lower(): value for key, value in item.items()}


def _first(item: Dict[str, Any], keys: Sequence[str], default: Any = None) -> Any:
    for key in keys:
        if key in item:
            return item[key]
    return default


def _identifier(value: Any, what: str) -> str:
    """Normalize a question or option identifier to a non-empty string."""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise _Problem(f"{what} must be a string or integer")
    value = str(value)
    if not value:
        raise _Problem(f"{what} must not be empty")
    return value


def _load_list(raw: str, what: str) -> List[Any]:
    if not isinstance(raw, (str, bytes, bytearray)):
        raise _Problem(f"{what} must be serialized JSON text")
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise _Problem(f"{what} is not valid JSON: {e}") from e
    except RecursionError as e:
        raise _Problem(f"{what} is nested too deeply") from e
    if not isinstance(data, list):
        raise _Problem(f"{what} must be a JSON array")
    return data


class QuestionSetCodec:
    """Parses, validates and serializes an assessment's question set."""

    def parse(self, raw: str) -> List[Question]:
        """
        Parse a serialized question set.

        Args:
            raw: JSON text of the question set

        Returns:
            Questions in their stored order

        Raises:
            MalformedQuestionSetError: If the text is not a valid question set
        """
        try:
            items = _load_list(raw, "Question set")
        except _Problem as e:
            raise MalformedQuestionSetError(str(e), [{"index": None, "question_id": None, "reason": str(e)}])

        questions: List[Question] = []
        errors: List[Dict[str, Any]] = []
        seen_ids = set()

        for index, item in enumerate(items):
            question_id = None
            try:
                if not isinstance(item, dict):
                    raise _Problem("question must be a JSON object")
                item = _lower_keys(item)
                question_id = _identifier(item.get("id"), "question id")
                if question_id in seen_ids:
                    raise _Problem(f"duplicate question id {question_id!r}")
                seen_ids.add(question_id)
                questions.append(self._parse_question(question_id, item))
            except _Problem as e:
                errors.append({"index": index, "question_id": question_id, "reason": str(e)})

        if errors:
            raise MalformedQuestionSetError(
                f"Question set has {len(errors)} invalid question(s)", errors
            )
        return questions

    def _parse_question(self, question_id: str, item: Dict[str, Any]) -> Question:
        type_tag = item.get("type", QuestionType.SINGLE_CHOICE.value)
        try:
            question_type = QuestionType(type_tag)
        except ValueError:
            raise _Problem(f"unknown question type {type_tag!r}")

        prompt = _first(item, _PROMPT_KEYS)
        if not isinstance(prompt, str):
            raise _Problem("prompt must be a string")

        points = item.get("points", 1)
        if isinstance(points, bool) or not isinstance(points, int):
            raise _Problem("points must be an integer")
        if points < 0:
            raise _Problem("points must not be negative")

        options = self._parse_options(question_type, item.get("options"))
        correct = self._parse_correct(question_type, options, _first(item, _CORRECT_KEYS))

        return Question(
            question_id=question_id,
            question_type=question_type,
            prompt=prompt,
            options=options,
            correct=correct,
            points=points
        )

    def _parse_options(self, question_type: QuestionType, raw_options: Any) -> Tuple[Option, ...]:
        if not question_type.is_choice:
            if raw_options:
                raise _Problem("free-text questions take no options")
            return ()

        if not isinstance(raw_options, list):
            raise _Problem("choice questions need a list of options")
        if len(raw_options) < MIN_CHOICE_OPTIONS:
            raise _Problem(f"choice questions need at least {MIN_CHOICE_OPTIONS} options")

        options = []
        seen = set()
        for raw_option in raw_options:
            if isinstance(raw_option, str):
                option = Option(option_id=_identifier(raw_option, "option id"), text=raw_option)
            elif isinstance(raw_option, dict):
                raw_option = _lower_keys(raw_option)
                text = raw_option.get("text")
                if not isinstance(text, str):
                    raise _Problem("option text must be a string")
                option = Option(option_id=_identifier(raw_option.get("id"), "option id"), text=text)
            else:
                raise _Problem("option must be a string or an object with id and text")

            if option.option_id in seen:
                raise _Problem(f"duplicate option id {option.option_id!r}")
            seen.add(option.option_id)
            options.append(option)
        return tuple(options)

    def _parse_correct(self, question_type: QuestionType, options: Tuple[Option, ...], raw: Any):
        if question_type is QuestionType.FREE_TEXT:
            if raw is not None and not isinstance(raw, str):
                raise _Problem("reference answer must be a string")
            return raw

        option_ids = {option.option_id for option in options}

        if question_type is QuestionType.SINGLE_CHOICE:
            if raw is None:
                raise _Problem("choice questions need a correct answer")
            correct = _identifier(raw, "correct answer")
            if correct not in option_ids:
                raise _Problem(f"correct answer {correct!r} is not one of the options")
            return correct

        if not isinstance(raw, list) or not raw:
            raise _Problem("multi-choice questions need a non-empty list of correct options")
        correct = [_identifier(value, "correct answer") for value in raw]
        if len(set(correct)) != len(correct):
            raise _Problem("correct options must be distinct")
        unknown = sorted(set(correct) - option_ids)
        if unknown:
            raise _Problem(f"correct options {unknown} are not among the options")
        return frozenset(correct)

    def to_dicts(self, questions: Iterable[Question], include_correct: bool = True) -> List[Dict[str, Any]]:
        """Convert questions to their canonical JSON-ready form."""
        items = []
        for question in questions:
            item: Dict[str, Any] = {
                "id": question.question_id,
                "type": question.question_type.value,
                "prompt": question.prompt,
                "options": [{"id": o.option_id, "text": o.text} for o in question.options],
            }
            if include_correct:
                correct = question.correct
                item["correct"] = sorted(correct) if isinstance(correct, frozenset) else correct
            item["points"] = question.points
            items.append(item)
        return items

    def serialize(self, questions: Iterable[Question]) -> str:
        """Serialize questions to canonical JSON text."""
        return json.dumps(self.to_dicts(questions))

    def redact(self, questions: Iterable[Question]) -> List[Dict[str, Any]]:
        """Student-facing form of the questions, without correct answers."""
        return self.to_dicts(questions, include_correct=False)


class AnswerCodec:
    """Parses, validates and serializes submitted answers."""

    def parse(self, raw: str, expected_questions: Sequence[Question]) -> List[Answer]:
        """
        Parse serialized answers against an assessment's questions.

        Only the shape of each response is validated. A well-formed choice
        naming an option the question does not offer is left to score zero.
        Questions without an answer are simply absent from the result.

        Args:
            raw: JSON text of the answers
            expected_questions: Parsed questions of the assessment

        Returns:
            Answers in submitted order

        Raises:
            MalformedAnswersError: If any answer is invalid
        """
        try:
            items = _load_list(raw, "Answers")
        except _Problem as e:
            raise MalformedAnswersError(str(e), [{"index": None, "question_id": None, "reason": str(e)}])

        questions = {question.question_id: question for question in expected_questions}
        answers: List[Answer] = []
        errors: List[Dict[str, Any]] = []
        seen_ids = set()

        for index, item in enumerate(items):
            question_id = None
            try:
                if not isinstance(item, dict):
                    raise _Problem("answer must be a JSON object")
                item = _lower_keys(item)
                question_id = _identifier(_first(item, _QUESTION_ID_KEYS), "question id")
                question = questions.get(question_id)
                if question is None:
                    raise _Problem(f"unknown question id {question_id!r}")
                if question_id in seen_ids:
                    raise _Problem(f"duplicate answer for question {question_id!r}")
                seen_ids.add(question_id)
                answers.append(Answer(question_id, self._response(question, _first(item, _RESPONSE_KEYS))))
            except _Problem as e:
                errors.append({"index": index, "question_id": question_id, "reason": str(e)})

        if errors:
            raise MalformedAnswersError(f"Submission has {len(errors)} invalid answer(s)", errors)
        return answers

    def parse_response(self, question: Question, response: Any) -> Answer:
        """
        Validate a single already-decoded response to ``question``.

        Raises:
            MalformedAnswersError: If the response shape does not match the question type
        """
        try:
            return Answer(question.question_id, self._response(question, response))
        except _Problem as e:
            raise MalformedAnswersError(
                str(e), [{"index": 0, "question_id": question.question_id, "reason": str(e)}]
            )

    @staticmethod
    def _response(question: Question, raw: Any) -> Response:
        if raw is None:
            raise _Problem("response is missing")

        if question.question_type is QuestionType.FREE_TEXT:
            if not isinstance(raw, str):
                raise _Problem("free-text response must be a string")
            return raw

        if question.question_type is QuestionType.SINGLE_CHOICE:
            return _identifier(raw, "single-choice response")

        if not isinstance(raw, list):
            raise _Problem("multi-choice response must be a list of option ids")
        chosen = [_identifier(value, "multi-choice response") for value in raw]
        if len(set(chosen)) != len(chosen):
            raise _Problem("multi-choice response must not repeat an option")
        return frozenset(chosen)

    def serialize(self, answers: Iterable[Answer]) -> str:
        """Serialize answers to canonical JSON text."""
        return json.dumps([
            {
                "question_id": answer.question_id,
                "response": sorted(answer.response)
                if isinstance(answer.response, frozenset) else answer.response
            }
            for answer in answers
        ])
