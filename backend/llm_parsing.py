"""Helper functions for parsing LLM responses"""
from typing import Any, Dict, List, Union
import json

QUESTION_OPTION_COUNT = 4


class LLMParsingError(Exception):
    """Exception raised for errors parsing LLM responses"""
    pass


def _extract_json(text: str) -> Union[Dict[str, Any], List[Any]]:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Strip markdown code fences
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.strip("`")
        if stripped.lower().startswith("json"):
            stripped = stripped[4:]
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass

    # JSON embedded in prose: try whichever of object/array opens first
    pairs = sorted((("{", "}"), ("[", "]")), key=lambda pair: text.find(pair[0]) % (len(text) + 1))
    for open_char, close_char in pairs:
        start = text.find(open_char)
        end = text.rfind(close_char) + 1
        if start >= 0 and end > start:
            try:
                return json.loads(text[start:end])
            except json.JSONDecodeError:
                continue
    raise LLMParsingError("Failed to parse response as JSON")


def parse_llm_response(response: Any) -> Union[Dict[str, Any], List[Any]]:
    """Parse any response from LLM into a JSON object or array"""
    if isinstance(response, bytes):
        response = response.decode("utf-8", errors="replace")
    if isinstance(response, (dict, list)):
        return response
    if not isinstance(response, str):
        raise LLMParsingError("Invalid response format")

    # Handle empty response
    if not response.strip():
        raise LLMParsingError("Empty response from LLM")

    return _extract_json(response)


def _normalize_question(raw: Any, index: int) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise LLMParsingError(f"Question {index} is not an object")
    if not raw.get("question"):
        raise LLMParsingError(f"Missing question field in question {index}")

    options = raw.get("options")
    if not isinstance(options, list) or len(options) != QUESTION_OPTION_COUNT:
        raise LLMParsingError(f"Question {index} must have exactly {QUESTION_OPTION_COUNT} options")

    # Models use either key spelling
    correct = raw.get("correct_answer", raw.get("correctAnswer"))
    if isinstance(correct, str) and correct.isdigit():
        correct = int(correct)
    if isinstance(correct, str) and correct in options:
        correct = options.index(correct)
    if not isinstance(correct, int) or not 0 <= correct < len(options):
        raise LLMParsingError(f"Question {index} has an invalid correct_answer")

    return {
        "question": str(raw["question"]),
        "options": [str(option) for option in options],
        "correct_answer": correct,
        "explanation": str(raw.get("explanation", "")),
    }


def parse_llm_questions(response: Any) -> List[Dict[str, Any]]:
    """Parse a list of multiple-choice questions from LLM response"""
    result = parse_llm_response(response)

    # Accept {"questions": [...]} as well as a bare array
    if isinstance(result, dict):
        result = result.get("questions")
    if not isinstance(result, list) or not result:
        raise LLMParsingError("Missing questions in response")

    return [_normalize_question(raw, i) for i, raw in enumerate(result)]


def parse_llm_learning_path(response: Any) -> Dict[str, Any]:
    """Parse a learning path from LLM response"""
    result = parse_llm_response(response)

    if not isinstance(result, dict):
        raise LLMParsingError("Learning path must be a JSON object")
    modules = result.get("modules")
    if not isinstance(modules, list) or not modules:
        raise LLMParsingError("Missing modules field in learning path")

    return result
