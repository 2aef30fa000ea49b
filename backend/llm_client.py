"""
LLM Client module for interacting with the Azure OpenAI chat completions API.
Handles prompt sending, response extraction, and error handling.
Includes the prompt templates used by the tutor service.
"""

from typing import Dict, List, Optional
import json
import logging
import os

import requests
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Configuration from environment
ENDPOINT: str = os.getenv("AZURE_OPENAI_ENDPOINT", "")
API_KEY: str = os.getenv("AZURE_OPENAI_API_KEY", "")
DEPLOYMENT: str = os.getenv("AZURE_OPENAI_DEPLOYMENT_NAME", "gpt-4")
API_VERSION: str = os.getenv("AZURE_OPENAI_API_VERSION", "2024-10-21")
REQUEST_TIMEOUT: int = int(os.getenv("AZURE_OPENAI_TIMEOUT", "30"))

STYLE_INSTRUCTIONS = {
    "visual": "Use visual metaphors, diagram descriptions, and spatial relationships",
    "auditory": "Use rhythm, patterns, and sound-based analogies",
    "kinesthetic": "Use hands-on examples and physical analogies",
    "reading": "Provide detailed text with clear structure and examples",
}

EXPLANATION_SYSTEM = (
    "You are an expert tutor who explains concepts clearly and adapts to "
    "different learning styles and difficulty levels."
)
QUESTIONS_SYSTEM = "You are an educational content creator who generates engaging practice questions."
LEARNING_PATH_SYSTEM = (
    "You are a curriculum designer who creates personalized learning paths "
    "based on individual needs and goals."
)
CHAT_SYSTEM = (
    "You are a friendly AI tutor on an education platform. Guide students "
    "towards understanding instead of handing out answers. The student learns "
    "best through {learning_style} methods."
)

EXPLANATION_PROMPT_TEMPLATE = """Explain "{topic}" for a {difficulty} level student who learns best through {learning_style} methods.
{style_instruction}.
Keep it engaging, clear, and appropriate for the difficulty level."""

QUESTIONS_PROMPT_TEMPLATE = """Generate {count} multiple-choice questions about "{topic}" at {difficulty} difficulty level.
Respond only with a JSON array. Each element must be an object with:
  "question": the question text,
  "options": an array of exactly 4 answer strings,
  "correct_answer": the index (0-3) of the correct option,
  "explanation": why that option is correct."""

LEARNING_PATH_PROMPT_TEMPLATE = """Create a personalized learning path for "{subject}" for a {current_level} level student.
Goals: {goals}
Timeframe: {timeframe}
Respond only with JSON of the form:
{{
  "title": "<path title>",
  "description": "<one sentence>",
  "modules": [
    {{"title": "<module>", "duration": "<e.g. 2 weeks>", "topics": ["..."], "resources": ["..."]}}
  ],
  "estimated_hours": <integer>
}}"""


def build_explanation_prompt(topic: str, difficulty: str, learning_style: str) -> str:
    """
    Generate the explanation prompt adapted to a learning style.

    Args:
        topic (str): The concept to explain
        difficulty (str): beginner, intermediate or advanced
        learning_style (str): visual, auditory, kinesthetic or reading

    Returns:
        str: A formatted prompt for the LLM
    """
    return EXPLANATION_PROMPT_TEMPLATE.format(
        topic=topic,
        difficulty=difficulty,
        learning_style=learning_style,
        style_instruction=STYLE_INSTRUCTIONS.get(learning_style, STYLE_INSTRUCTIONS["visual"]),
    )


def build_questions_prompt(topic: str, count: int, difficulty: str) -> str:
    return QUESTIONS_PROMPT_TEMPLATE.format(topic=topic, count=count, difficulty=difficulty)


def build_learning_path_prompt(subject: str, current_level: str, goals: str, timeframe: str) -> str:
    return LEARNING_PATH_PROMPT_TEMPLATE.format(
        subject=subject,
        current_level=current_level,
        goals=goals,
        timeframe=timeframe,
    )


class LLMError(Exception):
    """Custom exception for LLM-related errors."""
    pass


def is_configured() -> bool:
    """Return True when both the endpoint and the API key are set."""
    return bool(ENDPOINT and API_KEY)


def _validate_config() -> None:
    """
    Validate that required environment variables are set.

    Raises:
        LLMError: If any required configuration is missing.
    """
    if not API_KEY:
        raise LLMError("AZURE_OPENAI_API_KEY not found in environment variables")
    if not ENDPOINT:
        raise LLMError("AZURE_OPENAI_ENDPOINT not found in environment variables")


def _build_headers() -> Dict[str, str]:
    """
    Build headers for Azure OpenAI requests.

    Returns:
        Dict[str, str]: Headers dictionary including the api-key and content type.
    """
    return {
        "api-key": API_KEY,
        "Content-Type": "application/json"
    }


def _build_endpoint() -> str:
    base = ENDPOINT.rstrip("/")
    return f"{base}/openai/deployments/{DEPLOYMENT}/chat/completions?api-version={API_VERSION}"


def _parse_response(response: requests.Response) -> str:
    """
    Parse the response from the chat completions API and extract the generated text.

    Args:
        response (requests.Response): Response object from the API call.

    Returns:
        str: Generated text from the model.

    Raises:
        LLMError: If response parsing fails or API returns an error.
    """
    try:
        data = response.json()
        if "choices" not in data or not data["choices"]:
            raise LLMError("Invalid response format from API")
        choice = data["choices"][0]
        if "message" in choice and choice["message"].get("content"):
            return choice["message"]["content"].strip()
        # Fallback to text field for completion-style payloads
        elif choice.get("text"):
            return choice["text"].strip()
        else:
            raise LLMError("No content found in response")
    except json.JSONDecodeError:
        raise LLMError("Failed to parse API response")
    except (KeyError, TypeError, AttributeError) as e:
        raise LLMError(f"Unexpected response structure: {e}")


def send_prompt(
    prompt: str,
    system: Optional[str] = None,
    max_tokens: int = 512,
    temperature: float = 0.7,
    history: Optional[List[Dict[str, str]]] = None,
) -> str:
    """
    Send a prompt to the chat completions API and get the generated response.

    Args:
        prompt (str): The user prompt to send to the model.
        system (str, optional): System message placed before the conversation.
        max_tokens (int, optional): Maximum number of tokens to generate. Defaults to 512.
        temperature (float, optional): Sampling temperature. Defaults to 0.7.
        history (list, optional): Earlier {"role", "content"} messages to replay.

    Returns:
        str: The generated text response.

    Raises:
        LLMError: If configuration is invalid, the request fails, or the response cannot be parsed.
    """
    _validate_config()

    messages: List[Dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.extend(history or [])
    messages.append({"role": "user", "content": prompt})

    payload = {
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "top_p": 1,
        "stream": False
    }

    try:
        response = requests.post(
            _build_endpoint(),
            headers=_build_headers(),
            json=payload,
            timeout=REQUEST_TIMEOUT
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.warning("LLM service unavailable: %s", e)
        raise LLMError(f"LLM request failed: {e}") from e

    return _parse_response(response)
