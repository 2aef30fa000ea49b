"""
Tutor service: routes every AI request to the hosted LLM when it is
configured and falls back to the deterministic mock tutor otherwise, or
whenever the LLM call or its response parsing fails.
"""

from datetime import datetime, UTC
from typing import Any, Dict, List, Optional
import logging

from backend import llm_client, mock_tutor
from backend.llm_client import LLMError
from backend.llm_parsing import LLMParsingError, parse_llm_learning_path, parse_llm_questions

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


class TutorService:
    @property
    def use_mock(self) -> bool:
        return not llm_client.is_configured()

    def status(self) -> Dict[str, Any]:
        real_ai = not self.use_mock
        return {
            "ai_enabled": real_ai,
            "service": "Azure OpenAI" if real_ai else "Mock Tutor",
            "message": (
                "Real AI service is active and ready!"
                if real_ai
                else "Using deterministic mock responses. Configure Azure OpenAI for real AI functionality."
            ),
            "features": {
                "explanations": True,
                "practice_questions": True,
                "chat": True,
                "learning_paths": True,
            },
        }

    def generate_explanation(self, topic: str, difficulty: str = "intermediate", learning_style: str = "visual") -> Dict[str, Any]:
        text = None
        if not self.use_mock:
            try:
                text = llm_client.send_prompt(
                    llm_client.build_explanation_prompt(topic, difficulty, learning_style),
                    system=llm_client.EXPLANATION_SYSTEM,
                    max_tokens=500,
                    temperature=0.7,
                )
            except LLMError as e:
                logger.warning("Explanation generation failed for %r, using mock: %s", topic, e)

        is_mock = not text
        if is_mock:
            text = mock_tutor.explanation(topic, difficulty, learning_style)

        return {
            "explanation": text,
            "topic": topic,
            "difficulty": difficulty,
            "learning_style": learning_style,
            "generated_at": _timestamp(),
            "is_mock": is_mock,
        }

    def generate_practice_questions(self, topic: str, count: int = 5, difficulty: str = "intermediate") -> Dict[str, Any]:
        questions: Optional[List[Dict[str, Any]]] = None
        if not self.use_mock:
            try:
                response = llm_client.send_prompt(
                    llm_client.build_questions_prompt(topic, count, difficulty),
                    system=llm_client.QUESTIONS_SYSTEM,
                    max_tokens=800,
                    temperature=0.6,
                )
                questions = parse_llm_questions(response)[:count]
            except (LLMError, LLMParsingError) as e:
                logger.warning("Question generation failed for %r, using mock: %s", topic, e)

        is_mock = not questions
        if is_mock:
            questions = mock_tutor.practice_questions(topic, count, difficulty)

        return {
            "questions": questions,
            "topic": topic,
            "difficulty": difficulty,
            "generated_at": _timestamp(),
            "is_mock": is_mock,
        }

    def generate_learning_path(self, subject: str, current_level: str, goals: str, timeframe: str) -> Dict[str, Any]:
        path: Optional[Dict[str, Any]] = None
        if not self.use_mock:
            try:
                response = llm_client.send_prompt(
                    llm_client.build_learning_path_prompt(subject, current_level, goals, timeframe),
                    system=llm_client.LEARNING_PATH_SYSTEM,
                    max_tokens=1000,
                    temperature=0.5,
                )
                path = parse_llm_learning_path(response)
            except (LLMError, LLMParsingError) as e:
                logger.warning("Learning path generation failed for %r, using mock: %s", subject, e)

        is_mock = path is None
        if is_mock:
            path = mock_tutor.learning_path(subject, current_level, goals, timeframe)

        return {
            **path,
            "subject": subject,
            "current_level": current_level,
            "goals": goals,
            "timeframe": timeframe,
            "generated_at": _timestamp(),
            "is_mock": is_mock,
        }

    def chat(self, message: str, learning_style: str = "visual", context: Optional[List[Dict[str, Any]]] = None) -> str:
        context = context or []
        if not self.use_mock:
            # Replay the last few exchanges only
            history = [
                {"role": turn.get("role", "user"), "content": str(turn.get("message", ""))}
                for turn in context[-6:]
                if turn.get("role") in ("user", "assistant")
            ]
            try:
                return llm_client.send_prompt(
                    message,
                    system=llm_client.CHAT_SYSTEM.format(learning_style=learning_style),
                    max_tokens=400,
                    history=history,
                )
            except LLMError as e:
                logger.warning("Chat completion failed, using mock: %s", e)
        return mock_tutor.chat_response(message, learning_style, context)


tutor_service = TutorService()
