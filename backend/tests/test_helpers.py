"""Test helpers module for faking chat completion responses"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union
from unittest.mock import Mock

import requests


@dataclass
class MockChoice:
    content: str
    finish_reason: str = "stop"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": 0,
            "message": {"role": "assistant", "content": self.content},
            "finish_reason": self.finish_reason,
        }


@dataclass
class MockLLMResponse:
    choices: List[MockChoice] = field(default_factory=list)

    @classmethod
    def from_content(cls, content: Union[str, Dict[str, Any], List[Any]]) -> 'MockLLMResponse':
        """Create a mock response whose single choice carries ``content`` (JSON-encoded if not a string)"""
        text = content if isinstance(content, str) else json.dumps(content)
        return cls(choices=[MockChoice(content=text)])

    def to_dict(self) -> Dict[str, Any]:
        return {"choices": [choice.to_dict() for choice in self.choices]}

    def as_http_response(self) -> Mock:
        response = Mock()
        response.status_code = 200
        response.json.return_value = self.to_dict()
        response.raise_for_status.return_value = None
        return response


def http_error_response(status_code: int = 500) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Server Error")
    return response
