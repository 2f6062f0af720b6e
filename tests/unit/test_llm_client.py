"""Unit tests for LLM client with mocked API responses."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from pydantic import BaseModel, Field

from faloclaro.utils.llm_client import LLMClient, LLMGenerationError


class MockResponse(BaseModel):
    """Mock response model for testing."""

    text: str = Field(..., description="Response text")
    count: int = Field(..., description="Word count")


class TestLLMClient:
    """Test LLMClient with mocked API responses."""

    @patch("openai.OpenAI")
    @patch("faloclaro.utils.llm_client.instructor.from_openai")
    def test_client_initialization(self, mock_from_openai, mock_openai):
        mock_from_openai.return_value = MagicMock()

        client = LLMClient(api_key="test-key", model="gpt-4o", enable_langfuse=False)

        assert client.model == "gpt-4o"
        assert client.max_retries == 2
        assert client.base_delay == 1.0
        mock_openai.assert_called_once_with(api_key="test-key")
        mock_from_openai.assert_called_once()

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="OpenAI credentials required"):
            LLMClient()

    @patch("openai.OpenAI")
    @patch("faloclaro.utils.llm_client.instructor.from_openai")
    def test_successful_generate(self, mock_from_openai, mock_openai):
        mock_instructor_client = MagicMock()
        mock_from_openai.return_value = mock_instructor_client
        mock_instructor_client.chat.completions.create.return_value = MockResponse(text="Olá", count=1)

        client = LLMClient(api_key="test-key", enable_langfuse=False)
        result = client.generate(prompt="Say hello", response_model=MockResponse, temperature=0.5)

        assert result.text == "Olá"
        kwargs = mock_instructor_client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.5
        assert kwargs["response_model"] is MockResponse
        assert kwargs["max_retries"] == 0
        assert client.total_requests == 1

    @patch("openai.OpenAI")
    @patch("faloclaro.utils.llm_client.instructor.from_openai")
    def test_generate_with_system_prompt(self, mock_from_openai, mock_openai):
        mock_instructor_client = MagicMock()
        mock_from_openai.return_value = mock_instructor_client
        mock_instructor_client.chat.completions.create.return_value = MockResponse(text="Response", count=1)

        client = LLMClient(api_key="test-key", enable_langfuse=False)
        client.generate(
            prompt="User prompt",
            response_model=MockResponse,
            system_prompt="You write Portuguese lessons",
        )

        messages = mock_instructor_client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]
        assert messages[0]["content"] == "You write Portuguese lessons"

    @patch("faloclaro.utils.llm_client.time.sleep")
    @patch("openai.OpenAI")
    @patch("faloclaro.utils.llm_client.instructor.from_openai")
    def test_retry_then_success(self, mock_from_openai, mock_openai, mock_sleep):
        mock_instructor_client = MagicMock()
        mock_from_openai.return_value = mock_instructor_client
        mock_instructor_client.chat.completions.create.side_effect = [
            ValueError("Lesson must have exactly 5 tasks, got 4"),
            MockResponse(text="ok", count=1),
        ]

        client = LLMClient(api_key="test-key", enable_langfuse=False)
        result = client.generate(prompt="p", response_model=MockResponse)

        assert result.text == "ok"
        assert mock_instructor_client.chat.completions.create.call_count == 2
        mock_sleep.assert_called_once_with(1.0)

    @patch("faloclaro.utils.llm_client.time.sleep")
    @patch("openai.OpenAI")
    @patch("faloclaro.utils.llm_client.instructor.from_openai")
    def test_all_attempts_fail(self, mock_from_openai, mock_openai, mock_sleep):
        mock_instructor_client = MagicMock()
        mock_from_openai.return_value = mock_instructor_client
        mock_instructor_client.chat.completions.create.side_effect = RuntimeError("API down")

        client = LLMClient(api_key="test-key", max_retries=3, enable_langfuse=False)
        with pytest.raises(LLMGenerationError, match="after 3 attempts: API down"):
            client.generate(prompt="p", response_model=MockResponse)

        assert mock_sleep.call_count == 2
        assert client.failed_requests == 1

    @patch("openai.OpenAI")
    @patch("faloclaro.utils.llm_client.instructor.from_openai")
    def test_usage_summary(self, mock_from_openai, mock_openai):
        mock_instructor_client = MagicMock()
        mock_from_openai.return_value = mock_instructor_client
        response = MockResponse(text="t", count=1)
        # Instructor attaches the raw completion to the parsed model
        object.__setattr__(
            response,
            "_raw_response",
            SimpleNamespace(
                usage=SimpleNamespace(
                    prompt_tokens=1_000_000,
                    completion_tokens=1_000_000,
                    total_tokens=2_000_000,
                    prompt_tokens_details=SimpleNamespace(cached_tokens=0),
                )
            ),
        )
        mock_instructor_client.chat.completions.create.return_value = response

        client = LLMClient(api_key="test-key", model="gpt-4o-mini", enable_langfuse=False)
        client.generate(prompt="p", response_model=MockResponse)
        summary = client.get_usage_summary()

        assert summary["total_tokens"] == 2_000_000
        assert summary["estimated_cost_usd"] == 0.75

    def test_backoff_is_capped(self):
        client = LLMClient.__new__(LLMClient)
        client.base_delay = 1.0
        client.max_delay = 5.0

        assert client._calculate_backoff_delay(1) == 1.0
        assert client._calculate_backoff_delay(3) == 4.0
        assert client._calculate_backoff_delay(10) == 5.0
