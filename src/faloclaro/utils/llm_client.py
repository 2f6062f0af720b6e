"""LLM client with Instructor integration for structured lesson drafts.

Wraps OpenAI with Instructor so responses are validated against pydantic
models, retried with exponential backoff, and traced through Langfuse when
enabled.
"""

import hashlib
import logging
import os
import time
from typing import Optional, Type, TypeVar

import instructor
from langfuse import observe
from pydantic import BaseModel

from faloclaro.constants import LESSON_GENERATION_MODEL

T = TypeVar("T", bound=BaseModel)

logger = logging.getLogger(__name__)

# USD per 1M tokens
MODEL_COSTS = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60, "cached": 0.075},
    "gpt-4o": {"input": 2.5, "output": 10, "cached": 1.25},
    "gpt-4.1-mini": {"input": 0.4, "output": 1.6, "cached": 0.1},
    "gpt-4.1": {"input": 2, "output": 8, "cached": 0.5},
}


class TokenUsage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0


class LLMGenerationError(Exception):
    """Every attempt failed."""


class LLMClient:
    """Instructor-wrapped OpenAI client.

    Features:
    - Structured responses validated by pydantic models
    - Retry with exponential backoff (validation failures count as attempts)
    - Token usage tracking and cost estimation
    - Optional Langfuse tracing
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        enable_langfuse: Optional[bool] = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenAI key (or OPENAI_API_KEY env var)
            model: Model name (or LESSON_GENERATION_MODEL env var, default gpt-4o-mini)
            max_retries: Maximum number of attempts per request
            base_delay: Base delay for exponential backoff in seconds
            max_delay: Maximum delay between retries in seconds
            enable_langfuse: Trace through Langfuse (defaults to on when LANGFUSE_PUBLIC_KEY is set)
        """
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI credentials required: OPENAI_API_KEY env var or constructor param")

        self.model = model or LESSON_GENERATION_MODEL
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        if enable_langfuse is None:
            enable_langfuse = bool(os.getenv("LANGFUSE_PUBLIC_KEY"))
        self.enable_langfuse = enable_langfuse

        self.total_usage = TokenUsage()
        self.total_requests = 0
        self.failed_requests = 0

        if enable_langfuse:
            from langfuse.openai import OpenAI

            logger.info("Langfuse tracing enabled for OpenAI")
        else:
            from openai import OpenAI

        self.client = instructor.from_openai(OpenAI(api_key=api_key))
        logger.info(f"LLMClient initialized with model={self.model}, max_retries={max_retries}")

    @observe(as_type="generation")
    def generate(
        self,
        prompt: str,
        response_model: Type[T],
        temperature: float = 0.3,
        max_tokens: int = 8000,
        system_prompt: Optional[str] = None,
    ) -> T:
        """Generate a structured response.

        Args:
            prompt: User prompt
            response_model: Pydantic model the response must validate against
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            system_prompt: Optional system prompt

        Returns:
            Validated model instance

        Raises:
            LLMGenerationError: If all attempts fail
        """
        prompt_hash = self._hash_prompt(prompt)
        logger.info(
            f"Generating {response_model.__name__}: model={self.model}, "
            f"prompt_hash={prompt_hash}, temperature={temperature}"
        )

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        last_exception: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            start_time = time.time()
            try:
                # Instructor's own retries are off so every attempt is counted here
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    response_model=response_model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    max_retries=0,
                )
                latency_ms = (time.time() - start_time) * 1000
                usage = self._extract_usage(response)
                self._update_total_usage(usage)
                self.total_requests += 1
                logger.info(
                    f"✓ LLM response: prompt_hash={prompt_hash}, attempt={attempt}, "
                    f"latency={latency_ms:.0f}ms, tokens={usage.total_tokens}"
                )
                return response

            except Exception as e:
                last_exception = e
                latency_ms = (time.time() - start_time) * 1000
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries} failed after {latency_ms:.0f}ms: {str(e)[:200]}"
                )
                if attempt < self.max_retries:
                    delay = self._calculate_backoff_delay(attempt)
                    logger.info(f"Retrying in {delay:.2f} seconds...")
                    time.sleep(delay)

        self.failed_requests += 1
        logger.error(f"✗ All {self.max_retries} attempts failed for prompt_hash={prompt_hash}")
        raise LLMGenerationError(
            f"Failed to generate valid response after {self.max_retries} attempts: {last_exception}"
        )

    def _extract_usage(self, response) -> TokenUsage:
        usage = TokenUsage()
        raw = getattr(response, "_raw_response", None)
        raw_usage = getattr(raw, "usage", None)
        if raw_usage is None:
            return usage
        usage.prompt_tokens = getattr(raw_usage, "prompt_tokens", 0) or 0
        usage.completion_tokens = getattr(raw_usage, "completion_tokens", 0) or 0
        usage.total_tokens = getattr(raw_usage, "total_tokens", 0) or 0
        details = getattr(raw_usage, "prompt_tokens_details", None)
        if details is not None:
            usage.cached_tokens = getattr(details, "cached_tokens", 0) or 0
        return usage

    def _update_total_usage(self, usage: TokenUsage) -> None:
        self.total_usage.prompt_tokens += usage.prompt_tokens
        self.total_usage.completion_tokens += usage.completion_tokens
        self.total_usage.total_tokens += usage.total_tokens
        self.total_usage.cached_tokens += usage.cached_tokens

    def get_usage_summary(self) -> dict:
        """Get summary of total token usage.

        Returns:
            Dictionary with usage stats and cost estimates
        """
        model_cost = MODEL_COSTS.get(self.model, MODEL_COSTS["gpt-4o-mini"])
        uncached_prompt = self.total_usage.prompt_tokens - self.total_usage.cached_tokens
        input_cost = (
            uncached_prompt * model_cost["input"] + self.total_usage.cached_tokens * model_cost["cached"]
        ) / 1_000_000
        output_cost = self.total_usage.completion_tokens * model_cost["output"] / 1_000_000
        return {
            "model": self.model,
            "requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "prompt_tokens": self.total_usage.prompt_tokens,
            "completion_tokens": self.total_usage.completion_tokens,
            "total_tokens": self.total_usage.total_tokens,
            "cached_tokens": self.total_usage.cached_tokens,
            "estimated_cost_usd": round(input_cost + output_cost, 4),
        }

    def _hash_prompt(self, prompt: str) -> str:
        return hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:16]

    def _calculate_backoff_delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
