import time
from typing import Any, Optional, Type, TypeVar
from pydantic import BaseModel
from openai import OpenAI
from planpay.infra.logging import log_event
from planpay.core.prompt_loader import load_prompt
from planpay.core.llm_output import (
    parse_and_validate,
    LLMInvalidJSON,
    LLMSchemaViolation,
    Transform,
)

T = TypeVar("T", bound=BaseModel)


class LLMClient:
    def generate(self, prompt: str) -> str:
        raise NotImplementedError

    def generate_structured(
        self, prompt: str, schema: Type[T], transform: Optional[Transform] = None
    ) -> T:
        raise NotImplementedError


class OpenAIClient(LLMClient):
    """Chat completions client used by the planner. The key is passed in, never read here."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "gpt-4o-mini",
        max_attempts: int = 3,
        base_backoff_seconds: float = 1.0,
    ):
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is not set")

        self.model = model
        self.max_attempts = max_attempts
        self.base_backoff_seconds = base_backoff_seconds
        self.client = OpenAI(api_key=api_key)
        self.total_tokens = 0

    def generate(self, prompt: str) -> str:
        started = time.monotonic()
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.0,
        )
        tokens = response.usage.total_tokens if response.usage else 0
        self.total_tokens += tokens
        log_event(
            "llm_call",
            model=self.model,
            tokens=tokens,
            total_tokens=self.total_tokens,
            seconds=round(time.monotonic() - started, 3),
        )
        return response.choices[0].message.content or ""

    def generate_structured(
        self, prompt: str, schema: Type[T], transform: Optional[Transform] = None
    ) -> T:
        """
        Reason:
        - Model output is text; callers need a validated object or one clear failure.
        Benefit:
        - Every failure, including one during the repair pass, ends as
          RuntimeError("LLM failed after N attempts").

        Each attempt: generate, parse; on bad JSON try one repair pass;
        on any other error back off and go again.
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            log_event("llm_attempt", attempt=attempt, model=self.model, schema=schema.__name__)
            try:
                raw_output = self.generate(prompt)
                return parse_and_validate(raw_output, schema, transform)
            except (LLMInvalidJSON, LLMSchemaViolation) as e:
                last_error = e
                log_event("llm_validation_error", error_type=type(e).__name__)
                try:
                    return self._repair(raw_output, schema, transform)
                except Exception as e2:
                    last_error = e2
                    log_event("llm_repair_failed", error_type=type(e2).__name__)
            except Exception as e:
                # transient API / network failure
                last_error = e
                log_event("llm_transient_error", error_type=type(e).__name__)

            if attempt < self.max_attempts:
                self._backoff(attempt)

        raise RuntimeError(f"LLM failed after {self.max_attempts} attempts") from last_error

    def _backoff(self, attempt: int) -> None:
        delay = self.base_backoff_seconds * (2 ** (attempt - 1))
        log_event("llm_backoff", delay=delay)
        time.sleep(delay)

    def _repair(self, raw_output: str, schema: Type[T], transform: Optional[Transform]) -> T:
        """Ask the model to fix its own output against the expected field list."""
        # Field list only; a JSON schema dump would be full of braces
        schema_hint = ", ".join(
            f.serialization_alias or name for name, f in schema.model_fields.items()
        )
        log_event("llm_repair_attempt", schema=schema.__name__)
        repaired = self.generate(load_prompt("json_repair", schema=schema_hint, raw=raw_output))
        return parse_and_validate(repaired, schema, transform)
