# services/openai_service.py
from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from app.config import require_openai, settings
from app.core.errors import GenerationMalformedError, UpstreamUnavailableError
from app.core.logging import get_logger

logger = get_logger().bind(module="openai_service")

M = TypeVar("M", bound=BaseModel)

_JSON_HINT = (
    "Respond with exactly one valid JSON object. No explanation, "
    "no extra text, no markdown, no code fences."
)


def _pydantic_schema_dict(model: Type[BaseModel]) -> Dict[str, Any]:
    return model.model_json_schema(by_alias=True)


def _extract_first_json(text: str) -> str:
    """
    Lenient extraction: take the first {...} block and drop trailing commas.
    """
    m = re.search(r"\{.*\}", text, flags=re.DOTALL)
    candidate = m.group(0) if m else text.strip()
    candidate = re.sub(r",\s*([}\]])", r"\1", candidate)
    return candidate.strip()


def _to_jsonable(obj: Any) -> Any:
    """
    Turn SDK objects (e.g. usage) into plain dicts for logging.
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(x) for x in obj]
    if isinstance(obj, dict):
        return {k: _to_jsonable(v) for k, v in obj.items()}
    dump = getattr(obj, "model_dump", None)
    if callable(dump):
        return _to_jsonable(dump())
    return str(obj)


class OpenAIJSONService:
    """
    JSON-constrained chat completions with Pydantic validation.

    Malformed output is retried with a sharper instruction; if every attempt
    fails the last problem decides the error type: GenerationMalformedError for
    bad JSON/schema, UpstreamUnavailableError for transport/API failures.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        max_retries: int = 2,
        timeout_s: int = 60,
        *,
        client: Optional[Any] = None,
        api_key: Optional[str] = None,
        backoff_s: float = 0.7,
    ):
        self.model = model or settings.OPENAI_MODEL
        self.max_retries = max(0, max_retries)
        self.timeout_s = timeout_s
        self.backoff_s = backoff_s
        if client is None:
            client = AsyncOpenAI(api_key=api_key or require_openai(), max_retries=0)
        self.client = client

    def _build_messages(self, system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> list[dict]:
        schema_hint = json.dumps(schema, ensure_ascii=False)
        system = (
            f"{system_prompt}\n\n{_JSON_HINT}\n"
            f"The JSON must match this JSON Schema exactly:\n{schema_hint}"
        )
        user = f"{user_prompt}\n\nAgain: {_JSON_HINT}"
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: Type[M],
        action_type: str = "generic",
    ) -> Tuple[M, Dict[str, Any]]:
        """
        Returns: (parsed_model_instance, meta_dict)
        """
        schema = _pydantic_schema_dict(response_model)
        messages = self._build_messages(system_prompt, user_prompt, schema)

        last_err: Optional[Exception] = None
        last_raw: Optional[str] = None
        t0 = time.perf_counter()

        for attempt in range(self.max_retries + 1):
            try:
                completion = await self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=0.2,
                    response_format={"type": "json_object"},
                    timeout=self.timeout_s,
                )
            except (openai.APIError, asyncio.TimeoutError) as e:
                last_err = e
                logger.warning(
                    "openai_request_failed",
                    action_type=action_type,
                    attempt=attempt + 1,
                    error=str(e),
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.backoff_s * 1.3 * (2 ** attempt))
                continue

            raw_text = completion.choices[0].message.content or ""
            last_raw = raw_text
            try:
                data = json.loads(_extract_first_json(raw_text))
                parsed = response_model.model_validate(data)
            except (ValidationError, json.JSONDecodeError) as e:
                last_err = e
                logger.warning(
                    "openai_output_invalid",
                    action_type=action_type,
                    attempt=attempt + 1,
                    error=str(e)[:500],
                )
                messages[-1]["content"] = (
                    f"{user_prompt}\n\nNOTE: {_JSON_HINT}\n"
                    "Answer exactly according to the schema, without any additional text."
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.backoff_s * (2 ** attempt))
                continue

            duration_ms = int((time.perf_counter() - t0) * 1000)
            usage_plain = _to_jsonable(getattr(completion, "usage", None))
            logger.info(
                "openai_generate_done",
                action_type=action_type,
                model=self.model,
                attempts=attempt + 1,
                usage=usage_plain,
                duration_ms=duration_ms,
            )
            return parsed, {
                "ok": True,
                "model": self.model,
                "raw_text": raw_text,
                "usage": usage_plain,
                "duration_ms": duration_ms,
            }

        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.error(
            "openai_generate_failed",
            action_type=action_type,
            model=self.model,
            duration_ms=duration_ms,
            error=str(last_err),
        )
        if isinstance(last_err, (ValidationError, json.JSONDecodeError)):
            raise GenerationMalformedError(
                f"Model output is not a valid {response_model.__name__}: {last_err}",
                raw_text=last_raw,
            ) from last_err
        raise UpstreamUnavailableError(
            f"OpenAI request failed after retries: {last_err}", source="openai"
        ) from last_err
