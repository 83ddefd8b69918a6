"""Parsing of machine-readable model output.

Every component that asks a model for JSON (reranker, structured output)
goes through `parse_json_output`, which unwraps a markdown code fence, parses
strict JSON and validates the shape with pydantic. Any failure is reported as
`StructuredOutputError` so callers can degrade instead of crashing.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from rag_gateway.errors import StructuredOutputError
from rag_gateway.llm.gateway import Gateway
from rag_gateway.llm.types import ChatRequest, messages
from rag_gateway.types import RequestContext

ModelT = TypeVar("ModelT", bound=BaseModel)


def strip_code_fence(text: str) -> str:
    content = text.strip()
    for prefix in ("```json", "```"):
        if content.startswith(prefix):
            content = content[len(prefix) :]
            break
    if content.endswith("```"):
        content = content[: -len("```")]
    return content.strip()


def parse_json_output(text: str, shape: Any) -> Any:
    """Parse `text` as JSON and validate it against `shape`.

    `shape` is anything pydantic's `TypeAdapter` accepts, e.g.
    `list[RerankScore]` or a `BaseModel` subclass.
    """

    content = strip_code_fence(text)
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise StructuredOutputError(f"invalid JSON in model output: {exc}") from exc
    try:
        return TypeAdapter(shape).validate_python(payload)
    except ValidationError as exc:
        raise StructuredOutputError(f"model output does not match schema: {exc}") from exc


_STRUCTURED_PROMPT = """You must respond with ONLY a valid JSON object matching this JSON schema:

{schema}

Do not include any text outside the JSON object. No markdown, no explanation."""


class StructuredOutputGenerator:
    """Asks the gateway for an object conforming to a pydantic model."""

    def __init__(self, gateway: Gateway, model: str, *, provider: str | None = None) -> None:
        self.gateway = gateway
        self.model = model
        self.provider = provider

    async def generate(
        self, ctx: RequestContext, prompt: str, schema: type[ModelT]
    ) -> ModelT:
        response = await self.gateway.chat(
            ctx,
            ChatRequest(
                model=self.model,
                provider=self.provider,
                messages=messages(
                    (
                        "system",
                        _STRUCTURED_PROMPT.format(
                            schema=json.dumps(schema.model_json_schema(), indent=2)
                        ),
                    ),
                    ("user", prompt),
                ),
                temperature=0.0,
            ),
        )
        return parse_json_output(response.content, schema)
