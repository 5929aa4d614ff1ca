"""Google Gemini client used by the VigiTracker AI flows."""

from __future__ import annotations

import json
import os
import time
from typing import Callable, TypeVar

from google import genai
from google.genai import types as genai_types
from pydantic import BaseModel

from vigitracker import api_tracker

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiClient:
    """Wrapper around the Google Gemini API for prompt-template flows.

    ``generate_text`` runs a bounded function-calling loop so a prompt can
    invoke local tools before answering; ``generate_json`` asks for output
    matching a pydantic schema and validates it.
    """

    MAX_TOOL_ROUNDS = 4

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        api_key = api_key or os.getenv("GEMINI_API_KEY", "")
        if not api_key:
            raise ValueError("GEMINI_API_KEY environment variable is required")
        self._client = genai.Client(api_key=api_key)
        self._model = model or os.getenv("GEMINI_MODEL", DEFAULT_MODEL)

    @property
    def model(self) -> str:
        return self._model

    def _generate(self, flow: str, contents, config: genai_types.GenerateContentConfig):
        with api_tracker.track("gemini", flow):
            return self._client.models.generate_content(
                model=self._model,
                contents=contents,
                config=config,
            )

    def generate_text(
        self,
        prompt: str,
        *,
        flow: str,
        tools: list[genai_types.FunctionDeclaration] | None = None,
        handlers: dict[str, Callable[[dict], dict]] | None = None,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str | None:
        """Generate free text, executing any tool calls the model makes.

        Returns the final text, or None when the model produced none.
        """
        config = genai_types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
            tools=[genai_types.Tool(function_declarations=tools)] if tools else None,
        )
        contents: list[genai_types.Content] = [
            genai_types.Content(role="user", parts=[genai_types.Part.from_text(text=prompt)])
        ]
        handlers = handlers or {}

        response = None
        for round_num in range(self.MAX_TOOL_ROUNDS):
            t0 = time.monotonic()
            response = self._generate(flow, contents, config)
            ms = int((time.monotonic() - t0) * 1000)
            print(f"[{flow}] round {round_num + 1} Gemini responded in {ms}ms", flush=True)

            if not response.candidates:
                return None
            candidate = response.candidates[0]
            parts = (candidate.content.parts if candidate.content else None) or []
            function_calls = [p for p in parts if p.function_call is not None]
            if not function_calls:
                return response.text or None

            contents.append(candidate.content)
            function_responses = []
            for part in function_calls:
                fc = part.function_call
                args = dict(fc.args) if fc.args else {}
                print(f"[{flow}]   tool: {fc.name}({args})", flush=True)
                result = _execute_tool(handlers, fc.name, args)
                function_responses.append(
                    genai_types.Part.from_function_response(
                        name=fc.name,
                        response={"result": result},
                    )
                )
            contents.append(genai_types.Content(role="user", parts=function_responses))

        # Tool rounds exhausted; keep whatever text came with the last turn
        return (response.text if response is not None else None) or None

    def generate_json(
        self,
        prompt: str,
        schema: type[ModelT],
        *,
        flow: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
    ) -> ModelT | None:
        """Generate structured output validated against ``schema``.

        Returns None when the model produced no text; raises
        ``pydantic.ValidationError`` when the text does not match the schema.
        """
        response = self._generate(
            flow,
            prompt,
            genai_types.GenerateContentConfig(
                temperature=temperature,
                max_output_tokens=max_tokens,
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        text = (response.text or "").strip()
        if not text:
            return None
        return schema.model_validate_json(text)


def _execute_tool(handlers: dict[str, Callable[[dict], dict]], name: str, args: dict) -> dict:
    """Dispatch one model function call; failures go back to the model as data."""
    fn = handlers.get(name)
    if not fn:
        return {"error": f"Unknown tool: {name}"}
    try:
        result = fn(args)
    except Exception as e:
        return {"error": str(e)}
    print(f"[tool] {name} -> {json.dumps(result, default=str)}", flush=True)
    return result
