"""OpenRouter client with grounded streaming and single-shot completions."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from screener.config import settings
from screener.models.schemas import Citation
from screener.services.logger import log_llm_call


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class GenerationChunk:
    """One streamed delta: a text fragment and any grounding citations reported with it."""

    text: str = ""
    citations: list[Citation] = field(default_factory=list)


@dataclass
class Completion:
    text: str
    citations: list[Citation]
    usage: Usage


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _usage_from(raw: Any) -> Usage:
    return Usage(
        input_tokens=_field(raw, "prompt_tokens") or 0,
        output_tokens=_field(raw, "completion_tokens") or 0,
    )


def citations_from_annotations(annotations: Any) -> list[Citation]:
    """Map OpenRouter ``url_citation`` annotations to citations."""
    citations: list[Citation] = []
    for annotation in annotations or []:
        if _field(annotation, "type") != "url_citation":
            continue
        payload = _field(annotation, "url_citation") or annotation
        url = _field(payload, "url")
        if not url:
            continue
        citations.append(Citation(uri=str(url), title=str(_field(payload, "title") or "")))
    return citations


class OpenRouterStream:
    def __init__(self, stream_coro: Any, *, model: str, caller: str):
        self._stream_coro = stream_coro
        self._stream: Any | None = None
        self._model = model
        self._caller = caller
        self._started = 0.0
        self.usage = Usage()

    async def __aenter__(self) -> "OpenRouterStream":
        self._started = time.monotonic()
        self._stream = await self._stream_coro
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stream is not None:
            await self._stream.close()
        log_llm_call(
            model=self._model,
            caller=self._caller,
            input_tokens=self.usage.input_tokens,
            output_tokens=self.usage.output_tokens,
            duration_ms=int((time.monotonic() - self._started) * 1000),
            status="error" if exc else "success",
            error=str(exc) if exc else None,
        )

    async def _iter_chunks(self) -> AsyncIterator[GenerationChunk]:
        if self._stream is None:
            return
        async for chunk in self._stream:
            usage = getattr(chunk, "usage", None)
            if usage:
                self.usage = _usage_from(usage)

            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            if not delta:
                continue
            text = _field(delta, "content") or ""
            citations = citations_from_annotations(_field(delta, "annotations"))
            if text or citations:
                yield GenerationChunk(text=text, citations=citations)

    @property
    def chunks(self) -> AsyncIterator[GenerationChunk]:
        return self._iter_chunks()


class OpenRouterClient:
    def __init__(self, openai_client: Any):
        self._client = openai_client

    @staticmethod
    def _request_kwargs(
        *,
        model: str,
        system: str,
        prompt: str,
        temperature: float,
        grounded: bool,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": settings.max_tokens,
            "temperature": temperature,
        }
        if grounded and settings.web_search_enabled:
            kwargs["extra_body"] = {
                "plugins": [{"id": "web", "max_results": settings.web_search_max_results}]
            }
        return kwargs

    def stream(
        self,
        *,
        system: str,
        prompt: str,
        temperature: float,
        model: str | None = None,
        grounded: bool = True,
        caller: str = "screening",
    ) -> OpenRouterStream:
        active_model = model or get_model()
        stream = self._client.chat.completions.create(
            **self._request_kwargs(
                model=active_model,
                system=system,
                prompt=prompt,
                temperature=temperature,
                grounded=grounded,
            ),
            stream=True,
            stream_options={"include_usage": True},
        )
        return OpenRouterStream(stream, model=active_model, caller=caller)

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        temperature: float,
        model: str | None = None,
        grounded: bool = True,
        caller: str = "analysis",
    ) -> Completion:
        active_model = model or get_model()
        started = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                **self._request_kwargs(
                    model=active_model,
                    system=system,
                    prompt=prompt,
                    temperature=temperature,
                    grounded=grounded,
                )
            )
        except Exception as exc:
            log_llm_call(
                model=active_model,
                caller=caller,
                duration_ms=int((time.monotonic() - started) * 1000),
                status="error",
                error=str(exc),
            )
            raise

        message = response.choices[0].message
        usage = _usage_from(getattr(response, "usage", None))
        log_llm_call(
            model=active_model,
            caller=caller,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return Completion(
            text=_field(message, "content") or "",
            citations=citations_from_annotations(_field(message, "annotations")),
            usage=usage,
        )


def get_client() -> OpenRouterClient:
    """Get OpenRouter client via OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    if not settings.openrouter_api_key:
        raise ValueError("OPENROUTER_API_KEY environment variable not set.")
    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
    )
    return OpenRouterClient(openai_client)


def get_model() -> str:
    """Get the active OpenRouter model id."""
    if settings.openrouter_model:
        return settings.openrouter_model
    return settings.default_model


_client: OpenRouterClient | None = None


def client() -> OpenRouterClient:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
