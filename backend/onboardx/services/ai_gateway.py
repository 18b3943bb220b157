"""
AI Gateway — Completion capability used by the chat and the verifiers.

Two providers share one interface:
- ``GatewayClient``: OpenAI-compatible ``/chat/completions`` over httpx.
- ``GeminiClient``: Google Gemini through google-generativeai.

Messages are OpenAI-style role-tagged dicts; images travel as data URIs
inside ``image_url`` content parts.
"""
import base64
import binascii
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import google.generativeai as genai
import httpx
from google.api_core import exceptions as google_exceptions

from onboardx.config import get_settings
from onboardx.exceptions import ConfigurationError, UpstreamError
from onboardx.utils.logger import log_event
from onboardx.utils.sse import DONE_SENTINEL, SSEDecoder

Message = Dict[str, Any]


# ──────────────── Message helpers ────────────────

def to_data_uri(b64: str, mime_type: str) -> str:
    return f"data:{mime_type};base64,{b64}"


def parse_data_uri(uri: str) -> Optional[Tuple[str, bytes]]:
    """Split ``data:<mime>;base64,<payload>`` into (mime, raw bytes)."""
    if not uri.startswith("data:") or ";base64," not in uri:
        return None
    header, payload = uri[5:].split(";base64,", 1)
    try:
        return header or "application/octet-stream", base64.b64decode(payload)
    except (binascii.Error, ValueError):
        return None


def text_message(role: str, text: str) -> Message:
    return {"role": role, "content": text}


def image_message(role: str, text: str, images: Sequence[Tuple[str, str]]) -> Message:
    """Build a multimodal message; ``images`` holds (base64, mime_type) pairs, in order."""
    content: List[Dict[str, Any]] = [
        {"type": "image_url", "image_url": {"url": to_data_uri(b64, mime)}}
        for b64, mime in images
    ]
    content.append({"type": "text", "text": text})
    return {"role": role, "content": content}


def sse_event(content: str) -> bytes:
    payload = json.dumps({"choices": [{"delta": {"content": content}}]})
    return f"data: {payload}\n\n".encode("utf-8")


# ──────────────── Interface ────────────────

class CompletionClient:
    """Natural-language generation and vision classification capability."""

    async def complete(self, messages: List[Message], model: Optional[str] = None) -> str:
        raise NotImplementedError

    def stream(self, messages: List[Message], model: Optional[str] = None) -> AsyncIterator[str]:
        raise NotImplementedError

    async def open_event_stream(
        self, messages: List[Message], model: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        """Return an SSE byte stream in the OpenAI delta format."""

        async def relay():
            async for delta in self.stream(messages, model):
                yield sse_event(delta)
            yield f"data: {DONE_SENTINEL}\n\n".encode("utf-8")

        return relay()


# ──────────────── OpenAI-compatible gateway ────────────────

class GatewayClient(CompletionClient):
    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.api_key = settings.AI_GATEWAY_API_KEY if api_key is None else api_key
        self.url = url or settings.AI_GATEWAY_URL
        self.model = model or settings.CHAT_MODEL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("AI_GATEWAY_API_KEY is not configured")
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _body(self, messages: List[Message], model: Optional[str], stream: bool) -> Dict[str, Any]:
        return {"model": model or self.model, "messages": messages, "stream": stream}

    async def complete(self, messages: List[Message], model: Optional[str] = None) -> str:
        headers = self._headers()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url, headers=headers, json=self._body(messages, model, False)
                )
        except httpx.HTTPError as exc:
            log_event("ai_gateway", f"Transport failure: {exc!r}")
            raise UpstreamError(502, "AI gateway unreachable") from exc

        if not response.is_success:
            log_event("ai_gateway", f"HTTP {response.status_code}: {response.text[:500]}")
            raise UpstreamError(response.status_code)

        try:
            return response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            log_event("ai_gateway", "Completion body had no choices[0].message.content")
            return ""

    async def stream(self, messages: List[Message], model: Optional[str] = None) -> AsyncIterator[str]:
        headers = self._headers()
        decoder = SSEDecoder()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "POST", self.url, headers=headers, json=self._body(messages, model, True)
                ) as response:
                    if not response.is_success:
                        body = await response.aread()
                        log_event("ai_gateway", f"HTTP {response.status_code}: {body[:500]!r}")
                        raise UpstreamError(response.status_code)
                    async for chunk in response.aiter_bytes():
                        for delta in decoder.feed(chunk):
                            yield delta
                        if decoder.done:
                            break
        except httpx.HTTPError as exc:
            log_event("ai_gateway", f"Stream transport failure: {exc!r}")
            raise UpstreamError(502, "AI gateway unreachable") from exc
        for delta in decoder.flush():
            yield delta

    async def open_event_stream(
        self, messages: List[Message], model: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        """Pass the upstream event stream through untouched.

        The upstream status is checked before this returns, so rate-limit and
        quota errors surface as ``UpstreamError`` instead of a broken stream.
        """
        headers = self._headers()
        client = httpx.AsyncClient(timeout=self.timeout)
        request = client.build_request(
            "POST", self.url, headers=headers, json=self._body(messages, model, True)
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            log_event("ai_gateway", f"Stream transport failure: {exc!r}")
            raise UpstreamError(502, "AI gateway unreachable") from exc

        if not response.is_success:
            body = await response.aread()
            await response.aclose()
            await client.aclose()
            log_event("ai_gateway", f"HTTP {response.status_code}: {body[:500]!r}")
            raise UpstreamError(response.status_code)

        async def relay():
            try:
                async for chunk in response.aiter_raw():
                    yield chunk
            finally:
                await response.aclose()
                await client.aclose()

        return relay()


# ──────────────── Google Gemini ────────────────

class GeminiClient(CompletionClient):
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        settings = get_settings()
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_MODEL

    def _model(self, model: Optional[str], system_instruction: Optional[str]):
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")
        genai.configure(api_key=self.api_key)
        # gateway-style names ("google/...") do not exist on the Gemini API
        name = model if model and "/" not in model else self.model
        return genai.GenerativeModel(
            model_name=name,
            system_instruction=system_instruction or None,
            generation_config={"temperature": 0.4, "max_output_tokens": 1024},
        )

    @staticmethod
    def _to_parts(content: Any) -> List[Any]:
        if isinstance(content, str):
            return [content]
        parts: List[Any] = []
        for item in content or []:
            if item.get("type") == "text":
                parts.append(item.get("text", ""))
            elif item.get("type") == "image_url":
                decoded = parse_data_uri(item.get("image_url", {}).get("url", ""))
                if decoded:
                    mime, data = decoded
                    parts.append({"mime_type": mime, "data": data})
        return parts

    @classmethod
    def to_contents(cls, messages: List[Message]) -> Tuple[str, List[Dict[str, Any]]]:
        """Split OpenAI-style messages into (system instruction, Gemini contents)."""
        system_parts: List[str] = []
        contents: List[Dict[str, Any]] = []
        for message in messages:
            role = message.get("role")
            if role == "system":
                system_parts.append(message.get("content") or "")
                continue
            contents.append({
                "role": "model" if role == "assistant" else "user",
                "parts": cls._to_parts(message.get("content")),
            })
        return "\n\n".join(system_parts), contents

    @staticmethod
    def _upstream_error(exc: Exception) -> UpstreamError:
        log_event("gemini", f"Gemini API call failed: {exc!r}")
        if isinstance(exc, google_exceptions.ResourceExhausted):
            return UpstreamError(429, "Gemini quota exhausted")
        return UpstreamError(502, "Gemini request failed")

    async def complete(self, messages: List[Message], model: Optional[str] = None) -> str:
        system, contents = self.to_contents(messages)
        gemini = self._model(model, system)
        try:
            response = await gemini.generate_content_async(contents)
        except google_exceptions.GoogleAPIError as exc:
            raise self._upstream_error(exc) from exc
        try:
            return response.text or ""
        except ValueError:
            # blocked or empty candidates
            log_event("gemini", "Response carried no text part")
            return ""

    async def stream(self, messages: List[Message], model: Optional[str] = None) -> AsyncIterator[str]:
        system, contents = self.to_contents(messages)
        gemini = self._model(model, system)
        try:
            response = await gemini.generate_content_async(contents, stream=True)
            async for chunk in response:
                try:
                    text = chunk.text
                except ValueError:
                    continue
                if text:
                    yield text
        except google_exceptions.GoogleAPIError as exc:
            raise self._upstream_error(exc) from exc


def get_completion_client() -> CompletionClient:
    """Provider selected by COMPLETION_PROVIDER."""
    provider = get_settings().COMPLETION_PROVIDER.strip().lower()
    if provider == "gemini":
        return GeminiClient()
    if provider == "gateway":
        return GatewayClient()
    raise ConfigurationError(f"Unknown COMPLETION_PROVIDER: {provider!r}")
