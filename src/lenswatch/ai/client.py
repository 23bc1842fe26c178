import hashlib
from dataclasses import dataclass
from typing import Any, Optional

import requests

from lenswatch.exceptions import (
    AnalysisResponseError,
    AnalysisServiceError,
    AnalysisStatusError,
    AnalysisTimeoutError,
    ConfigError,
    MissingCredentialError,
)


@dataclass
class AIResult:
    content: str
    source: str  # "remote" | "simulated"
    model: Optional[str] = None


class BaseAIClient:
    def generate(self, prompt: str, context: str) -> AIResult:  # pragma: no cover - interface
        raise NotImplementedError


class SimulatedAIClient(BaseAIClient):
    """
    Deterministic offline client for environments without external AI access.
    """

    def generate(self, prompt: str, context: str) -> AIResult:
        summary = (
            f"**[SIMULATED]** {prompt.strip()[:80]}...\n"
            f"- Context hash={hashlib.md5(context.encode('utf-8')).hexdigest()[:8]}"
        )
        return AIResult(content=summary, source="simulated", model="offline")


class _RemoteAIClient(BaseAIClient):
    def __init__(self, api_key: Optional[str], model: str, timeout: float):
        if not api_key:
            raise MissingCredentialError("La clé d'API pour le service d'IA n'est pas configurée.")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        # Single attempt: no retry, errors go back to the caller.
        try:
            resp = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            raise AnalysisTimeoutError(f"AI provider did not answer within {self.timeout:g}s") from exc
        except requests.RequestException as exc:
            raise AnalysisServiceError(f"AI provider unreachable: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            raise AnalysisStatusError(resp.status_code, _error_detail(resp))

        try:
            data = resp.json()
        except ValueError as exc:
            raise AnalysisResponseError(f"Invalid AI response: {exc}") from exc
        if not isinstance(data, dict):
            raise AnalysisResponseError("Invalid AI response: expected a JSON object")
        return data


class GeminiAIClient(_RemoteAIClient):
    """
    Google Generative Language `generateContent` REST endpoint.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-pro",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        system_instruction: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
        timeout: float = 60.0,
    ):
        super().__init__(api_key=api_key, model=model, timeout=timeout)
        self.base_url = base_url.rstrip("/")
        self.system_instruction = system_instruction
        self.max_tokens = max_tokens
        self.temperature = temperature

    def generate(self, prompt: str, context: str) -> AIResult:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": f"{prompt}\n{context}"}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }
        if self.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": self.system_instruction}]}

        data = self._post(
            f"{self.base_url}/models/{self.model}:generateContent",
            payload,
            headers={"Content-Type": "application/json", "x-goog-api-key": self.api_key},
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
            content = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise AnalysisResponseError(f"Invalid AI response: missing candidate text ({exc!r})") from exc
        if not content.strip():
            raise AnalysisResponseError("Invalid AI response: empty text")
        return AIResult(content=content, source="remote", model=self.model)


class HTTPAIClient(_RemoteAIClient):
    """
    Minimal HTTP client for chat-completion style APIs.
    Expects OpenAI-compatible payload shape but is generic enough for most providers.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        model: str,
        system_instruction: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
        timeout: float = 60.0,
    ):
        if not base_url:
            raise ConfigError("AI base_url must be configured for HTTP provider.")
        super().__init__(api_key=api_key, model=model, timeout=timeout)
        self.base_url = base_url
        self.system_instruction = system_instruction
        self.max_tokens = max_tokens
        self.temperature = temperature

    def generate(self, prompt: str, context: str) -> AIResult:
        messages = []
        if self.system_instruction:
            messages.append({"role": "system", "content": self.system_instruction})
        messages.append({"role": "user", "content": f"{prompt}\n{context}"})
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        data = self._post(
            self.base_url,
            payload,
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"},
        )
        try:
            content = data.get("content") or data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise AnalysisResponseError(f"Invalid AI response: {exc!r}") from exc
        if not isinstance(content, str) or not content.strip():
            raise AnalysisResponseError("Invalid AI response: empty text")
        return AIResult(content=content, source="remote", model=self.model)


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:200]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or err.get("status") or "")[:200]
        if err:
            return str(err)[:200]
    return ""


def build_ai_client(settings, api_key: Optional[str]) -> BaseAIClient:
    provider = settings.ai.provider
    if provider == "offline":
        return SimulatedAIClient()
    if provider == "gemini":
        return GeminiAIClient(
            api_key=api_key,
            model=settings.ai.model,
            base_url=settings.ai.gemini_base_url,
            system_instruction=settings.ai.system_instruction,
            max_tokens=settings.ai.max_tokens,
            temperature=settings.ai.temperature,
            timeout=settings.ai.timeout_seconds,
        )
    if provider == "http":
        return HTTPAIClient(
            base_url=settings.ai.base_url,
            api_key=api_key,
            model=settings.ai.model,
            system_instruction=settings.ai.system_instruction,
            max_tokens=settings.ai.max_tokens,
            temperature=settings.ai.temperature,
            timeout=settings.ai.timeout_seconds,
        )
    raise ConfigError(f"Unknown AI provider: {provider}")
