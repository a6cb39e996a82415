from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, Union, runtime_checkable

import requests

from ..core.settings import Settings, get_settings
from .errors import ConfigError
from .prompt_assembler import build_messages

logger = logging.getLogger(__name__)

Reply = Union[str, Dict[str, Any]]


@runtime_checkable
class ModelAdapter(Protocol):
    """A chat-capable adapter; completion-only adapters expose ``complete`` instead."""

    def chat(self, messages: List[Dict[str, str]], timeout: Optional[float] = None) -> Reply:
        ...


def _reply_text(reply: Any) -> str:
    if isinstance(reply, Mapping):
        reply = reply.get("content")
    if reply is None:
        return ""
    return str(reply)


def invoke_model(adapter: Any, prompt: str, timeout: Optional[float] = None) -> str:
    """Send ``prompt`` through ``adapter``: ``chat`` when available, else ``complete``."""

    chat = getattr(adapter, "chat", None)
    if callable(chat):
        return _reply_text(chat(build_messages(prompt), timeout=timeout))
    complete = getattr(adapter, "complete", None)
    if callable(complete):
        return _reply_text(complete(prompt, timeout=timeout))
    raise TypeError(f"Adapter {type(adapter).__name__} exposes neither chat() nor complete().")


class _HTTPAdapter:
    def __init__(self, timeout: float = 60.0, retries: int = 2, connect_timeout: float = 30.0) -> None:
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.retries = max(int(retries), 0)
        self._session = requests.Session()

    def _post(self, url: str, payload: Dict[str, Any], timeout: Optional[float], headers: Optional[Dict[str, str]] = None) -> Any:
        read_timeout = timeout if timeout is not None else self.timeout
        last_error: Optional[Exception] = None
        for attempt in range(self.retries + 1):
            try:
                response = self._session.post(
                    url,
                    headers=headers or {"Content-Type": "application/json"},
                    json=payload,
                    timeout=(self.connect_timeout, read_timeout),
                )
                response.raise_for_status()
                return response.json()
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self.retries:
                    raise
                logger.debug("LLM request failed (attempt %d): %s", attempt + 1, exc)
                time.sleep(min(2 ** attempt, 5.0))
        raise RuntimeError(f"LLM request failed: {last_error}")


class OpenAIChatAdapter(_HTTPAdapter):
    """Client for OpenAI-compatible ``/chat/completions`` endpoints."""

    def __init__(
        self,
        model: str,
        api_base: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        timeout: float = 60.0,
        retries: int = 2,
    ) -> None:
        super().__init__(timeout=timeout, retries=retries)
        self.base = (api_base or "https://api.openai.com/v1").rstrip("/")
        self.key = api_key or ""
        self.model = model
        self.temperature = temperature

    def chat(self, messages: List[Dict[str, str]], timeout: Optional[float] = None) -> str:
        if not self.key:
            raise RuntimeError("Missing LLM_API_KEY; set it in the environment or .env")
        headers = {"Authorization": f"Bearer {self.key}", "Content-Type": "application/json"}
        payload = {"model": self.model, "messages": messages, "temperature": self.temperature}
        data = self._post(f"{self.base}/chat/completions", payload, timeout, headers=headers)
        if isinstance(data, dict) and data.get("code") not in (None, 0):
            raise RuntimeError(f"LLM error: {data.get('code')} {data.get('msg')}")
        return (data["choices"][0]["message"].get("content") or "").strip()


class OllamaAdapter(_HTTPAdapter):
    """Completion-only client for a local Ollama server."""

    def __init__(self, model: str, api_base: Optional[str] = None, timeout: float = 60.0, retries: int = 0) -> None:
        super().__init__(timeout=timeout, retries=retries)
        self.base = (api_base or "http://localhost:11434").rstrip("/")
        self.model = model

    def complete(self, prompt: str, timeout: Optional[float] = None) -> str:
        payload = {"model": self.model, "prompt": prompt, "stream": False}
        data = self._post(f"{self.base}/api/generate", payload, timeout)
        return (data.get("response") or "").strip()


class MockModelAdapter:
    """Canned replies for tests and offline runs.

    ``prompt_map`` matches on a substring of the prompt; replies may be callables
    taking the prompt. With ``chat_response=None`` and a ``completion`` set the
    adapter is completion-only.
    """

    def __init__(
        self,
        chat_response: Any = None,
        completion: Any = None,
        prompt_map: Optional[Mapping[str, Any]] = None,
        should_fail: bool = False,
        response_delay: float = 0.0,
    ) -> None:
        self.chat_response = chat_response
        self.completion = completion
        self.prompt_map = dict(prompt_map or {})
        self.should_fail = should_fail
        self.response_delay = response_delay
        self.calls: List[Tuple[str, str]] = []
        self._lock = threading.Lock()
        if chat_response is None and completion is not None:
            # completion-only: hide chat so invoke_model falls back
            self.chat = None  # type: ignore[assignment]

    def _reply(self, mode: str, prompt: str, default: Any) -> Any:
        with self._lock:
            self.calls.append((mode, prompt))
        if self.response_delay:
            time.sleep(self.response_delay)
        if self.should_fail:
            raise RuntimeError("Mock model failure")
        reply = default
        for needle, mapped in self.prompt_map.items():
            if needle in prompt:
                reply = mapped
                break
        if callable(reply):
            reply = reply(prompt)
        return reply

    def chat(self, messages: List[Dict[str, str]], timeout: Optional[float] = None) -> Any:
        prompt = messages[-1]["content"] if messages else ""
        return self._reply("chat", prompt, self.chat_response)

    def complete(self, prompt: str, timeout: Optional[float] = None) -> Any:
        return self._reply("complete", prompt, self.completion)


@dataclass
class ModelDefinition:
    provider: str
    model: str
    config: Dict[str, Any] = field(default_factory=dict)


_PROVIDERS: Dict[str, Callable[..., Any]] = {
    "openai": OpenAIChatAdapter,
    "ollama": OllamaAdapter,
    "mock": lambda model, **config: MockModelAdapter(**config),
}


class ModelRegistry:
    """Maps model aliases to adapters; built adapters are shared per (provider, model, config)."""

    def __init__(self) -> None:
        self._entries: Dict[str, Any] = {}
        self._instances: Dict[Tuple[str, str, str], Any] = {}
        self._lock = threading.Lock()

    def register(self, alias: str, target: Any) -> None:
        if not alias:
            raise ConfigError("Model alias must be a non-empty string.")
        if isinstance(target, ModelDefinition) and target.provider not in _PROVIDERS:
            raise ConfigError(f"Unknown model provider '{target.provider}'.")
        with self._lock:
            self._entries[alias] = target

    def aliases(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, alias: object) -> bool:
        return alias in self._entries

    def get_adapter(self, alias: str) -> Any:
        with self._lock:
            if alias not in self._entries:
                raise ConfigError(f"Model '{alias}' is not registered.")
            target = self._entries[alias]
            if not isinstance(target, ModelDefinition):
                return target
            key = (target.provider, target.model, json.dumps(target.config, sort_keys=True, default=repr))
            if key not in self._instances:
                self._instances[key] = _PROVIDERS[target.provider](target.model, **target.config)
            return self._instances[key]


def default_registry(settings: Optional[Settings] = None) -> ModelRegistry:
    settings = settings or get_settings()
    registry = ModelRegistry()
    registry.register(
        "default",
        ModelDefinition(
            provider="openai",
            model=settings.llm_model,
            config={
                "api_base": settings.llm_api_base,
                "api_key": settings.llm_api_key,
                "timeout": settings.llm_timeout,
                "retries": settings.llm_retries,
            },
        ),
    )
    registry.register("mock", ModelDefinition(provider="mock", model="mock"))
    return registry
