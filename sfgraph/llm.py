"""Multi-provider LLM adapter supporting WatsonX, Ollama and OpenAI-compatible APIs."""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Optional

from .config import LLM_MODEL, LLM_PROVIDER, WATSONX_URL, WATSONX_VERSION

logger = logging.getLogger(__name__)

IAM_TOKEN_URL = "https://iam.cloud.ibm.com/identity/token"
OLLAMA_ENDPOINT = "http://127.0.0.1:11434/api/generate"
OPENAI_ENDPOINT = "https://api.openai.com/v1/chat/completions"


def _post_json(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: int = 60) -> Dict[str, Any]:
    req = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return json.loads(resp.read().decode("utf-8"))


class LLMProvider:
    """Base class for LLM providers."""

    def generate(self, prompt: str) -> Optional[str]:
        """Generate a response from the LLM."""
        raise NotImplementedError


class WatsonxProvider(LLMProvider):
    """IBM watsonx.ai text generation (IAM API-key authentication)."""

    def __init__(
        self,
        model: str,
        api_key: str,
        project_id: str,
        endpoint: str = WATSONX_URL,
        version: str = WATSONX_VERSION,
    ):
        self.model = model
        self.api_key = api_key
        self.project_id = project_id
        self.endpoint = endpoint.rstrip("/")
        self.version = version
        self._token: Optional[str] = None
        self._token_expires = 0.0

    def _iam_token(self) -> str:
        if self._token and time.time() < self._token_expires:
            return self._token

        data = urllib.parse.urlencode({
            "grant_type": "urn:ibm:params:oauth:grant-type:apikey",
            "apikey": self.api_key,
        }).encode("utf-8")
        req = urllib.request.Request(
            IAM_TOKEN_URL,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
            method="POST",
        )
        with urllib.request.urlopen(req, timeout=30) as resp:
            parsed = json.loads(resp.read().decode("utf-8"))

        self._token = parsed["access_token"]
        # Refresh a minute early
        self._token_expires = time.time() + int(parsed.get("expires_in", 3600)) - 60
        return self._token

    def generate(self, prompt: str) -> Optional[str]:
        if not self.api_key or not self.project_id:
            return None

        url = f"{self.endpoint}/ml/v1/text/generation?version={self.version}"
        payload = {
            "model_id": self.model,
            "input": prompt,
            "project_id": self.project_id,
            "parameters": {
                "max_new_tokens": 1500,
                "min_new_tokens": 300,
                "temperature": 0.3,
                "top_p": 0.9,
            },
        }
        try:
            parsed = _post_json(url, payload, {"Authorization": f"Bearer {self._iam_token()}", "Accept": "application/json"})
            return parsed["results"][0]["generated_text"]
        except (urllib.error.URLError, TimeoutError, json.JSONDecodeError, KeyError, IndexError) as exc:
            logger.warning("WatsonX generation failed: %s", exc)
            return None


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider."""

    def __init__(self, model: str, endpoint: str = OLLAMA_ENDPOINT):
        self.model = model
        self.endpoint = endpoint

    def generate(self, prompt: str) -> Optional[str]:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.3},
        }
        try:
            return _post_json(self.endpoint, payload, {}).get("response")
        except (urllib.error.URLError, TimeoutError, json.JSONDecodeError) as exc:
            logger.warning("Ollama generation failed: %s", exc)
            return None


class OpenAIProvider(LLMProvider):
    """OpenAI API provider (also works with other OpenAI-compatible APIs)."""

    def __init__(self, model: str, api_key: str, endpoint: str = OPENAI_ENDPOINT):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint

    def generate(self, prompt: str) -> Optional[str]:
        if not self.api_key:
            return None

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.3,
            "max_tokens": 1500,
        }
        try:
            parsed = _post_json(self.endpoint, payload, {"Authorization": f"Bearer {self.api_key}"})
            return parsed["choices"][0]["message"]["content"]
        except (urllib.error.URLError, TimeoutError, json.JSONDecodeError, KeyError, IndexError) as exc:
            logger.warning("OpenAI-compatible generation failed: %s", exc)
            return None


class LocalLLM:
    """Provider selection from the ``[llm]`` configuration section."""

    def __init__(
        self,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        project_id: Optional[str] = None,
    ):
        """Initialize LLM with provider selection.

        Args:
            model: Model id (defaults to the WatsonX Granite model)
            provider: "watsonx", "ollama" or "openai"
            api_key: API key for cloud providers
            endpoint: Service URL; each provider has its own default
            project_id: WatsonX project id
        """
        self.provider_name = (provider or LLM_PROVIDER).lower()
        self.model = model or LLM_MODEL
        self.api_key = api_key or ""
        self.endpoint = endpoint or ""
        self.project_id = project_id or ""

        self.provider = self._create_provider()

    @classmethod
    def from_config(cls, llm_config: Dict[str, Any], model: Optional[str] = None) -> "LocalLLM":
        return cls(
            model=model or llm_config.get("model"),
            provider=llm_config.get("provider"),
            api_key=llm_config.get("api_key"),
            endpoint=llm_config.get("endpoint"),
            project_id=llm_config.get("project_id"),
        )

    def _create_provider(self) -> LLMProvider:
        if self.provider_name == "openai":
            return OpenAIProvider(self.model, self.api_key, self.endpoint or OPENAI_ENDPOINT)
        if self.provider_name == "ollama":
            return OllamaProvider(self.model, self.endpoint or OLLAMA_ENDPOINT)
        return WatsonxProvider(self.model, self.api_key, self.project_id, self.endpoint or WATSONX_URL)

    def explain(self, prompt: str) -> Optional[str]:
        """Generated text, or ``None`` when the provider is unavailable."""
        response = self.provider.generate(prompt)
        if response and response.strip():
            return response.strip()
        return None
