import os
from collections.abc import Mapping
from typing import TYPE_CHECKING, override

from headroom.config import AuthType
from headroom.consts import DEFAULT_OLLAMA_HOST, USER_AGENT
from headroom.llm.providers.base import EMPTY_MAP, LLMProvider, LLMRequestConfig, NormalizedChunk
from headroom.llm.providers.utils import parse_standard_openai_chunk

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletionChunk

# Ollama ignores the key, but the OpenAI client refuses to start without one.
OLLAMA_PLACEHOLDER_API_KEY = "ollama"


def get_ollama_base_url() -> str:
    host = os.getenv("OLLAMA_HOST", DEFAULT_OLLAMA_HOST).rstrip("/")
    if not host.startswith(("http://", "https://")):
        host = f"http://{host}"
    return f"{host}/v1"


class OllamaProvider(LLMProvider):
    """Local inference through Ollama's OpenAI-compatible endpoint."""

    auth_type: AuthType = AuthType.OLLAMA

    @override
    def configure_request(self, model_id: str, extra_params: Mapping[str, str] = EMPTY_MAP) -> LLMRequestConfig:
        from openai import AsyncOpenAI

        client = AsyncOpenAI(
            api_key=OLLAMA_PLACEHOLDER_API_KEY,
            base_url=get_ollama_base_url(),
            default_headers={"User-Agent": USER_AGENT},
        )

        kwargs: dict[str, object] = {}
        if "num_ctx" in extra_params:
            # Context window size has no OpenAI parameter equivalent.
            kwargs["extra_body"] = {"options": {"num_ctx": int(extra_params["num_ctx"])}}

        return LLMRequestConfig(client=client, model_id=model_id, extra_kwargs=kwargs)

    @override
    def process_chunk(self, chunk: "ChatCompletionChunk") -> NormalizedChunk:
        return parse_standard_openai_chunk(chunk)
