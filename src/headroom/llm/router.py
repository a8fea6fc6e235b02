from headroom.exceptions import ConfigurationError
from headroom.llm.generator import OpenAICompatibleGenerator
from headroom.llm.providers.base import LLMProvider
from headroom.llm.providers.ollama import OllamaProvider
from headroom.llm.providers.openai import OpenAIProvider
from headroom.llm.providers.openrouter import OpenRouterProvider

_PROVIDER_MAP: dict[str, type[LLMProvider]] = {
    "openrouter/": OpenRouterProvider,
    "openai/": OpenAIProvider,
    "ollama/": OllamaProvider,
}


def get_provider_for_model(full_model_string: str) -> tuple[LLMProvider, str, dict[str, str]]:
    """
    Factory that returns the correct Provider strategy, the STRIPPED model name,
    and a dictionary of extra parameters parsed from the model string.
    """
    parts = full_model_string.split("+")
    base_model = parts[0]
    extra_params = {k: v for p in parts[1:] if "=" in p for k, v in [p.split("=", 1)]}

    for prefix, provider_cls in _PROVIDER_MAP.items():
        if base_model.startswith(prefix):
            clean_model_id = base_model[len(prefix) :]
            return provider_cls(), clean_model_id, extra_params

    raise ConfigurationError(
        f"Unrecognized model provider format for '{full_model_string}'. "
        + f"Please use one of ({', '.join(_PROVIDER_MAP.keys())}) followed by <model>, "
        + "or ensure the model is supported."
    )


def create_content_generator(full_model_string: str) -> tuple[OpenAICompatibleGenerator, str]:
    """Builds the generator for a model string and returns it with the model id to request."""
    provider, clean_model_id, extra_params = get_provider_for_model(full_model_string)
    return OpenAICompatibleGenerator(provider, extra_params), clean_model_id
