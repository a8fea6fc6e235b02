import os
from enum import Enum

from headroom.consts import DEBUG_ENV_VAR, DEFAULT_LOCAL_MODEL, MODEL_ENV_VAR, TELEMETRY_OUTFILE_ENV_VAR


class AuthType(str, Enum):
    OPENAI = "openai-api-key"
    OPENROUTER = "openrouter-api-key"
    OLLAMA = "ollama"


def resolve_model_name(model_override: str | None = None) -> str:
    """CLI override, then HEADROOM_MODEL, then the local default."""
    return model_override or os.getenv(MODEL_ENV_VAR) or DEFAULT_LOCAL_MODEL


def is_debug_enabled() -> bool:
    return os.getenv(DEBUG_ENV_VAR, "").strip().lower() in ("1", "true", "yes", "on")


def get_telemetry_outfile() -> str | None:
    return os.getenv(TELEMETRY_OUTFILE_ENV_VAR) or None
