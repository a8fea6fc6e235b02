DEFAULT_LOCAL_MODEL = "ollama/mistral"
DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_OPENROUTER_BASE = "https://openrouter.ai/api/v1"

SETTINGS_DIR_NAME = ".headroom"
CONTEXT_FILE_NAME = "HEADROOM.md"
USER_ID_FILE_NAME = "user_id"

MODEL_ENV_VAR = "HEADROOM_MODEL"
DEBUG_ENV_VAR = "HEADROOM_DEBUG"
TELEMETRY_OUTFILE_ENV_VAR = "HEADROOM_TELEMETRY_OUTFILE"

CLI_VERSION = "0.1.0"
USER_AGENT = f"HeadroomCLI/{CLI_VERSION}"
