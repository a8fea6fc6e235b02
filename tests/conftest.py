# pyright: standard

from pathlib import Path

import pytest

from headroom.consts import DEBUG_ENV_VAR, MODEL_ENV_VAR, TELEMETRY_OUTFILE_ENV_VAR


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keeps tests away from the real settings directory and user configuration."""
    sandbox: Path = tmp_path_factory.mktemp("env")
    monkeypatch.setenv("HOME", str(sandbox / "home"))
    for name in (MODEL_ENV_VAR, DEBUG_ENV_VAR, TELEMETRY_OUTFILE_ENV_VAR):
        monkeypatch.delenv(name, raising=False)
