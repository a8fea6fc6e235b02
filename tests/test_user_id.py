# pyright: standard

from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from headroom.user_id import EPHEMERAL_USER_ID, get_persistent_user_id


@pytest.fixture(autouse=True)
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path


def test_user_id_is_created_and_reused(home: Path) -> None:
    first = get_persistent_user_id()
    second = get_persistent_user_id()

    assert first == second
    assert (home / ".headroom" / "user_id").read_text() == first


def test_existing_user_id_is_read(home: Path) -> None:
    (home / ".headroom").mkdir()
    _ = (home / ".headroom" / "user_id").write_text("fixed-id\n")

    assert get_persistent_user_id() == "fixed-id"


def test_unwritable_settings_fall_back_to_ephemeral_id(mocker: MockerFixture) -> None:
    _ = mocker.patch("headroom.user_id.atomic_write_text", side_effect=PermissionError("read-only"))

    assert get_persistent_user_id() == EPHEMERAL_USER_ID
