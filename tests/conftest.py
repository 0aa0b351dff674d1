from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("IMGAPI_CLI_CONFIG", str(tmp_path / "no-such-config.toml"))
