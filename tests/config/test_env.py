from __future__ import annotations

import pytest

from suggestkit.config import (
    ConfigurationError,
    MissingConfigurationError,
    optional_env_var,
    require_env_vars,
)


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_lists_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_B", raising=False)
    monkeypatch.setenv("MISSING_A", "   ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_B", "MISSING_A"])

    assert "MISSING_A, MISSING_B" in str(exc.value)


def test_optional_env_var_falls_back_when_blank(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_INT", "")

    assert optional_env_var("EXAMPLE_INT", int, 7) == 7


def test_optional_env_var_parses_value(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_INT", " 12 ")

    assert optional_env_var("EXAMPLE_INT", int, 7) == 12


def test_optional_env_var_rejects_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_INT", "twelve")

    with pytest.raises(ConfigurationError, match="EXAMPLE_INT"):
        optional_env_var("EXAMPLE_INT", int, 7)
