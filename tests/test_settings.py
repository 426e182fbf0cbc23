import importlib
import logging

import settings


def test_defaults(monkeypatch):
    for name in ("BOXPLAN_WEIGHT_CEILING_G", "BOXPLAN_ESTIMATE_DEBOUNCE_MS", "BOXPLAN_INSURANCE_GST_PCT", "BOXPLAN_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    reloaded = importlib.reload(settings)

    assert reloaded.WEIGHT_CEILING_G == 10_000
    assert reloaded.ESTIMATE_DEBOUNCE_MS == 300
    assert reloaded.INSURANCE_GST_PCT == 18.0
    assert reloaded.LOG_LEVEL == "INFO"


def test_env_overrides_and_bad_values(monkeypatch, caplog):
    monkeypatch.setenv("BOXPLAN_WEIGHT_CEILING_G", "15000")
    monkeypatch.setenv("BOXPLAN_INSURANCE_GST_PCT", "eighteen")
    monkeypatch.setenv("BOXPLAN_LOG_LEVEL", "debug")

    with caplog.at_level(logging.WARNING):
        reloaded = importlib.reload(settings)

    assert reloaded.WEIGHT_CEILING_G == 15_000
    assert reloaded.INSURANCE_GST_PCT == 18.0
    assert reloaded.LOG_LEVEL == "DEBUG"
    assert "BOXPLAN_INSURANCE_GST_PCT" in caplog.text

    monkeypatch.undo()
    importlib.reload(settings)
