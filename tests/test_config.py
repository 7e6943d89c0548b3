import pytest

from studyspend.config import Config


def test_defaults_are_valid(monkeypatch):
    monkeypatch.setattr(Config, "IDLE_TIMEOUT_MINUTES", 30)
    monkeypatch.setattr(Config, "SEED_PATH", None)
    Config.validate()


@pytest.mark.parametrize("minutes", [0, -5])
def test_non_positive_idle_timeout_is_rejected(monkeypatch, minutes):
    monkeypatch.setattr(Config, "IDLE_TIMEOUT_MINUTES", minutes)
    monkeypatch.setattr(Config, "SEED_PATH", None)
    with pytest.raises(ValueError, match="IDLE_TIMEOUT"):
        Config.validate()


def test_missing_seed_file_is_rejected(monkeypatch, tmp_path):
    monkeypatch.setattr(Config, "IDLE_TIMEOUT_MINUTES", 30)
    monkeypatch.setattr(Config, "SEED_PATH", tmp_path / "missing.json")
    with pytest.raises(ValueError, match="does not exist"):
        Config.validate()


def test_existing_seed_file_is_accepted(monkeypatch, tmp_path):
    seed = tmp_path / "seed.json"
    seed.write_text('{"accounts": []}', encoding="utf-8")
    monkeypatch.setattr(Config, "IDLE_TIMEOUT_MINUTES", 30)
    monkeypatch.setattr(Config, "SEED_PATH", seed)
    Config.validate()
