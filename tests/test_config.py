from pathlib import Path

from favifetch.config import Settings, load_settings


def test_defaults_match_documented_limits(monkeypatch):
    for name in ("FAVI_MAX_CONCURRENT", "FAVI_REQUEST_TIMEOUT_S", "FAVI_SHUTDOWN_WAIT_S"):
        monkeypatch.delenv(name, raising=False)
    s = Settings.from_env()
    assert s.max_concurrent == 3
    assert s.request_timeout_s == 10.0
    assert s.shutdown_wait_s == 2.0
    assert s.memory_cache_bytes == s.disk_cache_bytes == 50 * 1024 * 1024


def test_env_overrides_and_bad_values_fall_back(monkeypatch):
    monkeypatch.setenv("FAVI_MAX_CONCURRENT", "8")
    monkeypatch.setenv("FAVI_REQUEST_TIMEOUT_S", "not-a-number")
    monkeypatch.setenv("FAVI_NO_COLOR", "yes")
    s = Settings.from_env()
    assert s.max_concurrent == 8
    assert s.request_timeout_s == 10.0
    assert s.no_color is True


def test_yaml_file_wins_over_env(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("FAVI_MAX_CONCURRENT", "8")
    cfg = tmp_path / "favifetch.yaml"
    cfg.write_text("max_concurrent: 5\nfallback_icon_size: 32\nunknown_key: ignored\n", encoding="utf-8")
    s = load_settings(str(cfg))
    assert s.max_concurrent == 5
    assert s.fallback_icon_size == 32
    assert not hasattr(s, "unknown_key")


def test_cache_path_defaults_under_xdg_cache_home(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("FAVI_CACHE_PATH", raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
    s = Settings.from_env()
    assert s.resolved_cache_path() == tmp_path / "favifetch" / "favicon-cache.sqlite"


def test_public_suffix_filter_can_be_switched_off(monkeypatch):
    monkeypatch.delenv("FAVI_FALLBACK_PUBLIC_SUFFIX_ONLY", raising=False)
    assert Settings.from_env().fallback_public_suffix_only is True
    monkeypatch.setenv("FAVI_FALLBACK_PUBLIC_SUFFIX_ONLY", "0")
    assert Settings.from_env().fallback_public_suffix_only is False
