from relay_service.core.config import _apply_env_overrides, deep_merge, limit, load_settings


def test_deep_merge_keeps_siblings():
    base = {"limits": {"max_tool_iterations": 5, "tool_timeout_sec": 30}, "logging": {"level": "INFO"}}
    merged = deep_merge(base, {"limits": {"max_tool_iterations": 2}})
    assert merged["limits"] == {"max_tool_iterations": 2, "tool_timeout_sec": 30}
    assert merged["logging"] == {"level": "INFO"}
    assert base["limits"]["max_tool_iterations"] == 5


def test_env_overrides_are_parsed_as_yaml():
    cfg = {"limits": {"max_tool_iterations": 5}}
    env = {
        "RELAY__LIMITS__MAX_TOOL_ITERATIONS": "3",
        "RELAY__TOOLS__CACHEABLE": "[calculator]",
        "RELAY__LOGGING__LEVEL": "debug",
        "UNRELATED": "x",
    }
    out = _apply_env_overrides(cfg, env)
    assert out["limits"]["max_tool_iterations"] == 3
    assert out["tools"]["cacheable"] == ["calculator"]
    assert out["logging"]["level"] == "debug"
    assert "unrelated" not in out


def test_load_settings_reads_packaged_defaults(monkeypatch):
    monkeypatch.setenv("RELAY_IGNORE_DEV_CONFIG", "1")
    monkeypatch.setenv("RELAY__APP__API__PORT", "9090")
    settings = load_settings()
    assert settings["app"]["api"]["port"] == 9090
    assert settings["system"]["default_model"] == "relay-beta"
    assert limit(settings, "tool_cache_ttl_sec", None) == 300
    assert limit(settings, "not_a_limit", "fallback") == "fallback"
