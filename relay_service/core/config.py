from typing import Any, Dict
from importlib import resources
import os

import yaml
from dotenv import load_dotenv


def deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in (b or {}).items():
        if isinstance(out.get(k), dict) and isinstance(v, dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _yaml_load_text(path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


def _apply_env_overrides(cfg: Dict[str, Any], environ: Dict[str, str], prefix: str = "RELAY__") -> Dict[str, Any]:
    for key, val in environ.items():
        if not key.startswith(prefix):
            continue
        parts = key[len(prefix) :].split("__")
        parts = [p.strip().lower() for p in parts if p.strip()]
        if not parts:
            continue
        sub = cfg
        for p in parts[:-1]:
            nxt = sub.get(p)
            if not isinstance(nxt, dict):
                nxt = {}
                sub[p] = nxt
            sub = nxt
        # parse value as YAML for numbers/bools/lists/dicts support
        try:
            parsed = yaml.safe_load(val)
        except yaml.YAMLError:
            parsed = val
        sub[parts[-1]] = parsed
    return cfg


def load_settings() -> Dict[str, Any]:
    """
    Load default.yml, overlay dev.yml if present, then apply env overrides using
    RELAY__A__B=val -> cfg['a']['b']=parsed(val)
    """
    load_dotenv()
    pkg_root = resources.files("relay_service.config")
    cfg = _yaml_load_text(pkg_root / "default.yml")

    ignore_dev_config = os.environ.get("RELAY_IGNORE_DEV_CONFIG", "false").lower() in (
        "true",
        "1",
        "yes",
    )

    dev_file = pkg_root / "dev.yml"
    if not ignore_dev_config and dev_file.is_file():
        dev_cfg = _yaml_load_text(dev_file)
        # `_replaces_default: true` makes dev.yml the base instead of an overlay
        if dev_cfg.pop("_replaces_default", False):
            cfg = dev_cfg
        else:
            cfg = deep_merge(cfg, dev_cfg)

    return _apply_env_overrides(cfg, dict(os.environ))


def limit(settings: Dict[str, Any], key: str, default: Any) -> Any:
    """Read settings['limits'][key] with a fallback."""
    value = (settings.get("limits") or {}).get(key)
    return default if value is None else value
