from __future__ import annotations
from typing import Any, Dict, List, Mapping
import json, os, pathlib

import yaml

ENV_PREFIX = "PEERPING_"

DEFAULTS: Dict[str, Any] = {
    "port": None,
    "peers": None,
    "interval_s": 1.0,
    "listen_host": None,
    "source_host": None,
    "payload": "ping",
    "sequence": False,
    "exit_when_ready": False,
    "exit_on_listener_fault": False,
    "reverse_lookup": True,
    "strict": False,
}

def _load_json_section(path: pathlib.Path, section: str) -> Dict[str, Any]:
    cfg = json.loads(path.read_text()) or {}
    return cfg.get(section, {})

def _load_yaml_section(path: pathlib.Path, section: str) -> dict:
    cfg = yaml.safe_load(path.read_text()) or {}
    return cfg.get(section, {})

def load_config(path: str | os.PathLike[str], section: str = "peerping") -> Dict[str, Any]:
    """
    Load one section from a .json or .yml/.yaml file.
    If the extension is missing/unknown, attempt JSON → YAML.
    """
    p = pathlib.Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {p}")
    ext = p.suffix.lower()
    if ext == ".json":
        return _load_json_section(p, section) or {}
    if ext in (".yml", ".yaml"):
        return _load_yaml_section(p, section) or {}
    for fn in (_load_json_section, _load_yaml_section):
        try:
            return fn(p, section) or {}
        except (ValueError, yaml.YAMLError, AttributeError):
            pass
    raise ValueError(f"Could not parse config file as JSON or YAML: {p}")

def _coerce_env(v: str) -> Any:
    s = v.strip()
    ls = s.lower()
    if ls in ("true", "1", "yes", "on"): return True
    if ls in ("false", "0", "no", "off"): return False
    if "," in s: return [x.strip() for x in s.split(",") if x.strip()]
    try:
        if "." in s: return float(s)
        return int(s)
    except ValueError:
        return s

def with_env_overrides(cfg: Mapping[str, Any], prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """
    Uppercase, underscore keys: PEERPING_PORT, PEERPING_PEERS, etc.
    Booleans: '1','true','yes' => True ; '0','false','no' => False
    Lists: comma-separated.
    """
    out: Dict[str, Any] = dict(cfg)
    for k, v in os.environ.items():
        if not k.startswith(prefix):
            continue
        out[k[len(prefix):].lower()] = _coerce_env(v)
    return out

def _as_list(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(v, (list, tuple)):
        return [str(x) for x in v]
    raise ValueError(f"peers must be a list or comma-separated string, got {v!r}")

def coerce_settings(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge `raw` over DEFAULTS and normalise types. Unknown keys are kept
    untouched; bad values raise ValueError.
    """
    out: Dict[str, Any] = dict(DEFAULTS)
    out.update({k: v for k, v in raw.items() if v is not None})

    if out["port"] is not None:
        try:
            out["port"] = int(out["port"])
        except (TypeError, ValueError):
            raise ValueError(f"port must be an integer, got {out['port']!r}") from None
        if not 0 <= out["port"] <= 65535:
            raise ValueError(f"port out of range: {out['port']}")
    if out["peers"] is not None:
        out["peers"] = _as_list(out["peers"])
    try:
        out["interval_s"] = float(out["interval_s"])
    except (TypeError, ValueError):
        raise ValueError(f"interval_s must be a number, got {out['interval_s']!r}") from None
    if out["interval_s"] <= 0:
        raise ValueError("interval_s must be > 0")
    if not isinstance(out["payload"], bytes):
        out["payload"] = str(out["payload"]).encode("utf-8")
    if not out["payload"]:
        raise ValueError("payload must not be empty")
    for key in ("sequence", "exit_when_ready", "exit_on_listener_fault", "reverse_lookup", "strict"):
        out[key] = bool(out[key])
    return out
