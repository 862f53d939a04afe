"""Configuration parsing helpers for dohrace.

Brief:
  Reads a YAML config file, merges variables from the config, the
  environment and the CLI, expands ``${KEY}`` references and validates the
  result into a typed Settings model.

Inputs:
  - YAML config files / dicts

Outputs:
  - Settings instances and the resolver/client objects built from them
"""

from __future__ import annotations

import copy
import json
import os
import re
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from ..client import RacingClient
from ..resolver import RacingResolver
from .settings import Settings

ENV_PREFIX = "DOHRACE_"

_VAR_KEY = re.compile(r"[A-Z_][A-Z0-9_]*")
_VAR_REF = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def _is_var_key(key: str) -> bool:
    return bool(key) and bool(_VAR_KEY.fullmatch(key))


def _parse_yaml_value(text: str) -> Any:
    """Parse a CLI/environment value as YAML, keeping the raw string on errors."""
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['variables'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI ``KEY=YAML`` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['variables'].

    Precedence:
      - CLI (-v/--var) overrides ``DOHRACE_<KEY>`` environment variables,
        which override the config file's ``variables`` mapping.

    Example:
      >>> cfg = {'variables': {'TIMEOUT': 5}}
      >>> parse_config_variables(cfg, cli_vars=['TIMEOUT=2'], environ={})['TIMEOUT']
      2
    """
    base = cfg.get("variables")
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ValueError("config.variables must be a mapping when present")

    for k in merged:
        if not isinstance(k, str) or not _is_var_key(k):
            raise ValueError(
                f"config.variables key {k!r} must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*"
            )

    env = os.environ if environ is None else environ
    for k, v in env.items():
        if not k.startswith(ENV_PREFIX):
            continue
        name = k[len(ENV_PREFIX) :]
        if _is_var_key(name):
            merged[name] = _parse_yaml_value(str(v))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ValueError(
                "Invalid -v/--var value (expected KEY=YAML), got: %r" % assignment
            )
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not _is_var_key(k):
            raise ValueError(
                "Invalid variable name %r (must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*)"
                % k
            )
        merged[k] = _parse_yaml_value(raw)

    cfg["variables"] = merged
    return merged


def expand_variables(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Brief: Substitute variables into config values and drop the group.

    Inputs:
      - cfg: mapping that may carry a ``variables`` group (mutated in-place).

    Outputs:
      - The same mapping, with:
        - a value that is exactly ``$KEY`` or ``${KEY}`` replaced by the
          variable's YAML value (lists and dicts included);
        - ``${KEY}`` inside longer strings replaced by its text form;
        - unknown references left untouched.
    """
    variables = cfg.pop("variables", None) or {}

    def _text(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if value is None:
            return "null"
        if isinstance(value, (int, float, str)):
            return str(value)
        return json.dumps(value)

    def _expand(obj: Any) -> Any:
        if isinstance(obj, str):
            whole = obj[2:-1] if obj.startswith("${") and obj.endswith("}") else obj[1:]
            if obj.startswith("$") and whole in variables:
                return copy.deepcopy(variables[whole])
            return _VAR_REF.sub(
                lambda m: _text(variables[m.group(1)]) if m.group(1) in variables else m.group(0),
                obj,
            )
        if isinstance(obj, list):
            return [_expand(item) for item in obj]
        if isinstance(obj, dict):
            return {k: _expand(v) for k, v in obj.items()}
        return obj

    for key in list(cfg.keys()):
        cfg[key] = _expand(cfg[key])
    return cfg


def load_settings(cfg: Optional[Dict[str, Any]]) -> Settings:
    """Brief: Validate a config mapping into Settings.

    Raises:
      - ValueError: with every validation error listed, one per line.
    """
    try:
        return Settings.model_validate(cfg or {})
    except ValidationError as exc:
        lines = ["Invalid configuration:"]
        for err in exc.errors():
            where = "/".join(str(p) for p in err.get("loc", ())) or "<root>"
            lines.append(f"- {where}: {err.get('msg')}")
        raise ValueError("\n".join(lines)) from exc


def parse_config_file(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Brief: Read, variable-merge and validate a YAML configuration file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - cli_vars: Optional list of CLI ``KEY=YAML`` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - Settings

    Raises:
      - ValueError: When the root is not a mapping, variables are invalid or
        validation fails.
      - OSError: When the file cannot be read.
    """
    with open(config_path, "r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    parse_config_variables(cfg, cli_vars=list(cli_vars or []), environ=environ)
    expand_variables(cfg)
    return load_settings(cfg)


def build_resolver(settings: Settings) -> RacingResolver:
    return RacingResolver(
        settings.endpoints(),
        timeout=settings.resolver.timeout,
        connect_timeout=settings.query.connect_timeout,
        read_timeout=settings.query.read_timeout,
        verify=settings.query.verify,
    )


def build_client(settings: Settings) -> RacingClient:
    """Build a RacingClient wired to a resolver over the configured endpoints."""
    return RacingClient(
        build_resolver(settings),
        attempts=settings.fetch.attempts,
        timeout=settings.fetch.timeout,
        connect_timeout=settings.fetch.connect_timeout,
        read_timeout=settings.fetch.read_timeout,
        verify=settings.fetch.verify,
    )
