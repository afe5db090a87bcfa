"""acmelib configuration loader.

Reads a YAML or JSON file, resolves ``${VAR}`` / ``${VAR:-default}``
environment references, validates the result against the bundled JSON
schema and then runs cross-field checks.

Lifecycle::

    # 1. CLI (or the embedding application) creates the instance once
    AcmelibConfig(config_file="/etc/acmelib/config.yaml")

    # 2. Any module retrieves it afterwards
    from acmelib.config import get_config
    cfg = get_config()
    cfg.settings.ca.directory_url  # typed access

    # 3. Dynamic access
    cfg.get("challenges.dns01.resolvers", default=[])
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from acmelib.config.settings import AcmelibSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_KNOWN_CHALLENGE_TYPES = frozenset({"http-01", "dns-01"})

_CLASS_PATH_RE = re.compile(
    r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)+$",
)

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level instance reference
# ---------------------------------------------------------------------------
_instance: AcmelibConfig | None = None


def get_config() -> AcmelibConfig:
    """Return the initialised configuration.

    Raises :class:`RuntimeError` if :class:`AcmelibConfig` has not been
    created yet.
    """
    if _instance is None:
        msg = (
            "Configuration not initialised. "
            "AcmelibConfig must be created with config_file= before calling get_config()."
        )
        raise RuntimeError(msg)
    return _instance


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


def _read_file(path: Path) -> dict:
    """Parse a YAML or JSON config file into a dict."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigValidationError([f"Cannot read config file '{path}': {exc}"]) from exc

    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigValidationError([f"Cannot parse config file '{path}': {exc}"]) from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigValidationError([f"Config file '{path}' must contain a mapping"])
    return data


def _schema_errors(data: dict) -> list[str]:
    schema = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
    validator = jsonschema.Draft202012Validator(schema)
    errors = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        location = ".".join(str(p) for p in err.absolute_path) or "(root)"
        errors.append(f"{location}: {err.message}")
    return errors


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class AcmelibConfig:
    """Central configuration for the issuance engine.

    The JSON schema is bundled at ``config/schema.json``; users supply
    only ``config_file``.  After construction the typed settings tree is
    available at :pyattr:`settings` and the raw dict via :pyattr:`data`
    / :pymeth:`get`.
    """

    def __init__(self, *, config_file: str | Path) -> None:
        global _instance  # noqa: PLW0603

        self._path = Path(config_file)
        self._data = self._load(self._path)
        self.additional_checks()
        self._settings: AcmelibSettings = build_settings(self._data)
        _instance = self

    # -- lifecycle ------------------------------------------------------------

    @staticmethod
    def _load(path: Path) -> dict:
        """Load the file, resolve env vars, then validate against the schema.

        Env-var resolution runs **before** schema validation so that
        substituted values (e.g. ``${LOG_LEVEL:-INFO}``) are checked
        against enum constraints in the schema.
        """
        data = _read_file(path)
        _resolve_env_vars(data)
        errors = _schema_errors(data)
        if errors:
            raise ConfigValidationError(errors)
        data["_source"] = str(path)
        return data

    # -- access ---------------------------------------------------------------

    @property
    def data(self) -> dict:
        """The resolved raw configuration."""
        return self._data

    @property
    def settings(self) -> AcmelibSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    def get(self, dotted: str, default: Any = None) -> Any:  # noqa: ANN401
        """Look up a raw value by dot-separated path."""
        node: Any = self._data
        for part in dotted.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- cross-field validation -----------------------------------------------

    def additional_checks(self) -> None:  # noqa: C901, PLR0912
        """Semantic and cross-field validation.

        Runs after schema validation.  Collects every error before
        raising so the operator sees them all at once.
        """
        errors: list[str] = []
        warnings: list[str] = []

        ca = self._data.get("ca") or {}
        account = self._data.get("account") or {}
        challenges = self._data.get("challenges") or {}
        order = self._data.get("order") or {}

        # -- CA --
        directory_url = ca.get("directory_url", "")
        if directory_url.startswith("http://"):
            warnings.append(
                f"ca.directory_url uses plain HTTP ({directory_url}); "
                "only suitable for local test CAs",
            )
        elif not directory_url.startswith("https://"):
            errors.append(
                f"ca.directory_url must be an http(s) URL (got '{directory_url}')",
            )
        if ca.get("verify_ssl") is False:
            warnings.append("ca.verify_ssl is disabled; CA certificates are not checked")
        if ca.get("ca_cert_path") and not Path(ca["ca_cert_path"]).is_file():
            errors.append(f"ca.ca_cert_path '{ca['ca_cert_path']}' does not exist")

        # -- account --
        email = account.get("email")
        if email and "@" not in email:
            errors.append(f"account.email '{email}' is not an email address")
        if account.get("agree_tos") is False:
            warnings.append(
                "account.agree_tos is false; registration fails on CAs with terms of service",
            )

        # -- challenges --
        enabled = challenges.get("enabled", ["http-01", "dns-01"])
        if not enabled:
            errors.append("challenges.enabled must list at least one challenge type")
        seen: set[str] = set()
        for type_str in enabled:
            if type_str in seen:
                errors.append(f"challenges.enabled lists '{type_str}' more than once")
            seen.add(type_str)
            if type_str.startswith("ext:"):
                if not _CLASS_PATH_RE.match(type_str[4:]):
                    errors.append(
                        f"challenges.enabled entry '{type_str}' is not a valid "
                        "fully qualified Python class path",
                    )
            elif type_str not in _KNOWN_CHALLENGE_TYPES:
                errors.append(
                    f"challenges.enabled entry '{type_str}' is unknown; expected one of "
                    f"{sorted(_KNOWN_CHALLENGE_TYPES)} or 'ext:<class path>'",
                )

        http01 = challenges.get("http01") or {}
        responder = http01.get("responder") or {}
        if http01.get("webroot") and responder.get("enabled"):
            warnings.append(
                "challenges.http01 has both webroot and responder enabled; "
                "proofs are served by both",
            )

        # -- order polling --
        base = order.get("poll_base_seconds", 1)
        cap = order.get("poll_max_seconds", 30)
        ceiling = order.get("poll_timeout_seconds", 300)
        if base > cap:
            errors.append(
                f"order.poll_base_seconds ({base}) must be <= order.poll_max_seconds ({cap})",
            )
        if cap > ceiling:
            warnings.append(
                f"order.poll_max_seconds ({cap}) exceeds order.poll_timeout_seconds "
                f"({ceiling}); a single wait is trimmed to the remaining budget",
            )

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    # -- helpers --------------------------------------------------------------

    def reload_settings(self) -> AcmelibSettings:
        """Re-read the config file and return a fresh settings tree.

        Does not replace the current instance.
        """
        return build_settings(self._load(self._path))

    @classmethod
    def reset(cls) -> None:
        """Forget the current instance -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None

    def __repr__(self) -> str:
        source = self._data.get("_source", "?")
        return f"<AcmelibConfig config_file={source}>"
