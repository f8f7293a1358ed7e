"""Runtime configuration for remsync.

Reads service settings from CLI args, environment variables, .env files,
and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    REMSYNC_AUTH_SERVER: Authentication server base URL (optional)
    REMSYNC_DISCOVERY_SERVER: Service discovery base URL (optional)
    REMSYNC_DEVICE_TOKEN: Device bearer token (required except for register)
    REMSYNC_MAX_PARALLEL_FETCHES: Concurrent blob fetches (optional, default: 4)
    REMSYNC_TIMEOUT: HTTP read timeout in seconds (optional, default: 60)
    REMSYNC_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass

from .validators import validate_base_url

logger = logging.getLogger(__name__)

DEFAULT_AUTH_SERVER = "https://my.remarkable.com/"
DEFAULT_DISCOVERY_SERVER = (
    "https://service-manager-production-dot-remarkable-production.appspot.com/"
)


@dataclass
class Config:
    auth_server: str = DEFAULT_AUTH_SERVER
    discovery_server: str = DEFAULT_DISCOVERY_SERVER
    device_token: str = ""
    debug: bool = False
    max_parallel_fetches: int = 4
    timeout: int = 60


def validate_config(config: Config, require_token: bool = True) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.
        require_token: Whether a device token must be present.

    Raises:
        ValueError: If a URL is malformed, a number is out of range, or
            the device token is missing.
    """
    config.auth_server = config.auth_server.strip()
    config.discovery_server = config.discovery_server.strip()

    for field_name, url in (
        ("Auth server", config.auth_server),
        ("Discovery server", config.discovery_server),
    ):
        ok, reason = validate_base_url(url, field_name)
        if not ok:
            raise ValueError(reason)

    if not (1 <= config.max_parallel_fetches <= 16):
        raise ValueError(
            f"Invalid max_parallel_fetches {config.max_parallel_fetches}: "
            "must be between 1 and 16"
        )
    if not (1 <= config.timeout <= 600):
        raise ValueError(
            f"Invalid timeout {config.timeout}: must be between 1 and 600"
        )

    config.device_token = config.device_token.strip()
    if require_token and not config.device_token:
        raise ValueError(
            "Device token not found. Set REMSYNC_DEVICE_TOKEN, pass "
            "--device-token, or run 'remsync register' to obtain one."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, low: int, high: int) -> int | None:
    """Return an int from env var, or None if unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    auth_server: str | None = None,
    discovery_server: str | None = None,
    device_token: str | None = None,
    debug: bool = False,
    max_parallel_fetches: int | None = None,
    yaml_fallbacks: dict | None = None,
    require_token: bool = True,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        auth_server: Override authentication server URL.
        discovery_server: Override discovery server URL.
        device_token: Override device bearer token.
        debug: Enable debug logging (CLI flag).
        max_parallel_fetches: Override concurrent fetch bound.
        yaml_fallbacks: Dict of values from the YAML ``remote`` section.
        require_token: Whether a missing device token is an error.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If any value is invalid after checking all sources.
    """
    fb = yaml_fallbacks or {}

    final_auth = (
        auth_server
        or os.getenv("REMSYNC_AUTH_SERVER")
        or fb.get("auth_server")
        or DEFAULT_AUTH_SERVER
    )
    final_discovery = (
        discovery_server
        or os.getenv("REMSYNC_DISCOVERY_SERVER")
        or fb.get("discovery_server")
        or DEFAULT_DISCOVERY_SERVER
    )
    final_token = (
        device_token
        or os.getenv("REMSYNC_DEVICE_TOKEN")
        or fb.get("device_token")
        or ""
    )

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("REMSYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    if max_parallel_fetches is not None:
        final_parallel = max_parallel_fetches
    else:
        env_parallel = _get_int_env("REMSYNC_MAX_PARALLEL_FETCHES", 1, 16)
        if env_parallel is not None:
            final_parallel = env_parallel
        else:
            final_parallel = int(fb.get("max_parallel_fetches", 4))

    env_timeout = _get_int_env("REMSYNC_TIMEOUT", 1, 600)
    if env_timeout is not None:
        final_timeout = env_timeout
    else:
        final_timeout = int(fb.get("timeout", 60))

    config = Config(
        auth_server=final_auth,
        discovery_server=final_discovery,
        device_token=final_token,
        debug=final_debug,
        max_parallel_fetches=final_parallel,
        timeout=final_timeout,
    )

    validate_config(config, require_token=require_token)

    return config
