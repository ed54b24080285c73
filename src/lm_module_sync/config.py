"""Connection settings for the module sync server.

Reads portal connection settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    LM_PORTAL_HOSTNAME: Portal hostname, e.g. acme.logicmonitor.com (required)
    LM_BEARER_TOKEN: API bearer token (required)
    LM_PORTAL_ID: Portal identifier used in module bindings (optional,
        default: the hostname)
    LM_INSECURE: Skip SSL verification (optional, default: false)
    LM_MAX_PARALLEL_REQUESTS: Max parallel portal requests (optional, default: 4)
    LM_STATE_DIR: Directory for remembered module directories
        (optional, default: .lm_module_sync)
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class Config:
    portal_hostname: str
    bearer_token: str
    portal_id: str = ""
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = 4
    state_dir: str = ".lm_module_sync"


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Normalizes the hostname (scheme and trailing slash stripped) and fills
    ``portal_id`` from the hostname when it is empty.

    Raises:
        ValueError: If the hostname is malformed or the token is empty.
    """
    hostname = config.portal_hostname.strip()
    hostname = hostname.removeprefix("https://").removeprefix("http://")
    hostname = hostname.rstrip("/")

    if not hostname or "/" in hostname or " " in hostname:
        raise ValueError(
            f"Invalid portal hostname '{config.portal_hostname}': "
            "expected a bare hostname such as acme.logicmonitor.com"
        )
    config.portal_hostname = hostname

    if not config.bearer_token.strip():
        raise ValueError(
            "Bearer token cannot be empty. Set LM_BEARER_TOKEN environment variable."
        )

    if not config.portal_id:
        config.portal_id = hostname

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    hostname: str | None = None,
    token: str | None = None,
    portal_id: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` first.

    Args:
        hostname: Override portal hostname.
        token: Override bearer token.
        portal_id: Override portal id.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Values from the YAML config ``portal`` section.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If hostname or token is missing after checking all
            sources, or a numeric setting is out of range.
    """
    fb = yaml_fallbacks or {}

    final_hostname = (
        hostname or os.getenv("LM_PORTAL_HOSTNAME") or fb.get("hostname")
    )
    if not final_hostname:
        raise ValueError(
            "Portal hostname not found. Set LM_PORTAL_HOSTNAME environment variable, "
            "pass --hostname CLI argument, or add 'hostname' to config.yml."
        )

    final_token = token or os.getenv("LM_BEARER_TOKEN") or fb.get("token")
    if not final_token:
        raise ValueError(
            "Bearer token not found. Set LM_BEARER_TOKEN environment variable, "
            "pass --token CLI argument, or add 'token' to config.yml."
        )

    final_portal_id = (
        portal_id or os.getenv("LM_PORTAL_ID") or fb.get("portal_id") or ""
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("LM_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("LM_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    max_parallel_raw = os.getenv("LM_MAX_PARALLEL_REQUESTS")
    if max_parallel_raw is not None:
        try:
            final_max_parallel = int(max_parallel_raw)
        except ValueError:
            raise ValueError(
                f"Invalid LM_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 32"
            ) from None
        if not (1 <= final_max_parallel <= 32):
            raise ValueError(
                f"Invalid LM_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 32"
            )
    elif "max_parallel_requests" in fb:
        final_max_parallel = int(fb["max_parallel_requests"])
    else:
        final_max_parallel = 4

    final_state_dir = (
        os.getenv("LM_STATE_DIR") or fb.get("state_dir") or ".lm_module_sync"
    )

    config = Config(
        portal_hostname=final_hostname,
        bearer_token=final_token.strip(),
        portal_id=final_portal_id.strip(),
        insecure=final_insecure,
        debug=final_debug,
        max_parallel_requests=final_max_parallel,
        state_dir=final_state_dir,
    )

    validate_config(config)

    return config
