"""
Secrets and keychain integration — retrieves the Slack API token from
the system keychain.

Credentials are **never** stored in config files or source code.  They
live in the system keychain (``secret-tool`` / ``libsecret``) and are
retrieved once at startup, then passed explicitly to the components that
need them.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger("shared.secrets")

DEFAULT_SERVICE = "slack-archiver"


def env_var_name(key_name: str) -> str:
    """Environment variable consulted when the keychain has no entry."""
    return f"SLACK_ARCHIVER_{key_name.upper().replace('-', '_')}"


def get_secret(key_name: str, service: str = DEFAULT_SERVICE) -> str:
    """Retrieve a secret from the system keychain.

    Uses ``secret-tool`` (libsecret) under the hood::

        secret-tool lookup service slack-archiver key <key_name>

    Falls back to the environment variable ``SLACK_ARCHIVER_<KEY_NAME>``
    when ``secret-tool`` is missing or has no entry (development setups).

    Args:
        key_name: The key identifier (e.g. ``"slack-api-token"``).
        service: The service label in the keychain.

    Raises:
        RuntimeError: If the secret is in neither the keychain nor the env.
    """
    try:
        result = subprocess.run(
            ["secret-tool", "lookup", "service", service, "key", key_name],
            capture_output=True,
            text=True,
            timeout=10,
        )
        secret = result.stdout.strip()
        if secret:
            return secret
    except FileNotFoundError:
        logger.warning("secret-tool not found; falling back to environment variable")
    except subprocess.TimeoutExpired:
        logger.warning("secret-tool timed out; falling back to environment variable")
    except OSError:
        logger.warning(
            "secret-tool failed; falling back to environment variable",
            exc_info=True,
        )

    env_key = env_var_name(key_name)
    env_val = os.environ.get(env_key)
    if env_val:
        logger.warning("Using env var fallback for secret '%s' (%s)", key_name, env_key)
        return env_val

    raise RuntimeError(
        f"Secret '{key_name}' not found in keychain (service={service}) "
        f"or environment variable {env_key}"
    )
