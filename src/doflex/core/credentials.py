"""DigitalOcean API token discovery."""

import json
import os
from pathlib import Path

from loguru import logger

from doflex.core.exceptions import CredentialsError

TOKEN_FILE_ENV = "DIGITALOCEAN_TOKEN_FILE_PATH"
TOKEN_ENV = "DIGITALOCEAN_TOKEN"
TOKEN_DEFAULT_LOCATION = "/etc/kubernetes/digitalocean.json"


def read_token_file(path: str | Path) -> str:
    """Read the token from a ``{"token": "..."}`` JSON file.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file is not a JSON object.
    """
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return str(data.get("token") or "").strip()


def _try_file(path: str) -> str:
    try:
        return read_token_file(path)
    except (OSError, ValueError) as e:
        logger.info(f"Could not read a token from {path}: {e}")
        return ""


def get_token(environ: dict[str, str] | None = None) -> str:
    """Locate a DigitalOcean token.

    Sources are tried in order: the file named by ``DIGITALOCEAN_TOKEN_FILE_PATH``,
    the ``DIGITALOCEAN_TOKEN`` environment variable, then
    ``/etc/kubernetes/digitalocean.json``.

    Args:
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        The first non-empty token found.

    Raises:
        CredentialsError: If no source yields a token.
    """
    env = os.environ if environ is None else environ

    token_file = env.get(TOKEN_FILE_ENV, "")
    if token_file:
        token = _try_file(token_file)
        if token:
            logger.debug(f"Using token from file {token_file}")
            return token
        logger.info(f"Could not find a valid configuration file at {token_file}")

    if TOKEN_ENV in env:
        token = env[TOKEN_ENV].strip()
        if token:
            logger.debug(f"Using token from environment variable {TOKEN_ENV}")
            return token
        logger.info(f"Could not find a valid token at environment variable {TOKEN_ENV}")

    token = _try_file(TOKEN_DEFAULT_LOCATION)
    if token:
        return token
    logger.info(f"Could not find a valid configuration file at {TOKEN_DEFAULT_LOCATION}")

    raise CredentialsError("no valid DigitalOcean tokens were found")
