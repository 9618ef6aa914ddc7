"""Token lookup for the command line wrapper.

The collection core never authenticates; it receives an already configured
``GitHubClient``. This module only finds a token for the CLI.
"""

import logging
import os
import re
import subprocess

logger = logging.getLogger(__name__)

TOKEN_PREFIXES = ("ghp_", "gho_", "ghu_", "ghs_", "github_pat_")
CLASSIC_TOKEN_PATTERN = re.compile(r"^[a-f0-9]{40}$")


class AuthenticationError(Exception):
    """Raised when no usable token can be found."""


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh CLI token lookup unavailable: %s", e)
        return None

    if result.returncode != 0:
        logger.debug("gh auth token exited with %d", result.returncode)
        return None
    return result.stdout.strip() or None


def resolve_token(token: str | None = None, env_var: str = "GITHUB_TOKEN") -> str:
    """Find a GitHub token.

    Looks at, in order: the explicit argument, the ``env_var`` environment
    variable, and ``gh auth token``.

    Args:
        token: Explicit token.
        env_var: Environment variable to read.

    Returns:
        The token.

    Raises:
        AuthenticationError: If no token is found or its format is unknown.
    """
    source = "explicit parameter"
    if not token:
        token = os.environ.get(env_var)
        source = f"{env_var} environment variable"
    if not token:
        token = _token_from_gh_cli()
        source = "gh CLI"
    if not token:
        msg = f"GitHub token not found. Set {env_var}, pass --token, or run `gh auth login`."
        raise AuthenticationError(msg)

    if not (token.startswith(TOKEN_PREFIXES) or CLASSIC_TOKEN_PATTERN.match(token)):
        msg = f"Token from {source} does not look like a GitHub token"
        raise AuthenticationError(msg)

    logger.info("Using GitHub token from %s", source)
    return token
