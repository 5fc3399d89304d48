"""Shared pytest fixtures for roombook tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset the module-level JWKS cache so keys never leak between tests."""
    import roombook.api.auth as auth_module

    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0
    yield
    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0


@pytest.fixture(autouse=True)
def _no_retry_sleep():
    """Retries back off with real sleeps; tests never wait."""
    from unittest.mock import patch

    with patch("roombook.infra.retry.time.sleep"):
        yield
