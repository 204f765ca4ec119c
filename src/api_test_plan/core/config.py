"""
Compiler configuration settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Test plan compiler settings.

    Every field can be overridden with an ``API_TEST_PLAN_``-prefixed
    environment variable or a ``.env`` file.
    """

    model_config = SettingsConfigDict(env_prefix="API_TEST_PLAN_", env_file=".env", extra="ignore")

    # Expected statuses
    default_success_status: int = 200
    missing_parameter_status: int = 400
    unauthenticated_status: int = 401
    forbidden_status: int = 403
    not_found_status: int = 404

    # Credentials, resolved by the emitter / runner
    credential_placeholder: str = "${API_TOKEN}"
    limited_credential_placeholder: str = "${API_TOKEN_LIMITED}"
    invalid_bearer_token: str = (
        "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9"
        ".eyJzdWIiOiJ1bmtub3duLXVzZXIiLCJpYXQiOjB9"
        ".aW52YWxpZC1zaWduYXR1cmUtMDAwMDAwMDAwMDAw"
    )
    invalid_api_key: str = "invalid-api-key-00000000"

    # Value synthesis
    not_found_sentinel: str = "nonexistent-id-99999999-aaaa-bbbb-cccc-dddddddddddd"
    max_phrase_length: int = 32

    # Runtime
    workers: int = 1
    log_level: str = "WARNING"


def get_settings(**overrides) -> Settings:
    """Build settings, letting explicit keyword arguments win over the environment."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})
