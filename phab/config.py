from functools import lru_cache
from pathlib import Path

import hjson
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from phab.exceptions import ConfigurationError


class Settings(BaseSettings):
    config_file: Path = Field(default=Path("~/.phab"), validate_default=True)
    storage_file: Path = Field(default=Path("~/.local/share/phab/db.json"), validate_default=True)
    log_level: str = "WARNING"
    grpc_host: str = "127.0.0.1"
    grpc_port: int = 8787

    model_config = {"env_prefix": "PHAB_", "env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("config_file", "storage_file")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()


@lru_cache
def get_settings() -> Settings:
    return Settings()


class CertIdentityConfig(BaseModel):
    pkcs12_path: str
    pkcs12_password: str


class PhabricatorClientConfig(BaseModel):
    host: str
    api_token: str
    cert_identity_config: CertIdentityConfig | None = None


def load_client_config(path: Path | str) -> PhabricatorClientConfig:
    """Read the Conduit client config from an HJSON (or plain JSON) file.

    Example ``~/.phab``::

        {
          host: https://phab.example.com
          api_token: api-xxxxxxxx
          cert_identity_config: {
            pkcs12_path: /home/me/.certs/me.p12
            pkcs12_password: secret
          }
        }
    """
    path = Path(path).expanduser()
    try:
        raw = hjson.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Failed to read config from {path}, {e}") from e
    except hjson.HjsonDecodeError as e:
        raise ConfigurationError(f"Failed to parse config {path}, {e}") from e

    try:
        return PhabricatorClientConfig.model_validate(raw)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid config {path}, {e}") from e
