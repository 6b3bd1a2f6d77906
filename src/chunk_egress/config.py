import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHUNK_EGRESS_"
MAX_HEX_RANDOM_LENGTH = 16
DEFAULT_OBJECT_KEY_FORMAT = "%{path}/%{time_slice}_%{index}.%{file_extension}"

_TRUE_VALUES = ("true", "1", "yes", "on")


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(ENV_PREFIX + name, default)


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True, slots=True)
class EgressConfig:
    """Service configuration loaded from environment variables."""

    # --- Required Variables ---
    container: str

    # --- Object Key Layout ---
    path: str
    object_key_format: str
    index_format: str
    hex_random_length: int
    timekey_seconds: int
    utc: bool

    # --- Upload Behaviour ---
    store_as: str
    overwrite: bool
    auto_create_container: bool
    spool_file_max_size_mb: int

    # --- Storage Connection ---
    endpoint_url: str | None
    region: str | None
    access_key_id: str | None
    secret_access_key: str | None
    kms_key_id: str | None
    ssl_verify: bool

    # --- Logging ---
    service_name: str
    log_level: str

    # --- Derived Properties ---
    @property
    def spool_file_max_size_bytes(self) -> int:
        return self.spool_file_max_size_mb * 1_048_576

    @classmethod
    def load_from_env(cls) -> "EgressConfig":
        """
        Loads configuration from environment variables, performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            # --- Handle required string variables ---
            container = os.environ[ENV_PREFIX + "CONTAINER"]
            if not container.strip():
                raise ValueError("CONTAINER must not be empty.")

            # --- Object key layout ---
            path = _env("PATH", "%Y%m%d")
            object_key_format = _env("OBJECT_KEY_FORMAT", DEFAULT_OBJECT_KEY_FORMAT)
            index_format = _env("INDEX_FORMAT", "%d")

            hex_random_length = int(_env("HEX_RANDOM_LENGTH", "4"))
            if not 1 <= hex_random_length <= MAX_HEX_RANDOM_LENGTH:
                raise ValueError(
                    f"HEX_RANDOM_LENGTH must be between 1 and {MAX_HEX_RANDOM_LENGTH}."
                )

            timekey_seconds = int(_env("TIMEKEY_SECONDS", "300"))
            if timekey_seconds <= 0:
                raise ValueError("TIMEKEY_SECONDS must be a positive integer.")

            utc = _env_bool("UTC", True)

            # --- Upload behaviour ---
            store_as = _env("STORE_AS", "gzip").strip().lower()
            overwrite = _env_bool("OVERWRITE", False)
            auto_create_container = _env_bool("AUTO_CREATE_CONTAINER", True)

            spool_file_max_size_mb = int(_env("SPOOL_FILE_MAX_SIZE_MB", "64"))
            if spool_file_max_size_mb <= 0:
                raise ValueError("SPOOL_FILE_MAX_SIZE_MB must be a positive integer.")

            # --- Storage connection ---
            endpoint_url = _env("ENDPOINT_URL") or None
            region = _env("REGION") or None
            access_key_id = _env("ACCESS_KEY_ID") or None
            secret_access_key = _env("SECRET_ACCESS_KEY") or None
            if bool(access_key_id) != bool(secret_access_key):
                raise ValueError(
                    "ACCESS_KEY_ID and SECRET_ACCESS_KEY must be set together."
                )
            kms_key_id = _env("KMS_KEY_ID") or None
            ssl_verify = _env_bool("SSL_VERIFY", True)

            # --- Handle special-case variables like log level ---
            service_name = _env("SERVICE_NAME", "chunk-egress")
            log_level = _env("LOG_LEVEL", "INFO").upper()
            allowed_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if log_level not in allowed_log_levels:
                raise ValueError(
                    f"LOG_LEVEL must be one of {allowed_log_levels}, not '{log_level}'"
                )

        except KeyError as e:
            raise ConfigurationError(
                f"Missing required environment variable: {e.args[0]}"
            ) from e
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            container=container,
            path=path,
            object_key_format=object_key_format,
            index_format=index_format,
            hex_random_length=hex_random_length,
            timekey_seconds=timekey_seconds,
            utc=utc,
            store_as=store_as,
            overwrite=overwrite,
            auto_create_container=auto_create_container,
            spool_file_max_size_mb=spool_file_max_size_mb,
            endpoint_url=endpoint_url,
            region=region,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            kms_key_id=kms_key_id,
            ssl_verify=ssl_verify,
            service_name=service_name,
            log_level=log_level,
        )


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> EgressConfig:
    """
    Loads the service configuration from environment variables.
    The result is cached using lru_cache, so the environment is only read once
    on the first call. This avoids import-time side effects.
    """
    logger.info("Loading chunk egress configuration from environment...")
    return EgressConfig.load_from_env()
