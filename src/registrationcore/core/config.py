"""
Environment driven settings for the registration core.

Every setting is read when its dataclass is instantiated, so tests can build
a config with explicit values and services fall back to get_config().
"""

import os
from typing import Optional, Dict, Any, Callable
from dataclasses import dataclass, field, asdict
from functools import lru_cache
import logging

from .constants import LOCATION_TAG_IDENTIFIER_ASSIGNMENT_LOCATION, PATIENT_REGISTRATION_EVENT_TOPIC_NAME

logger = logging.getLogger(__name__)

MASK = '***masked***'
SECRET_FIELDS = {'mpi_provider': 'api_key', 'redis': 'password'}


def env_str(name: str, default: Optional[str] = None) -> Callable[[], Optional[str]]:
    return lambda: os.getenv(name, default)


def env_int(name: str, default: int) -> Callable[[], int]:
    return lambda: int(os.getenv(name, str(default)))


def env_float(name: str, default: float) -> Callable[[], float]:
    return lambda: float(os.getenv(name, str(default)))


def env_flag(name: str, default: bool = False) -> Callable[[], bool]:
    return lambda: os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes")


@dataclass
class DatabaseConfig:
    """MongoDB connection and collection layout"""
    uri: str = field(default_factory=env_str("MONGODB_URI", "mongodb://localhost:27017"))
    name: str = field(default_factory=env_str("REGISTRATION_DB", "registration_core"))
    max_pool_size: int = field(default_factory=env_int("MONGO_POOL_SIZE", 50))
    min_pool_size: int = field(default_factory=env_int("MONGO_MIN_POOL_SIZE", 10))
    max_idle_time_ms: int = field(default_factory=env_int("MONGO_MAX_IDLE_TIME_MS", 10000))
    server_selection_timeout_ms: int = field(default_factory=env_int("MONGO_SERVER_SELECTION_TIMEOUT_MS", 5000))

    patients_collection: str = "patients"
    relationships_collection: str = "relationships"
    identifier_sources_collection: str = "identifier_sources"
    counters_collection: str = "counters"


@dataclass
class RedisConfig:
    """Redis backs the property store and the registration event channel"""
    host: str = field(default_factory=env_str("REDIS_HOST", "localhost"))
    port: int = field(default_factory=env_int("REDIS_PORT", 6379))
    password: Optional[str] = field(default_factory=env_str("REDIS_PASSWORD"))
    db: int = field(default_factory=env_int("REDIS_DB", 0))
    max_connections: int = field(default_factory=env_int("REDIS_POOL_SIZE", 50))
    socket_timeout: int = field(default_factory=env_int("REDIS_SOCKET_TIMEOUT", 30))
    # Values are stored as bytes and decoded by the stores themselves
    decode_responses: bool = False

    properties_key: str = field(default_factory=env_str("PROPERTIES_KEY", "registrationcore:properties"))
    properties_channel: str = field(default_factory=env_str("PROPERTIES_CHANNEL", "registrationcore:properties:changes"))


@dataclass
class HTTPConfig:
    """Connection pool used for the remote index"""
    connect_timeout: int = field(default_factory=env_int("HTTP_CONNECT_TIMEOUT", 10))
    max_pool_size: int = field(default_factory=env_int("CONNECTION_POOL_SIZE", 100))
    max_per_host: int = field(default_factory=env_int("HTTP_MAX_PER_HOST", 30))
    ttl_dns_cache: int = field(default_factory=env_int("HTTP_DNS_CACHE_TTL", 300))


@dataclass
class MPIProviderConfig:
    """Remote master patient index"""
    enabled: bool = field(default_factory=env_flag("MPI_ENABLED"))
    endpoint: Optional[str] = field(default_factory=env_str("MPI_ENDPOINT"))
    api_key: Optional[str] = field(default_factory=env_str("MPI_API_KEY"))
    timeout_ms: int = field(default_factory=env_int("MPI_TIMEOUT", 5000))
    # Identifier type holding the remote person id on imported patients
    identifier_type_uuid: Optional[str] = field(default_factory=env_str("MPI_IDENTIFIER_TYPE_UUID"))


def default_field_weights() -> Dict[str, float]:
    return {
        'given_name': 0.3,
        'family_name': 0.3,
        'birthdate': 0.25,
        'gender': 0.15
    }


@dataclass
class MatchingConfig:
    default_cutoff: float = field(default_factory=env_float("MATCH_DEFAULT_CUTOFF", 0.5))
    default_max_results: int = field(default_factory=env_int("MATCH_DEFAULT_MAX_RESULTS", 10))
    candidate_limit: int = field(default_factory=env_int("MATCH_CANDIDATE_LIMIT", 100))
    name_search_limit: int = field(default_factory=env_int("NAME_SEARCH_LIMIT", 10))
    field_weights: Dict[str, float] = field(default_factory=default_field_weights)
    other_data_point_weight: float = 0.1


@dataclass
class RegistrationConfig:
    assignment_location_tag: str = field(
        default_factory=env_str("ASSIGNMENT_LOCATION_TAG", LOCATION_TAG_IDENTIFIER_ASSIGNMENT_LOCATION)
    )
    location_max_depth: int = field(default_factory=env_int("LOCATION_MAX_DEPTH", 100))
    event_topic: str = field(default_factory=env_str("REGISTRATION_EVENT_TOPIC", PATIENT_REGISTRATION_EVENT_TOPIC_NAME))


@dataclass
class LoggingConfig:
    level: str = field(default_factory=env_str("LOG_LEVEL", "INFO"))
    format: str = field(default_factory=env_str("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"))


@dataclass
class ApplicationConfig:
    """All settings of one registration core deployment"""
    app_name: str = field(default_factory=env_str("APP_NAME", "Registration Core"))
    environment: str = field(default_factory=env_str("ENVIRONMENT", "development"))

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    mpi_provider: MPIProviderConfig = field(default_factory=MPIProviderConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    registration: RegistrationConfig = field(default_factory=RegistrationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        self.validate()

    def problems(self):
        """Yield a message for each inconsistent setting"""
        if not self.database.uri:
            yield "Database URI is required"
        if not self.database.name:
            yield "Database name is required"
        if not 0 < self.redis.port < 65536:
            yield "Redis port must be between 1 and 65535"
        if self.mpi_provider.enabled and not self.mpi_provider.endpoint:
            yield "MPI endpoint is required when the remote index is enabled"
        if not 0.0 <= self.matching.default_cutoff <= 1.0:
            yield "Default match cutoff must be between 0 and 1"
        if self.matching.default_max_results < 1:
            yield "Default max results must be positive"
        if self.registration.location_max_depth < 1:
            yield "Location max depth must be positive"

    def validate(self) -> None:
        errors = list(self.problems())
        if errors:
            raise ValueError("Configuration validation failed: " + "; ".join(errors))

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict of every setting with secrets masked, for logging"""
        settings = asdict(self)
        for section, secret in SECRET_FIELDS.items():
            if settings[section].get(secret):
                settings[section][secret] = MASK
        return settings


@lru_cache(maxsize=1)
def get_config() -> ApplicationConfig:
    """Process wide configuration, read from the environment once"""
    config = ApplicationConfig()
    logger.info(f"Loaded {config.app_name} configuration for environment {config.environment}")
    return config


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    config = config or get_config().logging
    logging.basicConfig(level=config.level.upper(), format=config.format)


def get_database_config() -> DatabaseConfig:
    return get_config().database


def get_redis_config() -> RedisConfig:
    return get_config().redis


def get_matching_config() -> MatchingConfig:
    return get_config().matching


def get_registration_config() -> RegistrationConfig:
    return get_config().registration


def get_mpi_provider_config() -> MPIProviderConfig:
    return get_config().mpi_provider
