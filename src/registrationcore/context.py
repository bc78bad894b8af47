"""
Registration core service context

Opens MongoDB, Redis and HTTP connections and wires the repositories,
strategies and services together.
"""

import asyncio
import logging
from typing import Optional

import aiohttp
import redis.asyncio as redis

from .core.config import ApplicationConfig, configure_logging, get_config
from .core.database import DatabaseManager
from .core.events import RedisEventPublisher
from .core.properties import RedisPropertyStore
from .domains.biometrics.services.biometric_service import BiometricService
from .domains.identifier.repositories.identifier_source_repository import IdentifierSourceRepository
from .domains.identifier.services.identifier_service import IdentifierAllocator
from .domains.identifier.services.location_service import LocationDirectory, LocationResolver
from .domains.matching.services.match_filter import MatchReconciler, MpiIdentifierPatientFilter
from .domains.matching.services.matching_service import MatchingService
from .domains.matching.services.remote_index_service import RemoteIndexService
from .domains.registration.services.registration_service import RegistrationService
from .domains.patient.repositories.patient_repository import PatientRepository
from .providers import BiometricEngine, HttpRemoteIndexProvider, build_default_registry

logger = logging.getLogger(__name__)


class RegistrationCoreContext:
    """Centralized service context for dependency injection"""

    def __init__(
        self,
        location_directory: LocationDirectory,
        biometric_engine: Optional[BiometricEngine] = None,
        config: Optional[ApplicationConfig] = None
    ):
        self.config = config or get_config()
        self.location_directory = location_directory
        self.biometric_engine = biometric_engine

        self.redis_pool = None
        self.redis = None
        self.db_manager = None
        self.http_session = None
        self.remote_provider = None
        self._listener_task = None
        self._initialized = False

        self.patient_repository = None
        self.identifier_source_repository = None
        self.property_store = None
        self.allocator = None
        self.registry = None
        self.remote_index = None
        self.reconciler = None
        self.matching_service = None
        self.biometric_service = None
        self.registration_service = None

    async def initialize(self):
        """Initialize all connections and services"""
        if self._initialized:
            return

        configure_logging(self.config.logging)
        logger.info(f"Starting {self.config.app_name} ({self.config.environment})")

        # Initialize Redis
        redis_config = self.config.redis
        self.redis_pool = redis.ConnectionPool(
            host=redis_config.host,
            port=redis_config.port,
            password=redis_config.password,
            db=redis_config.db,
            max_connections=redis_config.max_connections,
            socket_timeout=redis_config.socket_timeout,
            decode_responses=redis_config.decode_responses
        )
        self.redis = redis.Redis(connection_pool=self.redis_pool)

        # Initialize MongoDB
        self.db_manager = DatabaseManager(self.config.database)
        await self.db_manager.initialize()

        # Initialize HTTP session for the remote index
        if self.config.mpi_provider.enabled:
            http_config = self.config.http
            connector = aiohttp.TCPConnector(
                limit=http_config.max_pool_size,
                limit_per_host=http_config.max_per_host,
                ttl_dns_cache=http_config.ttl_dns_cache
            )
            timeout = aiohttp.ClientTimeout(
                total=self.config.mpi_provider.timeout_ms / 1000,
                connect=http_config.connect_timeout
            )
            self.http_session = aiohttp.ClientSession(connector=connector, timeout=timeout)
            self.remote_provider = HttpRemoteIndexProvider(self.config.mpi_provider, session=self.http_session)
            await self.remote_provider.initialize()

        self._init_services()

        # Pick up property changes made by other processes
        self._listener_task = asyncio.create_task(self.property_store.listen())

        self._initialized = True
        logger.info("Registration Core Context initialized successfully")

    def _init_services(self):
        self.patient_repository = PatientRepository(self.db_manager)
        self.identifier_source_repository = IdentifierSourceRepository(self.db_manager)
        self.property_store = RedisPropertyStore(self.redis, self.config.redis)

        self.allocator = IdentifierAllocator(self.property_store, self.identifier_source_repository)
        self.registry = build_default_registry(self.patient_repository, self.config.matching)

        self.remote_index = RemoteIndexService(self.remote_provider, self.patient_repository, self.config.mpi_provider)
        self.reconciler = MatchReconciler(MpiIdentifierPatientFilter(self.config.mpi_provider.identifier_type_uuid))
        self.matching_service = MatchingService(
            self.property_store,
            self.registry,
            remote_index=self.remote_index,
            reconciler=self.reconciler,
            config=self.config.matching
        )

        self.biometric_service = BiometricService(self.patient_repository, self.biometric_engine)
        self.registration_service = RegistrationService(
            self.patient_repository,
            self.allocator,
            self.location_directory,
            self.biometric_service,
            RedisEventPublisher(self.redis),
            location_resolver=LocationResolver(self.config.registration),
            config=self.config.registration
        )

    async def cleanup(self):
        """Cleanup all connections"""
        logger.info("Cleaning up Registration Core Context...")

        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass

        if self.allocator and self.property_store:
            self.property_store.remove_listener(self.allocator)

        if self.http_session:
            await self.http_session.close()

        if self.redis_pool:
            await self.redis_pool.disconnect()

        if self.db_manager:
            await self.db_manager.cleanup()

        self._initialized = False
        logger.info("Cleanup complete")

    async def import_patient(self, remote_id: str):
        """Fetch a remote record into the local store"""
        return await self.remote_index.import_patient(remote_id)
