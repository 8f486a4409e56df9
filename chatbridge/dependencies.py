"""Per-request wiring of the routing services.

Caches live here, one per process, and are handed to the services
explicitly; everything else is built per request around the request's
database session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from chatbridge.config import settings
from chatbridge.database import get_db
from chatbridge.services.cache import TTLCache
from chatbridge.services.configuration_service import ConfigurationService
from chatbridge.services.instance_directory import InstanceDirectory
from chatbridge.services.mapping_service import MappingService
from chatbridge.services.message_broker import MessageBroker
from chatbridge.services.routing_engine import RoutingEngine
from chatbridge.services.targets import TargetRegistry

configuration_cache = TTLCache(settings.cache_ttl_seconds)
instance_cache = TTLCache(settings.cache_ttl_seconds)
target_registry = TargetRegistry(inbox_cache=TTLCache(settings.cache_ttl_seconds))


def get_configuration_service(db: Session = Depends(get_db)) -> ConfigurationService:
    return ConfigurationService(db, configuration_cache)


def get_instance_directory(db: Session = Depends(get_db)) -> InstanceDirectory:
    return InstanceDirectory(db, instance_cache)


def get_message_broker(
    db: Session = Depends(get_db),
    config_service: ConfigurationService = Depends(get_configuration_service),
    directory: InstanceDirectory = Depends(get_instance_directory),
) -> MessageBroker:
    engine = RoutingEngine(db, directory, target_registry, config_service)
    return MessageBroker(engine, directory)


def get_mapping_service(
    db: Session = Depends(get_db),
    config_service: ConfigurationService = Depends(get_configuration_service),
    directory: InstanceDirectory = Depends(get_instance_directory),
) -> MappingService:
    return MappingService(db, config_service, directory, target_registry)
