from .config import Config
from .errors import (
    ConfigurationError,
    ConnectionError,
    NotFoundError,
    OperationError,
    StorageError,
    StorebenchError,
)
from .providers import (
    StorageProvider,
    available_providers,
    create_and_initialize,
    create_provider,
    provider_from_config,
)

__all__ = [
    "Config",
    "ConfigurationError",
    "ConnectionError",
    "NotFoundError",
    "OperationError",
    "StorageError",
    "StorageProvider",
    "StorebenchError",
    "available_providers",
    "create_and_initialize",
    "create_provider",
    "provider_from_config",
]
