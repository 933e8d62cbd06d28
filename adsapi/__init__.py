__version__ = "0.1.0"

from adsapi.config import ClientConfig, ConfigError, create_config, load_config  # noqa: E402
from adsapi.http.client import ApiClient  # noqa: E402
from adsapi.http.context import CallContext  # noqa: E402

__all__ = [
    "ApiClient",
    "CallContext",
    "ClientConfig",
    "ConfigError",
    "__version__",
    "create_config",
    "load_config",
]
