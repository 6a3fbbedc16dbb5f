"""
Dependency container holding the service graph for one Flask app.

The app factory builds one container and stores it under
app.extensions['skiptrace']; route handlers fetch services with
get_service() instead of reaching for module-level singletons. Tests swap
in fakes with register_service() before the first request.
"""

import threading
from typing import Any, Callable, Dict, Optional

from flask import current_app

EXTENSION_KEY = 'skiptrace'


class DependencyContainer:

    def __init__(self):
        self._services: Dict[str, Any] = {}
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._lock = threading.RLock()

    def register_service(self, service_name: str, service_instance: Any) -> None:
        """Register an existing service instance."""
        self._services[service_name] = service_instance

    def register_factory(self, service_name: str, factory_func: Callable[[], Any]) -> None:
        """Register a factory function that creates the service on first use."""
        self._factories[service_name] = factory_func

    def get_service(self, service_name: str) -> Optional[Any]:
        """Get or create a service by name."""
        if service_name in self._services:
            return self._services[service_name]

        with self._lock:
            if service_name in self._services:
                return self._services[service_name]
            if service_name in self._factories:
                service = self._factories[service_name]()
                self._services[service_name] = service
                return service

        return None

    def has_service(self, service_name: str) -> bool:
        return service_name in self._services or service_name in self._factories


def get_container() -> DependencyContainer:
    return current_app.extensions[EXTENSION_KEY]


def get_service(service_name: str) -> Any:
    """Fetch a service from the current app's container."""
    service = get_container().get_service(service_name)
    if service is None:
        raise KeyError(f"Service not registered: {service_name}")
    return service
