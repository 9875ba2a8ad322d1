from typing import Any, Generic, Protocol, TypeVar

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def has(self, name: str) -> bool:
        """Check whether an implementation is registered under ``name``."""
        return name in self._implementations

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def clear(self) -> None:
        """Drop all registrations (used when rebuilding callbacks from settings)."""
        if self._frozen:
            raise RuntimeError(f"Cannot clear frozen {self.name.lower()} registry")
        self._implementations.clear()

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Delivery Callback Registry - one concrete email send per job type
class DeliveryCallback(Protocol):
    """Protocol for callbacks that attempt one email delivery."""

    async def send(self, contact: Any) -> bool:
        """
        Attempt a single send for the resolved domain object.

        Returns True when the provider accepted the message. Must enforce its
        own timeout and must not retry internally; the queue owns retries.
        Raising is treated the same as returning False.
        """
        ...


class DeliveryCallbackRegistry(Registry[DeliveryCallback]):
    """Registry for email delivery callbacks keyed by EmailJobType value."""

    def __init__(self):
        super().__init__("DeliveryCallback")


# Global registry instance (singleton)
delivery_registry = DeliveryCallbackRegistry()
