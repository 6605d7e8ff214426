"""
Backend Registry.

Maps backend names to factories so the engine used for a request can be
selected by configuration. Registries are plain objects owned by whoever
creates them; there is no process-wide instance.

Classes:
    BackendRegistry: Registry of backend factories

Functions:
    create_default_registry: New registry holding the built-in backends
"""

from typing import Any, Callable, Dict, List, Optional
import logging

from IC_Libs.constants import BACKEND_IMAGEMAGICK, BACKEND_PILLOW, BACKEND_RASTER
from IC_Libs.errors import HandlerConstructionFailed, ImagingError
from IC_Libs.BackendsLib.contract import ImageBackend

logger = logging.getLogger(__name__)

# Type alias for backend factories
BackendFactory = Callable[..., ImageBackend]


class BackendRegistry:
    """
    Registry for image backends.

    Example:
        >>> registry = BackendRegistry()
        >>> registry.register("pillow", PillowBackend, tags=["in-process"])
        >>> backend = registry.create("pillow", settings=HandleSettings())
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._factories: Dict[str, BackendFactory] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    def register(
        self,
        name: str,
        factory: BackendFactory,
        description: str = "",
        tags: Optional[List[str]] = None,
    ) -> None:
        """
        Register a backend factory.

        Args:
            name: Unique backend name (e.g., "pillow")
            factory: Callable returning an ImageBackend; receives create() options
            description: Human-readable description
            tags: Optional list of tags for categorization

        Raises:
            ValueError: If name is empty or factory is not callable
            RuntimeError: If name is already registered
        """
        name = str(name).strip()

        if not name:
            raise ValueError("name cannot be empty")

        if not callable(factory):
            raise ValueError(f"factory must be callable, got {type(factory)}")

        if name in self._factories:
            raise RuntimeError(
                f"Backend '{name}' is already registered. "
                f"Use unregister() first to replace it."
            )

        self._factories[name] = factory
        self._metadata[name] = {
            "description": str(description),
            "tags": list(tags) if tags else [],
        }

        logger.debug(f"Registered backend: {name}")

    def unregister(self, name: str) -> bool:
        """
        Unregister a backend.

        Returns:
            True if unregistered, False if name was not registered
        """
        name = str(name).strip()

        if name in self._factories:
            del self._factories[name]
            del self._metadata[name]
            logger.debug(f"Unregistered backend: {name}")
            return True

        return False

    def get_factory(self, name: str) -> BackendFactory:
        """
        Get the factory for a backend name.

        Raises:
            KeyError: If name is not registered
        """
        name = str(name).strip()

        if name not in self._factories:
            available = ", ".join(self.list_backends())
            raise KeyError(
                f"No backend registered as '{name}'. "
                f"Available backends: {available}"
            )

        return self._factories[name]

    def has_backend(self, name: str) -> bool:
        return str(name).strip() in self._factories

    def list_backends(self) -> List[str]:
        """Sorted list of registered backend names."""
        return sorted(self._factories.keys())

    def get_metadata(self, name: str) -> Dict[str, Any]:
        """
        Get metadata (description, tags) for a backend.

        Raises:
            KeyError: If name is not registered
        """
        name = str(name).strip()

        if name not in self._metadata:
            raise KeyError(f"No metadata for backend: {name}")

        return dict(self._metadata[name])

    def create(self, name: str, **options: Any) -> ImageBackend:
        """
        Construct a backend.

        Args:
            name: Registered backend name
            **options: Keyword arguments passed to the factory

        Returns:
            New ImageBackend instance

        Raises:
            HandlerConstructionFailed: If name is unknown or the factory fails
        """
        try:
            factory = self.get_factory(name)
        except KeyError as exc:
            raise HandlerConstructionFailed(str(exc.args[0])) from exc

        try:
            backend = factory(**options)
        except (ImagingError, OSError, TypeError, ValueError) as exc:
            raise HandlerConstructionFailed(
                f"Backend '{name}' could not be created: {exc}"
            ) from exc

        if not isinstance(backend, ImageBackend):
            raise HandlerConstructionFailed(
                f"Factory for '{name}' returned {type(backend)}, expected an ImageBackend"
            )

        return backend


def register_default_backends(registry: BackendRegistry) -> None:
    """
    Register the built-in backends.

    This function registers:
    - raster: numpy buffers with manual compositing
    - pillow: Pillow object model
    - imagemagick: ImageMagick command-line tools
    """
    from IC_Libs.BackendsLib.raster_backend import RasterBackend
    from IC_Libs.BackendsLib.pillow_backend import PillowBackend
    from IC_Libs.BackendsLib.magick_backend import MagickBackend

    registry.register(
        name=BACKEND_RASTER,
        factory=lambda settings=None, **_: RasterBackend(settings),
        description="In-memory numpy raster buffers with explicit alpha compositing",
        tags=["in-process", "numpy"],
    )

    registry.register(
        name=BACKEND_PILLOW,
        factory=lambda settings=None, **_: PillowBackend(settings),
        description="Pillow image objects with built-in resampling and compositing",
        tags=["in-process", "pillow"],
    )

    registry.register(
        name=BACKEND_IMAGEMAGICK,
        factory=lambda settings=None, temp_dir=None, imagemagick_dir=None, **_: MagickBackend(
            settings, temp_dir=temp_dir, imagemagick_dir=imagemagick_dir
        ),
        description="ImageMagick command-line tools run per operation",
        tags=["external", "subprocess"],
    )


def create_default_registry() -> BackendRegistry:
    """Create a new registry with the built-in backends registered."""
    registry = BackendRegistry()
    register_default_backends(registry)
    return registry
