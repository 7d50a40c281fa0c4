"""Registry for creating source adapters from source configurations."""

from typing import Callable, Dict, Iterable, List, Optional

import structlog

from pricescan.scraping.base import SourceAdapter
from pricescan.scraping.types import SourceConfiguration

logger = structlog.get_logger(__name__)


AdapterBuilder = Callable[[SourceConfiguration], SourceAdapter]


def _key(name: str) -> str:
    return " ".join(name.lower().split())


class AdapterFactory:
    """Maps source names to adapter builders.

    Lookup is case-insensitive. A source's settings blob may name a
    registered builder explicitly under the "adapter" key; otherwise the
    source name is used.
    """

    def __init__(self):
        self._builders: Dict[str, AdapterBuilder] = {}

    def register_adapter(self, name: str, builder: AdapterBuilder, aliases: Iterable[str] = ()) -> None:
        """Register an adapter builder under a name and optional aliases.

        Args:
            name: Source name (e.g., "bol.com")
            builder: Callable taking a SourceConfiguration and returning an adapter
            aliases: Alternative names resolving to the same builder
        """
        if not callable(builder):
            raise ValueError(f"Adapter builder must be callable: {builder!r}")
        for key in (name, *aliases):
            self._builders[_key(key)] = builder
        logger.debug("adapter_registered", name=name, aliases=list(aliases))

    def resolve(self, source: SourceConfiguration) -> Optional[AdapterBuilder]:
        explicit = (source.config or {}).get("adapter")
        if explicit and _key(str(explicit)) in self._builders:
            return self._builders[_key(str(explicit))]
        return self._builders.get(_key(source.name))

    def create_adapter(self, source: SourceConfiguration) -> Optional[SourceAdapter]:
        """Create an adapter instance for one source.

        Returns:
            Adapter instance, or None if no builder matches or it rejected
            the source's settings
        """
        builder = self.resolve(source)
        if builder is None:
            logger.warning("adapter_not_found", source_id=source.id, source_name=source.name)
            return None

        try:
            adapter = builder(source)
        except ValueError as e:
            logger.warning(
                "adapter_config_invalid",
                source_id=source.id,
                source_name=source.name,
                error=str(e),
            )
            return None

        if not isinstance(adapter, SourceAdapter):
            raise TypeError(f"Builder for {source.name} returned a non-adapter: {adapter!r}")

        logger.info("adapter_created", source_id=source.id, source_name=source.name)
        return adapter

    def build_adapters(self, sources: Iterable[SourceConfiguration]) -> Dict[str, SourceAdapter]:
        """Build the id-keyed adapter table for a job.

        Inactive sources and sources without a usable adapter are skipped.
        Insertion order follows the input order.
        """
        adapters: Dict[str, SourceAdapter] = {}
        for source in sources:
            if not source.is_active:
                logger.debug("source_inactive_skipped", source_id=source.id)
                continue
            adapter = self.create_adapter(source)
            if adapter is not None:
                adapters[source.id] = adapter
        return adapters

    def get_registered_names(self) -> List[str]:
        return list(self._builders.keys())

    def has_adapter(self, name: str) -> bool:
        return _key(name) in self._builders


# Global factory instance
adapter_factory = AdapterFactory()


def get_adapter_factory() -> AdapterFactory:
    """Get the global adapter factory instance."""
    return adapter_factory
