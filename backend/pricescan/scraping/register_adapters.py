"""Register the built-in source adapters with the factory.

Call register_all_adapters() once at startup, before building the
adapter table for a job.
"""

from functools import partial
from typing import Optional

import structlog

from pricescan.scraping.adapters import AMAZON_NL, BOL_COM, HOUSE_OF_NICHE, create_search_adapter
from pricescan.scraping.factory import AdapterFactory, get_adapter_factory

logger = structlog.get_logger(__name__)


def register_all_adapters(factory: Optional[AdapterFactory] = None) -> AdapterFactory:
    """Register all available adapters.

    Args:
        factory: Target factory, defaults to the global one

    Returns:
        The factory the adapters were registered with
    """
    factory = factory or get_adapter_factory()

    adapters = [
        ("bol.com", partial(create_search_adapter, defaults=BOL_COM), ("bol", "bolcom")),
        ("amazon nl", partial(create_search_adapter, defaults=AMAZON_NL), ("amazon netherlands", "amazon.nl")),
        ("house of niche", partial(create_search_adapter, defaults=HOUSE_OF_NICHE), ("houseofniche",)),
        # Fully described by the source's own settings blob
        ("configurable", create_search_adapter, ()),
    ]

    for name, builder, aliases in adapters:
        factory.register_adapter(name, builder, aliases=aliases)

    logger.info(
        "all_adapters_registered",
        count=len(adapters),
        names=[name for name, _, _ in adapters],
    )
    return factory
