"""Address enrichment: remote providers and the TTL cache in front of them."""

from .cache import EnrichmentCache
from .provider import EnrichmentProvider, IpApiProvider

__all__ = ["EnrichmentCache", "EnrichmentProvider", "IpApiProvider"]
