"""Resolves file ids to the volume servers currently serving them."""

import random
from typing import List, Optional

from client.cancellation import CancelScope
from client.http_client import mk_url
from client.master_client import MasterClient
from common.exceptions import LocationLookupError
from common.location_cache import LocationCache
from common.logging_config import get_logger

logger = get_logger(__name__)


class LocationResolver:
    """
    Cache-aside lookup of volume server locations.

    Concurrent lookups of the same file id may both reach the master; the
    last writer wins in the cache, which is harmless because placement does
    not change after assignment.
    """

    def __init__(self, master: MasterClient, cache: LocationCache):
        self.master = master
        self.cache = cache

    def locations(
        self,
        fid: str,
        collection: str = '',
        use_cache: bool = True,
        scope: Optional[CancelScope] = None
    ) -> List[str]:
        """
        Return every volume server address holding fid.

        Args:
            fid: File id
            collection: Optional collection name
            use_cache: Serve from the cache when a fresh entry exists
            scope: Optional cancel scope

        Returns:
            Non-empty list of "HOST:PORT" addresses

        Raises:
            LocationLookupError: If the master knows no location for fid
            TransportError: If the master cannot be reached
        """
        if use_cache:
            cached = self.cache.get(fid)
            if cached:
                logger.debug(f"Location cache hit for {fid} -> {cached}")
                return cached

        result = self.master.lookup(fid, collection, scope=scope)
        addresses = [location.url for location in result.locations if location.url]
        if not addresses:
            raise LocationLookupError(f"No volume server found for {fid}")

        self.cache.put(fid, addresses)
        return addresses

    def resolve(
        self,
        fid: str,
        collection: str = '',
        use_cache: bool = True,
        scope: Optional[CancelScope] = None
    ) -> str:
        """
        Return one volume server address for fid, picked at random among replicas.
        """
        return random.choice(self.locations(fid, collection, use_cache, scope=scope))

    def lookup_file_url(
        self,
        fid: str,
        collection: str = '',
        use_cache: bool = True,
        scope: Optional[CancelScope] = None
    ) -> str:
        """
        Return the full blob URL for fid, e.g. "http://127.0.0.1:8080/3,01637037d6".
        """
        return mk_url(self.resolve(fid, collection, use_cache, scope=scope), fid)

    def invalidate(self, fid: str) -> None:
        self.cache.invalidate(fid)
