"""Client for the master (directory) service: assign, lookup, grow."""

from typing import Optional

from pydantic import ValidationError

from client.cancellation import CancelScope
from client.http_client import HttpClient, mk_url
from client.schemas import AssignResult, LookupResult
from common.constants import ASSIGN_PATH, GROW_PATH, LOOKUP_PATH
from common.exceptions import AllocationError, LocationLookupError
from common.logging_config import get_logger

logger = get_logger(__name__)


class MasterClient:
    """
    Talks to the master server that hands out file ids and knows where
    every volume lives.
    """

    def __init__(self, http: HttpClient, master_address: str):
        """
        Args:
            http: Shared HTTP transport
            master_address: Master server in "HOST:PORT" format
        """
        self.http = http
        self.master_address = master_address

    def assign(
        self,
        count: int = 1,
        collection: str = '',
        ttl: str = '',
        scope: Optional[CancelScope] = None
    ) -> AssignResult:
        """
        Reserve one or more fresh file ids on a volume server.

        Args:
            count: Number of ids to reserve; siblings are addressed as fid_1, fid_2, ...
            collection: Optional collection name
            ttl: Optional time-to-live, e.g. "3m"
            scope: Optional cancel scope

        Returns:
            AssignResult with fid, url, public_url and count

        Raises:
            AllocationError: If the master refuses or answers with malformed JSON
            TransportError: If the master cannot be reached
        """
        values = {'count': str(count)}
        if collection:
            values['collection'] = collection
        if ttl:
            values['ttl'] = ttl

        body = self.http.post_form(self.master_address, ASSIGN_PATH, values, scope=scope)

        try:
            result = AssignResult.model_validate_json(body)
        except ValidationError as e:
            raise AllocationError(
                f"{ASSIGN_PATH} result JSON unmarshal error: {e.error_count()} error(s), json: {body[:200]!r}"
            ) from e

        if result.count <= 0:
            raise AllocationError(result.error or f"{ASSIGN_PATH} returned no file ids")

        logger.debug(f"Assigned {result.count} id(s) starting at {result.fid} on {result.url}")
        return result

    def lookup(
        self,
        volume_id: str,
        collection: str = '',
        scope: Optional[CancelScope] = None
    ) -> LookupResult:
        """
        Ask the master which volume servers hold a volume.

        Args:
            volume_id: Volume id, or a full file id (the master ignores the part after the comma)
            collection: Optional collection name
            scope: Optional cancel scope

        Returns:
            LookupResult listing the replica locations

        Raises:
            LocationLookupError: If the master reports an error or answers with malformed JSON
            TransportError: If the master cannot be reached
        """
        args = {'volumeId': volume_id}
        if collection:
            args['collection'] = collection

        response = self.http.get_response(mk_url(self.master_address, LOOKUP_PATH, args), scope=scope)

        try:
            result = LookupResult.model_validate_json(response.content)
        except ValidationError as e:
            raise LocationLookupError(
                f"{LOOKUP_PATH} for {volume_id} returned malformed JSON "
                f"(status {response.status_code}): {response.content[:200]!r}"
            ) from e

        if result.error:
            raise LocationLookupError(result.error)
        return result

    def grow(
        self,
        count: int = 0,
        collection: str = '',
        replication: str = '',
        data_center: str = '',
        ttl: str = '',
        scope: Optional[CancelScope] = None
    ) -> None:
        """
        Ask the master to pre-allocate volumes. Only non-empty arguments are sent.

        Raises:
            TransportError: If the master does not answer 200
        """
        args = {}
        if count > 0:
            args['count'] = str(count)
        if collection:
            args['collection'] = collection
        if replication:
            args['replication'] = replication
        if data_center:
            args['dataCenter'] = data_center
        if ttl:
            args['ttl'] = ttl

        self.http.get(mk_url(self.master_address, GROW_PATH, args), scope=scope)
        logger.info(f"Volume grow succeeded {args}")
