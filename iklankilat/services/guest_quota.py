import os
from typing import Optional

from iklankilat.shared.cosmos_client import ConcurrentModificationError, CosmosDBClient, get_cosmos_client
from iklankilat.shared.logging_utils import info as log_info, warning as log_warning
from iklankilat.specs.common.datetime_utils import format_iso_datetime, utc_now
from iklankilat.specs.common.errors import GuestLimitReachedError, ValidationError


GUEST_USAGE = "guest_usage"
DEFAULT_GUEST_LIMIT = 5
MAX_WRITE_ATTEMPTS = 5


def guest_limit() -> int:
    return int(os.getenv("GUEST_MAX_GENERATIONS", str(DEFAULT_GUEST_LIMIT)))


class GuestQuota:
    """Counts free generations per anonymous ``X-Guest-Id``.

    A generation is reserved before the model is called and refunded if it
    fails. Every counter write is conditioned on the document's etag, so
    parallel requests from one guest cannot overshoot the limit.
    """

    def __init__(self, client: Optional[CosmosDBClient] = None, limit: Optional[int] = None):
        self._client = client
        self.limit = guest_limit() if limit is None else limit

    @property
    def client(self) -> CosmosDBClient:
        if self._client is None:
            self._client = get_cosmos_client()
        return self._client

    def _read(self, guest_id: str) -> Optional[dict]:
        return self.client.get_item(GUEST_USAGE, guest_id, partition_key=guest_id)

    def used(self, guest_id: str) -> int:
        doc = self._read(guest_id)
        return int(doc.get("generations", 0)) if doc else 0

    def _write(self, guest_id: str, doc: Optional[dict], generations: int) -> None:
        item = {"id": guest_id, "generations": generations, "lastUsedUtc": format_iso_datetime(utc_now())}
        if doc is None:
            self.client.create_item(GUEST_USAGE, item)
        else:
            self.client.replace_item(GUEST_USAGE, item, etag=doc["_etag"])

    def reserve(self, guest_id: Optional[str]) -> int:
        """Take one generation for ``guest_id``; returns how many remain.

        Raises GuestLimitReachedError once the limit is used up.
        """
        if not guest_id:
            raise ValidationError("Sign in or send an X-Guest-Id header to generate as a guest.")
        for _ in range(MAX_WRITE_ATTEMPTS):
            doc = self._read(guest_id)
            used = int(doc.get("generations", 0)) if doc else 0
            if used >= self.limit:
                raise GuestLimitReachedError(self.limit, details={"guestId": guest_id})
            try:
                self._write(guest_id, doc, used + 1)
            except ConcurrentModificationError:
                continue
            log_info(None, "guest:generation_reserved", guestId=guest_id, used=used + 1, limit=self.limit)
            return self.limit - used - 1
        # Heavy contention on a single guest id is treated like an exhausted quota.
        raise GuestLimitReachedError(self.limit, details={"guestId": guest_id, "reason": "contention"})

    def refund(self, guest_id: str) -> None:
        """Give back a generation reserved for a request that failed."""
        for _ in range(MAX_WRITE_ATTEMPTS):
            doc = self._read(guest_id)
            used = int(doc.get("generations", 0)) if doc else 0
            if used <= 0:
                return
            try:
                self._write(guest_id, doc, used - 1)
            except ConcurrentModificationError:
                continue
            log_info(None, "guest:generation_refunded", guestId=guest_id, used=used - 1)
            return
        log_warning(None, "guest:refund_failed", guestId=guest_id)
