"""Paginated fetch over a bearer-authenticated list endpoint."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from torfleet._api._common import extract_total, unwrap_records
from torfleet._transport import Transport
from torfleet.exceptions import TorApiError, TorSessionExpiredError, TorTransportError
from torfleet.session import TokenManager

_logger = logging.getLogger(__name__)


async def fetch_all_pages(
    *,
    endpoint: str,
    base_payload: Mapping[str, Any],
    transport: Transport,
    tokens: TokenManager,
    page_size: int,
    timeout: float | None = None,
) -> list[dict[str, Any]]:
    """Fetch every page of *endpoint* and return the accumulated records.

    Requests ``{**base_payload, "pageNumber": n, "pageSize": page_size}``
    starting at page 1.  Stops after an empty page, a short page, or once the
    provider-reported total has been reached.  Page length is counted before
    non-object entries are dropped.

    A failed page (timeout, transport error, malformed body) is logged and
    ends pagination; the records gathered so far are returned.

    Raises
    ------
    TorAuthenticationError
        No token could be acquired for the first request.
    TorSessionExpiredError
        The provider rejected the token.  The shared token is invalidated
        first, so the next cycle logs in again.
    """
    token = await tokens.acquire()
    records: list[dict[str, Any]] = []
    received = 0
    page_number = 1

    while True:
        payload = {**base_payload, "pageNumber": page_number, "pageSize": page_size}
        try:
            body = await transport.post_json(endpoint, payload, token=token.value, timeout=timeout)
            page = unwrap_records(endpoint, body)
        except TorSessionExpiredError:
            _logger.warning("Token rejected on %s page %d; invalidating", endpoint, page_number)
            tokens.invalidate(token)
            raise
        except (TorTransportError, TorApiError) as exc:
            _logger.warning(
                "Fetching %s page %d failed, keeping %d records: %s",
                endpoint,
                page_number,
                len(records),
                exc,
            )
            break

        records.extend(item for item in page if isinstance(item, dict))
        received += len(page)
        _logger.debug("%s page %d: %d records", endpoint, page_number, len(page))

        if not page or len(page) < page_size:
            break
        total = extract_total(body)
        if total is not None and received >= total:
            break
        page_number += 1

    return records
