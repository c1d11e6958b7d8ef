"""
Market Brain — Paginated Historical Fetcher
────────────────────────────────────────────
Walks a provider backward in time for providers that only hand out
bounded pages (Binance klines, GeckoTerminal OHLCV).

fetch_page(cursor, limit) returns rows that each carry a timestamp;
the cursor for the next page is derived from the OLDEST row of the
previous page. The loop stops when:

  a) enough rows are collected
  b) a page comes back shorter than page_size (provider exhausted)
  c) the cursor does not move strictly older (misbehaving provider)
  d) MAX_PAGES pages have been requested

Strictly sequential: every cursor depends on the previous page.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

log = logging.getLogger("mb.engine.pagination")

MAX_PAGES = 20

FetchPage = Callable[[Optional[int], int], Awaitable[Sequence[Any]]]


async def paginate_backward(
    fetch_page: FetchPage,
    target: int,
    page_size: int,
    start_cursor: Optional[int] = None,
    timestamp_of: Callable[[Any], int] = lambda row: row[0],
    next_cursor: Callable[[int], int] = lambda oldest: oldest,
    max_pages: int = MAX_PAGES,
) -> List[Any]:
    """
    Returns every row fetched, newest page first as received. The caller
    normalises order and duplicates (normalize_series does both).

    timestamp_of(row) → the row's timestamp
    next_cursor(oldest) → cursor for the next page, e.g. oldest - 1 for
                          Binance endTime, oldest for GeckoTerminal
                          before_timestamp
    """
    rows: List[Any] = []
    cursor = start_cursor
    pages  = 0

    while len(rows) < target and pages < max_pages:
        limit = min(page_size, target - len(rows))
        batch = list(await fetch_page(cursor, limit))
        pages += 1
        if not batch:
            break
        rows.extend(batch)
        if len(batch) < limit:
            break

        oldest = min(timestamp_of(r) for r in batch)
        nxt    = next_cursor(oldest)
        if cursor is not None and nxt >= cursor:
            log.warning(f"Cursor stalled at {cursor}: stopping after {pages} page(s)")
            break
        cursor = nxt

    if pages >= max_pages and len(rows) < target:
        log.info(f"Page cap {max_pages} reached with {len(rows)}/{target} rows")
    return rows
