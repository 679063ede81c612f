"""Order- and case-insensitive fingerprints for search requests."""

import hashlib
import json

from altus.contracts.search_v1 import SearchRequest
from altus.orchestrators.search.constants import CACHE_NAMESPACE


def normalize_query(query: str) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return " ".join(query.lower().split())


def canonical_request(req: SearchRequest) -> dict:
    """The parts of a request that change its answer, in canonical form."""
    return {
        "caller": req.caller_id,
        "query": normalize_query(req.query),
        "databases": sorted(set(req.database_ids)),
        "tables": sorted(set(req.tables)),
        "columns": sorted(set(req.columns)),
        "mode": str(req.mode),
        "limit": req.limit,
        "offset": req.offset,
        "analytics": req.include_analytics,
    }


def build_key(req: SearchRequest) -> str:
    """Fingerprint ``req`` as ``search:<sha256 hex>``.

    Requests that differ only in database-id order, query casing or
    surrounding whitespace share a key; any change to mode, limit or offset
    produces a different one.
    """
    if req.query is None:
        raise TypeError("search request has no query")
    payload = json.dumps(canonical_request(req), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{CACHE_NAMESPACE}{digest}"
