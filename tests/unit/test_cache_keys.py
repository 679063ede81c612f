from __future__ import annotations

import string

import pytest
from hypothesis import given
from hypothesis import strategies as st

from altus.contracts.search_v1 import SearchMode, SearchRequest
from altus.orchestrators.search.cache_keys import build_key, normalize_query

_words = st.text(alphabet=string.ascii_letters, min_size=1, max_size=12)
_db_ids = st.lists(
    st.text(alphabet=string.ascii_lowercase + string.digits, min_size=1, max_size=8),
    min_size=1,
    max_size=6,
    unique=True,
)


def _request(**overrides) -> SearchRequest:
    base = {"query": "mysql performance", "databases": ["db1", "db2"], "userId": "u1"}
    base.update(overrides)
    return SearchRequest.model_validate(base)


@pytest.mark.property
@given(words=st.lists(_words, min_size=1, max_size=5), data=st.data(), ids=_db_ids)
def test_key_ignores_casing_whitespace_and_database_order(words, data, ids):
    query = " ".join(words)
    shuffled = data.draw(st.permutations(ids))
    noisy = "  " + "   ".join(w.upper() for w in words) + "\t"

    a = build_key(_request(query=query, databases=ids))
    b = build_key(_request(query=noisy, databases=list(shuffled)))

    assert a == b


@pytest.mark.property
@given(limit=st.integers(min_value=1, max_value=99), offset=st.integers(min_value=0, max_value=500))
def test_limit_and_offset_change_the_key(limit, offset):
    key = build_key(_request(limit=limit, offset=offset))

    assert key != build_key(_request(limit=limit + 1, offset=offset))
    assert key != build_key(_request(limit=limit, offset=offset + 1))


def test_mode_changes_the_key():
    keys = {build_key(_request(searchMode=mode)) for mode in SearchMode}
    assert len(keys) == len(SearchMode)


def test_key_is_namespaced_sha256_hex():
    key = build_key(_request())
    assert key.startswith("search:")
    digest = key.removeprefix("search:")
    assert len(digest) == 64
    assert all(c in string.hexdigits for c in digest)


def test_callers_do_not_share_keys():
    assert build_key(_request(userId="alice")) != build_key(_request(userId="bob"))


def test_missing_query_is_a_type_error():
    req = _request().model_copy(update={"query": None})
    with pytest.raises(TypeError):
        build_key(req)


def test_normalize_query_collapses_whitespace():
    assert normalize_query("  MySQL \n  Performance ") == "mysql performance"
