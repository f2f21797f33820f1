import pytest

from influencerflow.src.services.discovery import (
    DiscoveryClient,
    DiscoveryError,
    build_query,
    map_follower_count_to_tier,
    transform_creator,
)


@pytest.mark.parametrize(
    "followers,tier",
    [
        (0, "early"),
        (999, "early"),
        (1_000, "nano"),
        (9_999, "nano"),
        (10_000, "micro"),
        (100_000, "lower-mid"),
        (250_000, "upper-mid"),
        (500_000, "macro"),
        (1_000_000, "mega"),
        (4_999_999, "mega"),
        (5_000_000, "celebrity"),
    ],
)
def test_map_follower_count_to_tier(followers, tier):
    assert map_follower_count_to_tier(followers) == tier


def test_build_query_maps_tier_and_joins_lists():
    query = build_query(
        {"tier": ["nano", "micro"], "category": [], "country": "IN", "limit": 10, "bio": None}
    )
    assert query == {"type": "discovery", "followers": "nano,micro", "country": "IN", "limit": "10"}


def test_transform_creator():
    raw = {
        "_id": "abc",
        "connector": "instagram",
        "handle": "priya.styles",
        "full_name": "",
        "followers": 8_400,
        "engagement": 5.2,
        "languages": ["en", "hi"],
        "quality": {"profile_quality_score": 71},
        "handle_link": "https://instagram.com/priya.styles",
    }
    creator = transform_creator(raw)
    assert creator["name"] == "priya.styles"
    assert creator["tier"] == "nano"
    assert creator["engagementRate"] == pytest.approx(0.052)
    assert creator["language"] == "en, hi"
    assert creator["qualityScore"] == 71
    assert creator["profileUrl"] == "https://instagram.com/priya.styles"


@pytest.mark.asyncio
async def test_mocked_search_filters_and_paginates():
    client = DiscoveryClient(mocked=True)
    results = await client.search({"country": "IN", "tier": ["nano"], "category": ["Fashion"], "limit": 10})
    assert results
    assert all(r["country"] == "IN" and r["category"] == "Fashion" for r in results)
    assert all(map_follower_count_to_tier(r["followers"]) == "nano" for r in results)

    page = await client.search({"country": "IN", "tier": ["nano"], "category": ["Fashion"], "limit": 2, "skip": 1})
    assert [r["handle"] for r in page] == [r["handle"] for r in results[1:3]]


class _Resp:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


class _Client:
    def __init__(self, resp):
        self.resp = resp
        self.calls = []

    async def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.resp


@pytest.mark.asyncio
async def test_live_search_sends_mapped_params():
    http = _Client(_Resp(200, {"objects": [{"handle": "a", "followers": 10}]}))
    client = DiscoveryClient(http, api_url="https://search.example/api", api_key="k", mocked=False)  # type: ignore[arg-type]

    results = await client.search({"tier": ["micro"], "connector": "instagram"})

    assert results == [{"handle": "a", "followers": 10}]
    url, kwargs = http.calls[0]
    assert url == "https://search.example/api"
    assert kwargs["params"]["followers"] == "micro"
    assert kwargs["headers"]["Authorization"] == "Bearer k"


@pytest.mark.asyncio
async def test_live_search_http_error_raises():
    http = _Client(_Resp(502, {"message": "bad gateway"}))
    client = DiscoveryClient(http, api_key="k", mocked=False)  # type: ignore[arg-type]
    with pytest.raises(DiscoveryError):
        await client.search({})


@pytest.mark.asyncio
async def test_missing_api_key_raises():
    client = DiscoveryClient(api_key="", mocked=False)
    with pytest.raises(DiscoveryError):
        await client.search({})


def test_transform_creator_carries_email():
    with_email = transform_creator({"handle": "a", "followers": 10, "email": "a@creators.example.com"})
    assert with_email["email"] == "a@creators.example.com"
    assert with_email["hasEmail"] is True

    without = transform_creator({"handle": "b", "followers": 10})
    assert without["email"] is None
    assert without["hasEmail"] is False
