"""Creator discovery search API client (Instagram only)."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .. import config
from ..utils.redact import redact_secrets

logger = logging.getLogger(__name__)


class DiscoveryError(RuntimeError):
    pass


# (tier, inclusive lower bound); anything at or above the last bound is "celebrity".
_TIER_FLOORS: list[tuple[str, int]] = [
    ("celebrity", 5_000_000),
    ("mega", 1_000_000),
    ("macro", 500_000),
    ("upper-mid", 250_000),
    ("lower-mid", 100_000),
    ("micro", 10_000),
    ("nano", 1_000),
    ("early", 0),
]

# Our parameter name -> search API parameter name.
_PARAM_NAMES = {"tier": "followers"}


def map_follower_count_to_tier(followers: Optional[int | float]) -> str:
    count = followers or 0
    for tier, floor in _TIER_FLOORS:
        if count >= floor:
            return tier
    return "early"


def build_query(params: dict[str, Any]) -> dict[str, str]:
    """Flatten search params into query-string values.

    Lists are comma-joined, empty lists and None are dropped.
    """
    query: dict[str, str] = {"type": "discovery"}
    for key, value in params.items():
        if value is None:
            continue
        name = _PARAM_NAMES.get(key, key)
        if isinstance(value, (list, tuple)):
            if not value:
                continue
            query[name] = ",".join(str(v) for v in value)
        elif isinstance(value, bool):
            query[name] = "true" if value else "false"
        else:
            query[name] = str(value)
    return query


def transform_creator(raw: dict[str, Any]) -> dict[str, Any]:
    followers = raw.get("followers") or 0
    engagement = raw.get("engagement")
    quality = raw.get("quality") or {}
    languages = raw.get("languages") or []
    return {
        "id": raw.get("_id"),
        "name": raw.get("full_name") or raw.get("handle"),
        "handle": raw.get("handle"),
        "platform": raw.get("connector") or "instagram",
        "category": raw.get("category"),
        "followersCount": followers,
        "tier": map_follower_count_to_tier(followers),
        "engagementRate": engagement / 100 if isinstance(engagement, (int, float)) else None,
        "location": raw.get("location"),
        "country": raw.get("country"),
        "gender": raw.get("gender"),
        "language": ", ".join(languages) if languages else None,
        "profileImageUrl": raw.get("image_link"),
        "profileUrl": raw.get("handle_link"),
        "interests": raw.get("interests") or [],
        "qualityScore": quality.get("profile_quality_score") if isinstance(quality, dict) else None,
        "email": raw.get("email") or None,
        "hasEmail": bool(raw.get("hasEmail") or raw.get("email")),
    }


class DiscoveryClient:
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        api_url: str | None = None,
        api_key: str | None = None,
        mocked: bool | None = None,
        timeout_seconds: float | None = None,
    ):
        self._client = client
        self._api_url = api_url or config.DISCOVERY_API_URL
        self._api_key = api_key if api_key is not None else config.DISCOVERY_API_KEY
        self._mocked = config.DISCOVERY_MOCKED if mocked is None else mocked
        self._timeout = timeout_seconds if timeout_seconds is not None else config.DISCOVERY_TIMEOUT_SECONDS

    @property
    def mocked(self) -> bool:
        return self._mocked

    async def search(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        """Return raw creator objects for `params`. Raises DiscoveryError on any failure."""
        if self._mocked:
            return search_mock_creators(params)

        if not self._api_key:
            logger.error("discovery_api_key_missing")
            raise DiscoveryError("Creator discovery API key is not configured")

        query = build_query(params)
        logger.info("discovery_search params=%s", query)
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            resp = await client.get(
                self._api_url,
                params=query,
                headers={"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise DiscoveryError(redact_secrets(f"Discovery request failed: {e!r}")) from e
        finally:
            if self._client is None:
                await client.aclose()

        if resp.status_code >= 400:
            logger.warning("discovery_http_error status=%s body=%s", resp.status_code, resp.text[:300])
            raise DiscoveryError(f"Discovery API error: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise DiscoveryError("Discovery API returned invalid JSON") from e

        objects = data.get("objects") if isinstance(data, dict) else None
        if not isinstance(objects, list):
            raise DiscoveryError("Discovery API response has no objects list")
        logger.info("discovery_search_done count=%s", len(objects))
        return [o for o in objects if isinstance(o, dict)]


# -------------------------
# Local fixtures (DISCOVERY_MOCKED=true)
# -------------------------


def _mock(
    idx: int,
    handle: str,
    full_name: str,
    followers: int,
    engagement: float,
    category: str,
    country: str,
    location: str,
    gender: str,
    languages: list[str],
    bio: str,
) -> dict[str, Any]:
    return {
        "_id": f"mock_{idx:03d}",
        "connector": "instagram",
        "handle": handle,
        "full_name": full_name,
        "image_link": f"https://images.example.com/{handle}.jpg",
        "handle_link": f"https://instagram.com/{handle}",
        "followers": followers,
        "engagement": engagement,
        "category": category,
        "country": country,
        "location": location,
        "gender": gender,
        "languages": languages,
        "interests": [category.lower()],
        "quality": {"profile_quality_score": 60 + idx % 35, "profile_quality_rating": 3},
        "email": f"{handle.replace('.', '_')}@creators.example.com" if idx % 2 else None,
        "hasEmail": bool(idx % 2),
        "bio": bio,
    }


MOCK_CREATORS: list[dict[str, Any]] = [
    _mock(1, "priya.styles", "Priya Sharma", 8_400, 5.2, "Fashion", "IN", "Mumbai", "female", ["en", "hi"], "everyday ethnic fashion"),
    _mock(2, "delhi_drapes", "Ananya Kapoor", 4_100, 6.8, "Fashion", "IN", "Delhi", "female", ["hi"], "sarees and drapes"),
    _mock(3, "rohan.threads", "Rohan Mehta", 9_950, 3.9, "Fashion", "IN", "Bengaluru", "male", ["en"], "menswear on a budget"),
    _mock(4, "kolkata.kurta", "Sayan Bose", 2_300, 7.4, "Fashion", "IN", "Kolkata", "male", ["bn", "en"], "handloom kurtas"),
    _mock(5, "chennai.chic", "Meera Iyer", 6_700, 4.6, "Fashion", "IN", "Chennai", "female", ["ta", "en"], "silk and street style"),
    _mock(6, "wanderlust.arjun", "Arjun Nair", 54_000, 2.8, "Travel", "IN", "Kochi", "male", ["en", "ml"], "backpacking india"),
    _mock(7, "spice.route", "Kavya Rao", 310_000, 1.9, "Food", "IN", "Hyderabad", "female", ["en", "te"], "home cooking"),
    _mock(8, "nyc.fits", "Jordan Lee", 7_800, 5.9, "Fashion", "US", "New York", "n/a", ["en"], "thrifted streetwear"),
    _mock(9, "la.lookbook", "Maya Chen", 145_000, 2.2, "Fashion", "US", "Los Angeles", "female", ["en"], "capsule wardrobes"),
    _mock(10, "bookish.ben", "Ben Carter", 850, 9.1, "Books", "GB", "London", "male", ["en"], "weekly book reviews"),
    _mock(11, "fit.with.fatima", "Fatima Khan", 1_200_000, 1.4, "Fitness", "AE", "Dubai", "female", ["en", "ar"], "home workouts"),
    _mock(12, "paris.petite", "Camille Martin", 23_000, 3.3, "Fashion", "FR", "Paris", "female", ["fr", "en"], "petite styling"),
]


def search_mock_creators(params: dict[str, Any]) -> list[dict[str, Any]]:
    country = (params.get("country") or "").upper()
    tiers = set(params.get("tier") or [])
    categories = {c.lower() for c in params.get("category") or []}
    languages = set(params.get("language") or [])
    gender = params.get("gender")
    bio = (params.get("bio") or "").lower()

    matches = []
    for creator in MOCK_CREATORS:
        if country and creator["country"] != country:
            continue
        if tiers and map_follower_count_to_tier(creator["followers"]) not in tiers:
            continue
        if categories and creator["category"].lower() not in categories:
            continue
        if languages and not languages.intersection(creator["languages"]):
            continue
        if gender and creator["gender"] != gender:
            continue
        if bio and bio not in creator["bio"]:
            continue
        matches.append(creator)

    skip = int(params.get("skip") or 0)
    limit = int(params.get("limit") or 12)
    return [dict(c) for c in matches[skip : skip + limit]]
