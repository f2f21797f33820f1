"""Tool definitions advertised to the model (chat-completions function format)."""

from __future__ import annotations

from typing import Any

from ..db.models import CREATOR_STATES


CREATOR_TIERS = ["early", "nano", "micro", "lower-mid", "upper-mid", "macro", "mega", "celebrity"]
ENGAGEMENT_BUCKETS = ["vlow", "low", "micro", "mid", "macro", "high", "vhigh"]


def _tool(name: str, description: str, properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required or [],
            },
        },
    }


DISCOVER_CREATORS = _tool(
    "discover_creators",
    "Search and discover Instagram creators by location, follower tier, engagement rate, category, "
    "language, gender or bio keywords. Use this to find creators that match campaign requirements.",
    {
        "country": {
            "type": "string",
            "description": "Country filter. ONLY include this if the user explicitly mentions a country or "
            'location. Use ISO country codes when possible (e.g. "US", "IN", "CA").',
        },
        "tier": {
            "type": "array",
            "items": {"type": "string", "enum": CREATOR_TIERS},
            "description": 'Follower count tiers: "early" (<1k), "nano" (1k-10k), "micro" (10k-100k), '
            '"lower-mid" (100k-250k), "upper-mid" (250k-500k), "macro" (500k-1M), "mega" (1M-5M), '
            '"celebrity" (>5M)',
        },
        "language": {
            "type": "array",
            "items": {"type": "string", "pattern": "^[a-z]{2}$"},
            "description": 'Languages spoken by creators as ISO 639-1 codes (e.g. ["en", "es"])',
        },
        "category": {
            "type": "array",
            "items": {"type": "string"},
            "description": 'Content categories (e.g. ["Fashion", "Travel", "Books"])',
        },
        "er": {
            "type": "array",
            "items": {"type": "string", "enum": ENGAGEMENT_BUCKETS},
            "description": 'Engagement rate buckets: "vlow" (0-1%), "low" (1-3%), "micro" (3-5%), '
            '"mid" (5-7%), "macro" (7-10%), "high" (10-15%), "vhigh" (15%+)',
        },
        "gender": {"type": "string", "enum": ["male", "female", "other"], "description": "Gender filter"},
        "bio": {
            "type": "string",
            "maxLength": 200,
            "description": "Keywords to search in creator bios. Keep it short.",
        },
        "limit": {
            "type": "integer",
            "minimum": 1,
            "maximum": 50,
            "default": 12,
            "description": "Number of creators to return (default 12, max 50). Must be a number.",
        },
        "skip": {
            "type": "integer",
            "minimum": 0,
            "default": 0,
            "description": "Number of results to skip for pagination",
        },
    },
)

CREATE_CAMPAIGN = _tool(
    "create_campaign",
    "Create a new influencer marketing campaign ONLY once the user has provided ALL required details: "
    "name, start date, end date and deliverables. The start date must not be after the end date.",
    {
        "name": {"type": "string", "minLength": 3, "maxLength": 100, "description": "Campaign name"},
        "description": {
            "type": "string",
            "maxLength": 1000,
            "description": "Campaign goals and objectives (optional)",
        },
        "startDate": {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}$", "description": "Start date, YYYY-MM-DD"},
        "endDate": {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}$", "description": "End date, YYYY-MM-DD"},
        "deliverables": {
            "type": "array",
            "items": {"type": "string", "minLength": 1, "maxLength": 100},
            "minItems": 1,
            "maxItems": 20,
            "description": 'Deliverables expected from creators (e.g. ["Instagram post", "Story", "Reel"])',
        },
        "totalBudget": {"type": "number", "minimum": 0, "description": "Total campaign budget (optional)"},
    },
    ["name", "startDate", "endDate", "deliverables"],
)

LIST_CAMPAIGNS = _tool("list_campaigns", "List all campaigns for the current user's company.", {})

ADD_CREATORS_TO_CAMPAIGN = _tool(
    "add_creators_to_campaign",
    "Add discovered creators to a campaign. Only use this after discover_creators has returned "
    "those creators in the current conversation.",
    {
        "campaignId": {"type": "string", "description": "The campaign to add creators to"},
        "creatorHandles": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Handles of previously discovered creators",
        },
        "assignedBudget": {
            "type": "number",
            "minimum": 0,
            "description": "Budget assigned to each creator (optional, defaults to 1000)",
        },
        "notes": {"type": "string", "description": "Notes about adding these creators (optional)"},
    },
    ["campaignId", "creatorHandles"],
)

SMART_CAMPAIGN_STATUS = _tool(
    "smart_campaign_status",
    "Handle campaign status requests when no campaign is specified. Suggests creating a campaign if "
    "none exist, reports status directly for a single campaign, or lists campaigns to choose from.",
    {},
)

GET_CAMPAIGN_CREATOR_DETAILS = _tool(
    "get_campaign_creator_details",
    "Get creators in a campaign with their individual lifecycle state, optionally filtered by state.",
    {
        "campaignId": {"type": "string", "description": "The campaign to inspect"},
        "status": {
            "oneOf": [{"type": "string"}, {"type": "array", "items": {"type": "string"}}],
            "description": "Filter by one state or a list of states. Known states: " + ", ".join(CREATOR_STATES),
        },
        "limit": {
            "type": "number",
            "minimum": 1,
            "maximum": 1000,
            "description": "Maximum number of creators to return (default 1000)",
        },
    },
    ["campaignId"],
)

BULK_OUTREACH = _tool(
    "bulk_outreach",
    "Send personalized outreach emails to eligible creators in a campaign. With confirmTemplate true "
    "(the default) it only previews a sample email and the eligible creators; nothing is sent.",
    {
        "campaignId": {"type": "string", "description": "The campaign to run outreach for"},
        "creatorIds": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Optional campaign creator ids to target. Defaults to all eligible creators.",
        },
        "personalizedMessage": {
            "type": "string",
            "description": "Optional custom message included in every email",
        },
        "confirmTemplate": {
            "type": "boolean",
            "description": "true (default) previews without sending. false sends. ALWAYS preview first.",
        },
    },
    ["campaignId"],
)

DELETE_CAMPAIGN = _tool(
    "delete_campaign",
    "Delete a campaign permanently. Creators linked only to this campaign are removed too; creators "
    "linked to other campaigns remain.",
    {
        "campaignId": {"type": "string", "description": "The campaign to delete"},
        "confirmDelete": {
            "type": "boolean",
            "description": "Must be true, and only after the user explicitly confirmed the deletion",
        },
    },
    ["campaignId", "confirmDelete"],
)


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    DISCOVER_CREATORS,
    CREATE_CAMPAIGN,
    LIST_CAMPAIGNS,
    ADD_CREATORS_TO_CAMPAIGN,
    SMART_CAMPAIGN_STATUS,
    GET_CAMPAIGN_CREATOR_DETAILS,
    BULK_OUTREACH,
    DELETE_CAMPAIGN,
]

TOOL_NAMES = frozenset(t["function"]["name"] for t in TOOL_DEFINITIONS)
