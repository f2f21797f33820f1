"""Executors for the chat tools.

Every executor takes the caller's ToolContext plus the parsed arguments and
returns `{"success": True, "data": ...}` or `{"success": False, "error": ...}`.
Argument and ownership problems are raised as ToolError and turned into a
failure result by `execute_tool`.
"""

from __future__ import annotations

import json
import logging
import math
import re
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from .. import config
from ..db.models import CREATOR_STATES, Campaign, CampaignCreator, Company, Creator
from ..db.session import session_scope
from ..engine.schemas import AssistantMessage, ChatMessage, ToolMessage
from ..services.campaigns import CampaignService, campaign_summary, normalize_handle, status_breakdown
from ..services.conversation_store import ConversationStore
from ..services.discovery import DiscoveryClient, DiscoveryError, transform_creator
from ..services.email import (
    EmailSender,
    EmailSendError,
    OutreachGenerationError,
    generate_outreach_email,
    text_to_html,
)
from .registry import CREATOR_TIERS, ENGAGEMENT_BUCKETS

logger = logging.getLogger(__name__)


# Creators in any of these states have already been contacted.
CONTACTED_STATES = frozenset(CREATOR_STATES[1:])

NO_COMPANY_ERROR = "No company found for the current user. Please create a company profile first."
DISCOVERY_FAILED_ERROR = "Failed to discover creators. Please try again with different parameters."

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_LANGUAGE_RE = re.compile(r"^[a-z]{2}$")


class ToolError(Exception):
    pass


class ToolArgumentError(ToolError, ValueError):
    pass


class UnknownTool(ToolError, LookupError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


@dataclass
class ToolContext:
    owner_id: str
    conversation_id: str
    store: ConversationStore
    discovery: DiscoveryClient
    email_sender: EmailSender
    write_outreach_email: Callable[[dict[str, Any]], Awaitable[dict[str, str]]] = generate_outreach_email
    session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = session_scope


def ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def fail(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


# -------------------------
# Argument helpers
# -------------------------


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Decode the model's JSON argument string into a dict."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ToolArgumentError(f"arguments are not valid JSON ({e})") from None
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ToolArgumentError("arguments must be a JSON object")
    return parsed


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ToolArgumentError(f"{name} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ToolArgumentError(f"{name} must be a number, got {value!r}") from None
    else:
        raise ToolArgumentError(f"{name} must be a number")
    if not math.isfinite(number):
        raise ToolArgumentError(f"{name} must be a finite number")
    return number


def coerce_int(
    value: Any,
    name: str,
    *,
    default: Optional[int] = None,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> Optional[int]:
    """Parse an integer argument and clamp it into [minimum, maximum]."""
    if value is None or value == "":
        return default
    result = int(_number(value, name))
    if minimum is not None:
        result = max(minimum, result)
    if maximum is not None:
        result = min(maximum, result)
    return result


def coerce_float(value: Any, name: str, *, default: Optional[float] = None, minimum: float = 0.0) -> Optional[float]:
    if value is None or value == "":
        return default
    number = _number(value, name)
    if number < minimum:
        raise ToolArgumentError(f"{name} must be at least {minimum:g}")
    return number


def coerce_bool(value: Any, name: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ToolArgumentError(f"{name} must be true or false")


def string_list(value: Any, name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ToolArgumentError(f"{name} must be a list of strings")
    return [v.strip() for v in value if v.strip()]


def optional_str(args: dict[str, Any], name: str, *, max_length: Optional[int] = None) -> Optional[str]:
    value = args.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ToolArgumentError(f"{name} must be a string")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ToolArgumentError(f"{name} must be at most {max_length} characters")
    return value or None


def require_str(args: dict[str, Any], name: str) -> str:
    value = optional_str(args, name)
    if not value:
        raise ToolArgumentError(f"{name} is required")
    return value


def parse_date(value: Any, name: str) -> date:
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        raise ToolArgumentError(f"{name} must be a date in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ToolArgumentError(f"{name} is not a valid calendar date") from None


def _enum_list(value: Any, name: str, allowed: list[str]) -> list[str]:
    items = [v.lower() for v in string_list(value, name)]
    invalid = [v for v in items if v not in allowed]
    if invalid:
        raise ToolArgumentError(f"Invalid {name} value(s) {invalid}; allowed: {', '.join(allowed)}")
    return items


# -------------------------
# Shared lookups
# -------------------------


async def _require_company(service: CampaignService, owner_id: str) -> Company:
    company = await service.find_company_by_owner(owner_id)
    if company is None:
        logger.warning("company_not_found owner=%s", owner_id)
        raise ToolError(NO_COMPANY_ERROR)
    return company


async def _require_campaign(service: CampaignService, campaign_id: str, company: Company) -> Campaign:
    campaign = await service.get_campaign(campaign_id, company_id=company.id)
    if campaign is None:
        raise ToolError(f"Campaign with ID {campaign_id} not found")
    return campaign


def latest_discovered_creators(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Creators from the most recent successful discover_creators result in a conversation."""
    tool_names: dict[str, str] = {}
    for message in messages:
        if isinstance(message, AssistantMessage):
            for call in message.tool_calls or []:
                tool_names[call.id] = call.function.name

    for message in reversed(messages):
        if not isinstance(message, ToolMessage) or tool_names.get(message.tool_call_id) != "discover_creators":
            continue
        try:
            result = json.loads(message.content)
        except json.JSONDecodeError:
            continue
        if not isinstance(result, dict) or not result.get("success"):
            continue
        creators = (result.get("data") or {}).get("creators")
        if isinstance(creators, list):
            return [c for c in creators if isinstance(c, dict)]
    return []


def _creator_detail(link: CampaignCreator, creator: Creator) -> dict[str, Any]:
    meta = creator.meta or {}
    return {
        "id": str(link.id),
        "name": creator.name,
        "handle": creator.handle,
        "email": creator.email,
        "tier": creator.tier,
        "followersCount": meta.get("followers"),
        "profileUrl": meta.get("profile_url"),
        "currentState": link.current_state,
        "assignedBudget": link.assigned_budget,
        "notes": link.notes,
        "addedAt": link.created_at.isoformat(),
    }


def negotiation_link(link: CampaignCreator) -> str:
    return f"{config.FRONTEND_URL.rstrip('/')}/agent-call?id={link.id}"


def _email_data(
    *,
    campaign: Campaign,
    company: Company,
    link: CampaignCreator,
    creator: Creator,
    personalized_message: Optional[str],
    recipient_email: str,
) -> dict[str, Any]:
    return {
        "subject": f"Partnership Opportunity with {campaign.name}",
        "recipient": {"name": creator.name, "email": recipient_email},
        "campaignDetails": campaign.description or "",
        "brandName": company.name,
        "campaignName": campaign.name,
        "personalizedMessage": personalized_message or "",
        "negotiationLink": negotiation_link(link),
    }


# -------------------------
# Executors
# -------------------------


async def discover_creators(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    gender = optional_str(args, "gender")
    if gender is not None:
        gender = gender.lower()
        if gender not in ("male", "female", "other"):
            raise ToolArgumentError("gender must be one of: male, female, other")

    languages = [v.lower() for v in string_list(args.get("language"), "language")]
    bad_languages = [v for v in languages if not _LANGUAGE_RE.match(v)]
    if bad_languages:
        raise ToolArgumentError(f"language must be ISO 639-1 codes, got {bad_languages}")

    country = optional_str(args, "country")
    bio = optional_str(args, "bio")

    params: dict[str, Any] = {
        "country": country.upper() if country else None,
        "tier": _enum_list(args.get("tier"), "tier", CREATOR_TIERS),
        "language": languages,
        "category": string_list(args.get("category"), "category"),
        "er": _enum_list(args.get("er"), "er", ENGAGEMENT_BUCKETS),
        "gender": "n/a" if gender == "other" else gender,
        "bio": bio[:200] if bio else None,
        "limit": coerce_int(args.get("limit"), "limit", default=12, minimum=1, maximum=50),
        "skip": coerce_int(args.get("skip"), "skip", default=0, minimum=0),
        # Only Instagram is searchable.
        "connector": "instagram",
    }
    params = {k: v for k, v in params.items() if v is not None and v != [] and v != ""}

    try:
        raw = await ctx.discovery.search(params)
    except DiscoveryError as e:
        logger.warning("discover_creators_failed owner=%s error=%s", ctx.owner_id, e)
        return fail(DISCOVERY_FAILED_ERROR)

    creators = [transform_creator(r) for r in raw]
    logger.info("discover_creators owner=%s found=%s", ctx.owner_id, len(creators))
    return ok({"creators": creators, "total": len(creators), "searchParams": params})


async def create_campaign(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    name = require_str(args, "name")
    if not 3 <= len(name) <= 100:
        raise ToolArgumentError("name must be between 3 and 100 characters")
    description = optional_str(args, "description", max_length=1000)
    start_date = parse_date(args.get("startDate"), "startDate")
    end_date = parse_date(args.get("endDate"), "endDate")
    if start_date > end_date:
        raise ToolArgumentError("startDate must be on or before endDate")

    deliverables = string_list(args.get("deliverables"), "deliverables")
    if not deliverables:
        raise ToolArgumentError("deliverables must contain at least one item")
    if len(deliverables) > 20:
        raise ToolArgumentError("deliverables can contain at most 20 items")
    if any(len(d) > 100 for d in deliverables):
        raise ToolArgumentError("each deliverable must be at most 100 characters")

    total_budget = coerce_float(args.get("totalBudget"), "totalBudget", default=config.DEFAULT_CAMPAIGN_BUDGET)

    async with ctx.session_factory() as session:
        service = CampaignService(session)
        company = await _require_company(service, ctx.owner_id)
        campaign = await service.create_campaign(
            company.id,
            name=name,
            description=description,
            start_date=start_date,
            end_date=end_date,
            deliverables=deliverables,
            total_budget=total_budget,
        )
        summary = campaign_summary(campaign)

    return ok({"campaign": summary, "message": f"Campaign '{name}' created successfully"})


async def list_campaigns(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    async with ctx.session_factory() as session:
        service = CampaignService(session)
        company = await _require_company(service, ctx.owner_id)
        campaigns = [campaign_summary(c) for c in await service.list_campaigns(company.id)]
    return ok({"campaigns": campaigns, "total": len(campaigns)})


async def add_creators_to_campaign(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    campaign_id = require_str(args, "campaignId")
    handles = string_list(args.get("creatorHandles"), "creatorHandles")
    if not handles:
        raise ToolArgumentError("creatorHandles must contain at least one handle")
    budget = coerce_float(args.get("assignedBudget"), "assignedBudget", default=config.DEFAULT_CREATOR_BUDGET)
    notes = optional_str(args, "notes")

    discovered = latest_discovered_creators(ctx.store.get_messages(ctx.conversation_id))
    if not discovered:
        return fail("No discovered creators found in this conversation. Please search for creators first.")
    by_handle = {normalize_handle(str(c["handle"])): c for c in discovered if c.get("handle")}

    added: list[dict[str, Any]] = []
    already: list[str] = []
    errors: list[str] = []
    async with ctx.session_factory() as session:
        service = CampaignService(session)
        company = await _require_company(service, ctx.owner_id)
        campaign = await _require_campaign(service, campaign_id, company)

        for handle in handles:
            key = normalize_handle(handle)
            creator_data = by_handle.get(key)
            if creator_data is None:
                errors.append(f"Creator @{key} was not found in the latest discovery results")
                continue
            creator = await service.upsert_creator(creator_data)
            link, created = await service.add_creator_to_campaign(
                campaign.id, creator, assigned_budget=budget, notes=notes
            )
            if created:
                added.append({"id": str(link.id), "name": creator.name, "handle": creator.handle})
            else:
                already.append(creator.handle)

    if not added and not already:
        return fail("; ".join(errors) or "No creators were added")

    logger.info("creators_added campaign=%s added=%s skipped=%s", campaign_id, len(added), len(errors))
    return ok(
        {
            "campaignId": campaign_id,
            "campaignName": campaign.name,
            "added": added,
            "addedCount": len(added),
            "alreadyInCampaign": already,
            "errors": errors,
        }
    )


async def smart_campaign_status(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    async with ctx.session_factory() as session:
        service = CampaignService(session)
        company = await _require_company(service, ctx.owner_id)
        campaigns = await service.list_campaigns(company.id)

        if not campaigns:
            return ok(
                {
                    "campaignCount": 0,
                    "campaigns": [],
                    "suggestion": "You don't have any campaigns yet. Would you like to create one?",
                }
            )
        if len(campaigns) == 1:
            status = await service.campaign_status(campaigns[0])
            return ok({"campaignCount": 1, **status})

    return ok(
        {
            "campaignCount": len(campaigns),
            "multipleCampaigns": True,
            "campaigns": [
                {"id": str(c.id), "name": c.name, "status": c.state, "startDate": c.start_date.isoformat()}
                for c in campaigns
            ],
            "message": "Which campaign would you like the status for?",
        }
    )


async def get_campaign_creator_details(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    campaign_id = require_str(args, "campaignId")
    states = [s.lower() for s in string_list(args.get("status"), "status")]
    limit = coerce_int(args.get("limit"), "limit", default=1000, minimum=1, maximum=1000)

    async with ctx.session_factory() as session:
        service = CampaignService(session)
        company = await _require_company(service, ctx.owner_id)
        campaign = await _require_campaign(service, campaign_id, company)
        rows = await service.list_campaign_creators(campaign.id, states=states or None, limit=limit)
        total = await service.count_campaign_creators(campaign.id, states=states or None)

    creators = [_creator_detail(link, creator) for link, creator in rows]
    return ok(
        {
            "campaignId": campaign_id,
            "campaignName": campaign.name,
            "creators": creators,
            "returned": len(creators),
            "total": total,
            "statusFilter": states or None,
            "statusBreakdown": status_breakdown([c["currentState"] for c in creators]),
        }
    )


async def bulk_outreach(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    campaign_id = require_str(args, "campaignId")
    creator_ids = set(string_list(args.get("creatorIds"), "creatorIds"))
    personalized_message = optional_str(args, "personalizedMessage")
    preview_only = coerce_bool(args.get("confirmTemplate"), "confirmTemplate", default=True)

    async with ctx.session_factory() as session:
        service = CampaignService(session)
        company = await _require_company(service, ctx.owner_id)
        campaign = await _require_campaign(service, campaign_id, company)

        rows = await service.list_campaign_creators(campaign.id)
        if not rows:
            return fail("No creators found in this campaign")

        eligible = [
            (link, creator)
            for link, creator in rows
            if (not creator_ids or str(link.id) in creator_ids) and link.current_state not in CONTACTED_STATES
        ]
        if not eligible:
            return fail(
                "No eligible creators found. All creators in this campaign have already been contacted "
                "or are in advanced stages."
            )

        if preview_only:
            link, creator = eligible[0]
            email_data = _email_data(
                campaign=campaign,
                company=company,
                link=link,
                creator=creator,
                personalized_message=personalized_message,
                recipient_email="sample@example.com",
            )
            try:
                sample = await ctx.write_outreach_email(email_data)
            except OutreachGenerationError as e:
                return fail(f"Failed to generate the email preview: {e}")
            return ok(
                {
                    "templatePreview": True,
                    "campaignId": campaign_id,
                    "campaignName": campaign.name,
                    "eligibleCreatorsCount": len(eligible),
                    "sampleEmail": sample,
                    "eligibleCreators": [
                        {"id": str(l.id), "name": c.name, "handle": c.handle, "currentState": l.current_state}
                        for l, c in eligible
                    ],
                }
            )

        sent: list[dict[str, Any]] = []
        errors: list[str] = []
        for link, creator in eligible:
            recipient = creator.email or config.OUTREACH_FALLBACK_EMAIL
            if not recipient:
                errors.append(f"No email address on file for {creator.name}")
                continue
            email_data = _email_data(
                campaign=campaign,
                company=company,
                link=link,
                creator=creator,
                personalized_message=personalized_message,
                recipient_email=recipient,
            )
            try:
                email = await ctx.write_outreach_email(email_data)
                await ctx.email_sender.send(
                    to=recipient,
                    subject=email["subject"],
                    text=email["body"],
                    html=text_to_html(email["body"]),
                )
            except (OutreachGenerationError, EmailSendError) as e:
                logger.warning("outreach_failed campaign=%s link=%s error=%s", campaign_id, link.id, e)
                errors.append(f"Failed to send email to {creator.name}: {e}")
                continue

            await service.update_campaign_creator_state(link, "outreached")
            # The email is out; record the state change even if a later send fails.
            await session.commit()
            sent.append(
                {
                    "creatorId": str(link.id),
                    "creatorName": creator.name,
                    "creatorEmail": recipient,
                    "status": "sent",
                    "emailSubject": email["subject"],
                }
            )

    logger.info("bulk_outreach campaign=%s sent=%s failed=%s", campaign_id, len(sent), len(errors))
    return ok(
        {
            "campaignId": campaign_id,
            "campaignName": campaign.name,
            "totalEligible": len(eligible),
            "totalSent": len(sent),
            "totalFailed": len(errors),
            "results": sent,
            "errors": errors,
        }
    )


async def delete_campaign(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    campaign_id = require_str(args, "campaignId")
    if not coerce_bool(args.get("confirmDelete"), "confirmDelete", default=False):
        return fail(
            "Deletion not confirmed. Ask the user to confirm, then call again with confirmDelete set to true."
        )

    async with ctx.session_factory() as session:
        service = CampaignService(session)
        company = await _require_company(service, ctx.owner_id)
        campaign = await service.get_campaign(campaign_id)
        if campaign is None:
            return fail(f"Campaign with ID {campaign_id} not found")
        if campaign.company_id != company.id:
            logger.warning("campaign_delete_forbidden owner=%s campaign=%s", ctx.owner_id, campaign_id)
            return fail("You do not have permission to delete this campaign")
        name = campaign.name
        removed = await service.delete_campaign(campaign)

    return ok(
        {
            "deletedCampaignId": campaign_id,
            "campaignName": name,
            "creatorsRemoved": removed,
            "message": f"Campaign '{name}' was deleted",
        }
    )


ToolHandler = Callable[[ToolContext, dict[str, Any]], Awaitable[dict[str, Any]]]

HANDLERS: dict[str, ToolHandler] = {
    "discover_creators": discover_creators,
    "create_campaign": create_campaign,
    "list_campaigns": list_campaigns,
    "add_creators_to_campaign": add_creators_to_campaign,
    "smart_campaign_status": smart_campaign_status,
    "get_campaign_creator_details": get_campaign_creator_details,
    "bulk_outreach": bulk_outreach,
    "delete_campaign": delete_campaign,
}


def get_handler(name: str) -> ToolHandler:
    handler = HANDLERS.get(name)
    if handler is None:
        raise UnknownTool(name)
    return handler


async def execute_tool(ctx: ToolContext, name: str, args: dict[str, Any]) -> dict[str, Any]:
    try:
        handler = get_handler(name)
        return await handler(ctx, args)
    except ToolError as e:
        logger.info("tool_rejected tool=%s error=%s", name, e)
        return fail(str(e))
