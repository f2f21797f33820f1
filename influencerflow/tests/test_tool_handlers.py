import json
import uuid
from datetime import date

import pytest

from influencerflow.src import config
from influencerflow.src.db.models import CREATOR_STATES, Campaign, CampaignCreator, Company, Creator
from influencerflow.src.db.session import session_scope
from influencerflow.src.services.campaigns import CampaignService, status_breakdown
from influencerflow.src.tools import handlers
from influencerflow.src.tools.registry import TOOL_DEFINITIONS, TOOL_NAMES
from influencerflow.src.tools.handlers import (
    NO_COMPANY_ERROR,
    ToolArgumentError,
    coerce_int,
    execute_tool,
    parse_arguments,
)


def _creator(handle, *, email=None, name=None):
    return {"id": f"ext_{handle}", "handle": handle, "name": name or handle.title(), "email": email, "tier": "nano"}


async def _seed_campaign(session, company, creators=()):
    service = CampaignService(session)
    campaign = await service.create_campaign(
        company.id,
        name="Summer Drop",
        description="Linen summer line",
        start_date=date(2025, 7, 1),
        end_date=date(2025, 8, 1),
        deliverables=["Reel"],
        total_budget=5000,
    )
    links = []
    for data in creators:
        creator = await service.upsert_creator(data)
        link, _ = await service.add_creator_to_campaign(campaign.id, creator, assigned_budget=500)
        links.append(link)
    await session.commit()
    return campaign, links


async def _states(campaign_id):
    async with session_scope() as s:
        rows = await CampaignService(s).list_campaign_creators(campaign_id)
    return {creator.handle: link.current_state for link, creator in rows}


def _record_discovery(tool_ctx, result, call_id="call_discover"):
    tool_ctx.store.add_message(
        tool_ctx.conversation_id,
        "assistant",
        "",
        tool_calls=[{"id": call_id, "type": "function", "function": {"name": "discover_creators", "arguments": "{}"}}],
    )
    tool_ctx.store.add_message(tool_ctx.conversation_id, "tool", json.dumps(result), tool_call_id=call_id)


# -------------------------
# Argument helpers
# -------------------------


def test_every_advertised_tool_has_a_handler():
    advertised = [t["function"]["name"] for t in TOOL_DEFINITIONS]
    assert len(advertised) == len(set(advertised)) == 8
    assert set(advertised) == set(handlers.HANDLERS) == TOOL_NAMES
    for tool in TOOL_DEFINITIONS:
        assert tool["type"] == "function"
        assert tool["function"]["parameters"]["type"] == "object"


def test_lifecycle_states_have_one_source():
    assert CREATOR_STATES[0] == "discovered"
    assert handlers.CONTACTED_STATES == set(CREATOR_STATES) - {"discovered"}
    assert [s["state"] for s in status_breakdown([])["stages"]] == list(CREATOR_STATES)
    details = next(t for t in TOOL_DEFINITIONS if t["function"]["name"] == "get_campaign_creator_details")
    assert "payment_processed" in json.dumps(details)


def test_coerce_int_clamps_and_rejects_non_numeric():
    assert coerce_int(500, "limit", minimum=1, maximum=50) == 50
    assert coerce_int(0, "limit", minimum=1, maximum=50) == 1
    assert coerce_int("7", "limit", minimum=1, maximum=50) == 7
    assert coerce_int(None, "limit", default=12) == 12
    with pytest.raises(ToolArgumentError):
        coerce_int("lots", "limit")
    with pytest.raises(ToolArgumentError):
        coerce_int(True, "limit")


def test_parse_arguments_rejects_malformed_json():
    assert parse_arguments("") == {}
    assert parse_arguments('{"a": 1}') == {"a": 1}
    with pytest.raises(ToolArgumentError):
        parse_arguments("{not json")
    with pytest.raises(ToolArgumentError):
        parse_arguments("[1, 2]")


# -------------------------
# discover_creators
# -------------------------


@pytest.mark.asyncio
async def test_discover_clamps_limit_and_forces_instagram(tool_ctx):
    result = await execute_tool(
        tool_ctx, "discover_creators", {"country": "in", "tier": ["nano"], "category": ["Fashion"], "limit": 500}
    )

    assert result["success"] is True
    params = result["data"]["searchParams"]
    assert params["limit"] == 50
    assert params["connector"] == "instagram"
    assert params["country"] == "IN"
    creators = result["data"]["creators"]
    assert result["data"]["total"] == len(creators) > 0
    assert {c["tier"] for c in creators} == {"nano"}


@pytest.mark.asyncio
async def test_discover_rejects_non_numeric_limit(tool_ctx):
    result = await execute_tool(tool_ctx, "discover_creators", {"limit": "a dozen"})
    assert result["success"] is False
    assert "limit" in result["error"]


@pytest.mark.asyncio
async def test_discover_rejects_unknown_tier(tool_ctx):
    result = await execute_tool(tool_ctx, "discover_creators", {"tier": ["huge"]})
    assert result["success"] is False
    assert "tier" in result["error"]


@pytest.mark.asyncio
async def test_discover_upstream_failure_is_structured(tool_ctx):
    class _Broken:
        async def search(self, params):
            raise handlers.DiscoveryError("boom")

    tool_ctx.discovery = _Broken()
    result = await execute_tool(tool_ctx, "discover_creators", {})
    assert result == {"success": False, "error": handlers.DISCOVERY_FAILED_ERROR}


@pytest.mark.asyncio
async def test_unknown_tool_is_a_failure_result(tool_ctx):
    result = await execute_tool(tool_ctx, "launch_rocket", {})
    assert result == {"success": False, "error": "Unknown tool: launch_rocket"}


# -------------------------
# campaigns
# -------------------------


@pytest.mark.asyncio
async def test_create_then_list_campaigns(tool_ctx, company):
    created = await execute_tool(
        tool_ctx,
        "create_campaign",
        {"name": "Diwali Edit", "startDate": "2025-10-01", "endDate": "2025-11-15", "deliverables": ["Reel", "Story"]},
    )
    assert created["success"] is True
    campaign = created["data"]["campaign"]
    assert campaign["totalBudget"] == 10000
    assert campaign["status"] == "draft"

    listed = await execute_tool(tool_ctx, "list_campaigns", {})
    assert listed["success"] is True
    assert [c["name"] for c in listed["data"]["campaigns"]] == ["Diwali Edit"]


@pytest.mark.asyncio
async def test_timestamps_are_timezone_aware(session, company):
    for table in (Company, Campaign, Creator, CampaignCreator):
        for column in ("created_at", "updated_at"):
            if column in table.__table__.c:
                assert table.__table__.c[column].type.timezone is True, f"{table.__name__}.{column}"

    campaign, links = await _seed_campaign(session, company, [_creator("a.one")])
    assert company.created_at.tzinfo is not None
    assert campaign.created_at.tzinfo is not None
    assert links[0].updated_at.tzinfo is not None

    await CampaignService(session).update_campaign_creator_state(links[0], "outreached")
    await session.commit()
    assert links[0].updated_at.tzinfo is not None


@pytest.mark.asyncio
async def test_create_campaign_validates_dates_and_deliverables(tool_ctx, company):
    bad_dates = await execute_tool(
        tool_ctx,
        "create_campaign",
        {"name": "Backwards", "startDate": "2025-12-01", "endDate": "2025-11-01", "deliverables": ["Reel"]},
    )
    assert bad_dates["success"] is False
    assert "startDate" in bad_dates["error"]

    no_deliverables = await execute_tool(
        tool_ctx,
        "create_campaign",
        {"name": "Empty", "startDate": "2025-10-01", "endDate": "2025-11-01", "deliverables": []},
    )
    assert no_deliverables["success"] is False


@pytest.mark.asyncio
async def test_campaign_tools_require_company(tool_ctx, engine):
    result = await execute_tool(tool_ctx, "list_campaigns", {})
    assert result == {"success": False, "error": NO_COMPANY_ERROR}


@pytest.mark.asyncio
async def test_smart_status_none_one_many(tool_ctx, session, company):
    none = await execute_tool(tool_ctx, "smart_campaign_status", {})
    assert none["data"]["campaignCount"] == 0
    assert "create" in none["data"]["suggestion"]

    await _seed_campaign(session, company, [_creator("a.one"), _creator("b.two")])
    one = await execute_tool(tool_ctx, "smart_campaign_status", {})
    assert one["data"]["campaignCount"] == 1
    breakdown = one["data"]["creatorStatus"]
    assert breakdown["total"] == 2
    discovered = next(s for s in breakdown["stages"] if s["state"] == "discovered")
    assert discovered == {"state": "discovered", "count": 2, "percentage": 100.0}

    await _seed_campaign(session, company)
    many = await execute_tool(tool_ctx, "smart_campaign_status", {})
    assert many["data"]["multipleCampaigns"] is True
    assert len(many["data"]["campaigns"]) == 2


@pytest.mark.asyncio
async def test_creator_details_filters_by_status(tool_ctx, session, company):
    campaign, links = await _seed_campaign(session, company, [_creator("a.one"), _creator("b.two")])
    await CampaignService(session).update_campaign_creator_state(links[0], "negotiating")
    await session.commit()

    result = await execute_tool(
        tool_ctx, "get_campaign_creator_details", {"campaignId": str(campaign.id), "status": "negotiating"}
    )
    assert result["success"] is True
    assert [c["handle"] for c in result["data"]["creators"]] == ["a.one"]
    assert result["data"]["total"] == 1

    unknown = await execute_tool(tool_ctx, "get_campaign_creator_details", {"campaignId": "not-a-uuid"})
    assert unknown["success"] is False


# -------------------------
# add_creators_to_campaign
# -------------------------


@pytest.mark.asyncio
async def test_add_creators_requires_prior_discovery(tool_ctx, session, company):
    campaign, _ = await _seed_campaign(session, company)
    result = await execute_tool(
        tool_ctx, "add_creators_to_campaign", {"campaignId": str(campaign.id), "creatorHandles": ["x"]}
    )
    assert result["success"] is False
    assert "search for creators first" in result["error"]


@pytest.mark.asyncio
async def test_add_creators_from_latest_discovery(tool_ctx, session, company):
    campaign, _ = await _seed_campaign(session, company)
    discovery = await execute_tool(
        tool_ctx, "discover_creators", {"country": "IN", "tier": ["nano"], "category": ["Fashion"]}
    )
    _record_discovery(tool_ctx, discovery)

    args = {"campaignId": str(campaign.id), "creatorHandles": ["@Priya.Styles", "nobody.here"]}
    first = await execute_tool(tool_ctx, "add_creators_to_campaign", args)
    assert first["success"] is True
    assert first["data"]["addedCount"] == 1
    assert first["data"]["added"][0]["handle"] == "priya.styles"
    assert len(first["data"]["errors"]) == 1

    again = await execute_tool(tool_ctx, "add_creators_to_campaign", args)
    assert again["data"]["addedCount"] == 0
    assert again["data"]["alreadyInCampaign"] == ["priya.styles"]
    assert await _states(campaign.id) == {"priya.styles": "discovered"}


# -------------------------
# bulk_outreach
# -------------------------


@pytest.mark.asyncio
async def test_bulk_outreach_preview_sends_nothing(tool_ctx, session, company, email_sender, outreach_writer):
    campaign, links = await _seed_campaign(
        session, company, [_creator("a.one", email="a@example.com"), _creator("b.two", email="b@example.com")]
    )

    result = await execute_tool(tool_ctx, "bulk_outreach", {"campaignId": str(campaign.id)})

    assert result["success"] is True
    data = result["data"]
    assert data["templatePreview"] is True
    assert data["eligibleCreatorsCount"] == 2
    assert data["sampleEmail"]["subject"]
    assert email_sender.sent == []
    assert outreach_writer.calls[0]["recipient"]["email"] == "sample@example.com"
    assert outreach_writer.calls[0]["negotiationLink"].endswith(f"/agent-call?id={links[0].id}")
    assert outreach_writer.calls[0]["brandName"] == "Acme Apparel"
    assert set((await _states(campaign.id)).values()) == {"discovered"}


@pytest.mark.asyncio
async def test_bulk_outreach_send_moves_creators_to_outreached(tool_ctx, session, company, email_sender, monkeypatch):
    monkeypatch.setattr(config, "OUTREACH_FALLBACK_EMAIL", "")
    campaign, _ = await _seed_campaign(
        session,
        company,
        [_creator("a.one", email="a@example.com"), _creator("b.two"), _creator("c.three", email="c@example.com")],
    )

    result = await execute_tool(tool_ctx, "bulk_outreach", {"campaignId": str(campaign.id), "confirmTemplate": False})

    assert result["success"] is True
    assert result["data"]["totalSent"] == 2
    assert result["data"]["totalFailed"] == 1
    assert [m["to"] for m in email_sender.sent] == ["a@example.com", "c@example.com"]
    assert "<br>" in email_sender.sent[0]["html"]
    assert await _states(campaign.id) == {"a.one": "outreached", "b.two": "discovered", "c.three": "outreached"}

    # Already-contacted creators are not eligible again.
    again = await execute_tool(
        tool_ctx, "bulk_outreach", {"campaignId": str(campaign.id), "confirmTemplate": "false"}
    )
    assert again["data"]["totalSent"] == 0
    assert len(email_sender.sent) == 2


INDIA_FASHION_NANO = ["priya.styles", "delhi_drapes", "rohan.threads", "kolkata.kurta", "chennai.chic"]


async def _campaign_from_chat_discovery(tool_ctx):
    discovered = await execute_tool(
        tool_ctx, "discover_creators", {"country": "IN", "tier": ["nano"], "category": ["Fashion"]}
    )
    assert discovered["success"] is True
    _record_discovery(tool_ctx, discovered)

    created = await execute_tool(
        tool_ctx,
        "create_campaign",
        {"name": "Festive Looks", "startDate": "2025-10-01", "endDate": "2025-11-01", "deliverables": ["Reel"]},
    )
    campaign_id = created["data"]["campaign"]["id"]

    added = await execute_tool(
        tool_ctx, "add_creators_to_campaign", {"campaignId": campaign_id, "creatorHandles": INDIA_FASHION_NANO}
    )
    assert added["data"]["addedCount"] == 5
    return campaign_id


@pytest.mark.asyncio
async def test_outreach_after_chat_discovery_uses_discovered_emails(tool_ctx, company, email_sender, monkeypatch):
    monkeypatch.setattr(config, "OUTREACH_FALLBACK_EMAIL", "")
    campaign_id = await _campaign_from_chat_discovery(tool_ctx)

    result = await execute_tool(tool_ctx, "bulk_outreach", {"campaignId": campaign_id, "confirmTemplate": False})

    assert result["success"] is True
    assert result["data"]["totalSent"] == 3
    assert {m["to"] for m in email_sender.sent} == {
        "priya_styles@creators.example.com",
        "rohan_threads@creators.example.com",
        "chennai_chic@creators.example.com",
    }
    assert sorted(result["data"]["errors"]) == [
        "No email address on file for Ananya Kapoor",
        "No email address on file for Sayan Bose",
    ]


@pytest.mark.asyncio
async def test_outreach_falls_back_to_configured_address(tool_ctx, company, email_sender, monkeypatch):
    monkeypatch.setattr(config, "OUTREACH_FALLBACK_EMAIL", "partnerships@brand.example.com")
    campaign_id = await _campaign_from_chat_discovery(tool_ctx)

    result = await execute_tool(tool_ctx, "bulk_outreach", {"campaignId": campaign_id, "confirmTemplate": False})

    assert result["data"]["totalSent"] == 5
    assert result["data"]["errors"] == []
    recipients = [m["to"] for m in email_sender.sent]
    assert recipients.count("partnerships@brand.example.com") == 2
    assert set((await _states(uuid.UUID(campaign_id))).values()) == {"outreached"}


@pytest.mark.asyncio
async def test_bulk_outreach_with_no_eligible_creators(tool_ctx, session, company):
    campaign, links = await _seed_campaign(session, company, [_creator("a.one", email="a@example.com")])
    await CampaignService(session).update_campaign_creator_state(links[0], "contract_sent")
    await session.commit()

    result = await execute_tool(tool_ctx, "bulk_outreach", {"campaignId": str(campaign.id)})
    assert result["success"] is False
    assert "No eligible creators" in result["error"]


# -------------------------
# delete_campaign
# -------------------------


@pytest.mark.asyncio
async def test_delete_requires_confirmation(tool_ctx, session, company):
    campaign, _ = await _seed_campaign(session, company, [_creator("a.one")])

    refused = await execute_tool(tool_ctx, "delete_campaign", {"campaignId": str(campaign.id)})
    assert refused["success"] is False
    assert "confirm" in refused["error"]

    async with session_scope() as s:
        assert await CampaignService(s).get_campaign(campaign.id) is not None


@pytest.mark.asyncio
async def test_delete_keeps_creators_shared_with_other_campaigns(tool_ctx, session, company):
    shared = _creator("shared.one")
    doomed, _ = await _seed_campaign(session, company, [shared, _creator("only.here")])
    keeper, _ = await _seed_campaign(session, company, [shared])

    result = await execute_tool(
        tool_ctx, "delete_campaign", {"campaignId": str(doomed.id), "confirmDelete": True}
    )

    assert result["success"] is True
    assert result["data"]["creatorsRemoved"] == 1
    async with session_scope() as s:
        service = CampaignService(s)
        assert await service.get_campaign(doomed.id) is None
        assert await service.get_campaign(keeper.id) is not None
    assert await _states(keeper.id) == {"shared.one": "discovered"}


@pytest.mark.asyncio
async def test_delete_rejects_other_companies_campaign(tool_ctx, session, company):
    service = CampaignService(session)
    other = await service.create_company("someone-else", "Other Co")
    await session.commit()
    campaign, _ = await _seed_campaign(session, other)

    result = await execute_tool(tool_ctx, "delete_campaign", {"campaignId": str(campaign.id), "confirmDelete": True})
    assert result["success"] is False
    assert "permission" in result["error"]
