"""Company, campaign and campaign-creator persistence used by the chat tools."""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import date
from typing import Any, Optional, Sequence

from sqlalchemy import func
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..db.models import CREATOR_STATES, Campaign, CampaignCreator, Company, Creator, utcnow

logger = logging.getLogger(__name__)


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def normalize_handle(handle: str) -> str:
    return handle.strip().lstrip("@").lower()


def status_breakdown(states: Sequence[str]) -> dict[str, Any]:
    """Counts and percentages per lifecycle stage, plus any unknown states seen."""
    counts = Counter(states)
    total = len(states)
    stages = list(CREATOR_STATES) + sorted(s for s in counts if s not in CREATOR_STATES)
    return {
        "total": total,
        "stages": [
            {
                "state": stage,
                "count": counts.get(stage, 0),
                "percentage": round(100 * counts.get(stage, 0) / total, 1) if total else 0.0,
            }
            for stage in stages
        ],
    }


class CampaignService:
    def __init__(self, session: AsyncSession):
        self._session = session

    # -------------------------
    # Companies
    # -------------------------

    async def find_company_by_owner(self, owner_user_id: str) -> Optional[Company]:
        return (await self._session.exec(select(Company).where(Company.owner_user_id == owner_user_id))).first()

    async def create_company(self, owner_user_id: str, name: str) -> Company:
        company = Company(owner_user_id=owner_user_id, name=name)
        self._session.add(company)
        await self._session.flush()
        return company

    # -------------------------
    # Campaigns
    # -------------------------

    async def create_campaign(
        self,
        company_id: uuid.UUID,
        *,
        name: str,
        start_date: date,
        end_date: date,
        deliverables: list[str],
        total_budget: float,
        description: Optional[str] = None,
    ) -> Campaign:
        campaign = Campaign(
            company_id=company_id,
            name=name,
            description=description,
            start_date=start_date,
            end_date=end_date,
            state="draft",
            meta={"deliverables": list(deliverables), "total_budget": total_budget},
        )
        self._session.add(campaign)
        await self._session.flush()
        logger.info("campaign_created id=%s company=%s", campaign.id, company_id)
        return campaign

    async def list_campaigns(self, company_id: uuid.UUID) -> list[Campaign]:
        stmt = select(Campaign).where(Campaign.company_id == company_id).order_by(col(Campaign.created_at).desc())
        return list((await self._session.exec(stmt)).all())

    async def get_campaign(self, campaign_id: Any, *, company_id: uuid.UUID | None = None) -> Optional[Campaign]:
        """Fetch a campaign; when `company_id` is given, campaigns of other companies are invisible."""
        campaign_uuid = parse_uuid(campaign_id)
        if campaign_uuid is None:
            return None
        stmt = select(Campaign).where(Campaign.id == campaign_uuid)
        if company_id is not None:
            stmt = stmt.where(Campaign.company_id == company_id)
        return (await self._session.exec(stmt)).first()

    async def delete_campaign(self, campaign: Campaign) -> int:
        """Delete a campaign and its creator links.

        Creators linked to no other campaign are deleted too. Returns how many were.
        """
        links = (
            await self._session.exec(select(CampaignCreator).where(CampaignCreator.campaign_id == campaign.id))
        ).all()
        creator_ids = {link.creator_id for link in links}

        shared: set[uuid.UUID] = set()
        if creator_ids:
            stmt = (
                select(CampaignCreator.creator_id)
                .where(col(CampaignCreator.creator_id).in_(creator_ids))
                .where(CampaignCreator.campaign_id != campaign.id)
            )
            shared = set((await self._session.exec(stmt)).all())

        for link in links:
            await self._session.delete(link)
        await self._session.flush()

        removed = 0
        for creator_id in creator_ids - shared:
            creator = await self._session.get(Creator, creator_id)
            if creator is not None:
                await self._session.delete(creator)
                removed += 1

        await self._session.delete(campaign)
        await self._session.flush()
        logger.info("campaign_deleted id=%s links=%s creators_removed=%s", campaign.id, len(links), removed)
        return removed

    # -------------------------
    # Creators in campaigns
    # -------------------------

    async def _find_creator(self, *, external_id: Optional[str], handle: str, platform: str) -> Optional[Creator]:
        if external_id:
            stmt = select(Creator).where(Creator.external_id == external_id).where(Creator.platform == platform)
            found = (await self._session.exec(stmt)).first()
            if found is not None:
                return found
        stmt = (
            select(Creator)
            .where(func.lower(Creator.handle) == normalize_handle(handle))
            .where(Creator.platform == platform)
        )
        return (await self._session.exec(stmt)).first()

    async def upsert_creator(self, discovered: dict[str, Any]) -> Creator:
        """Store a creator from a discovery result, reusing an existing row when one matches."""
        handle = normalize_handle(str(discovered.get("handle") or ""))
        if not handle:
            raise ValueError("creator handle is required")
        platform = str(discovered.get("platform") or "instagram")
        external_id = discovered.get("id")
        external_id = str(external_id) if external_id else None

        creator = await self._find_creator(external_id=external_id, handle=handle, platform=platform)
        if creator is not None:
            if not creator.email and discovered.get("email"):
                creator.email = str(discovered["email"])
                self._session.add(creator)
            return creator

        creator = Creator(
            external_id=external_id,
            handle=handle,
            name=str(discovered.get("name") or handle),
            platform=platform,
            email=discovered.get("email"),
            gender=discovered.get("gender"),
            location=discovered.get("location"),
            country=discovered.get("country"),
            tier=discovered.get("tier"),
            engagement_rate=discovered.get("engagementRate"),
            language=discovered.get("language"),
            category=discovered.get("category"),
            meta={
                "followers": discovered.get("followersCount"),
                "profile_url": discovered.get("profileUrl"),
                "profile_image_url": discovered.get("profileImageUrl"),
                "quality_score": discovered.get("qualityScore"),
                "interests": discovered.get("interests") or [],
            },
        )
        self._session.add(creator)
        await self._session.flush()
        return creator

    async def add_creator_to_campaign(
        self,
        campaign_id: uuid.UUID,
        creator: Creator,
        *,
        assigned_budget: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> tuple[CampaignCreator, bool]:
        """Link a creator to a campaign. Returns (link, created); an existing link is returned as is."""
        stmt = (
            select(CampaignCreator)
            .where(CampaignCreator.campaign_id == campaign_id)
            .where(CampaignCreator.creator_id == creator.id)
        )
        existing = (await self._session.exec(stmt)).first()
        if existing is not None:
            return existing, False

        link = CampaignCreator(
            campaign_id=campaign_id,
            creator_id=creator.id,
            current_state="discovered",
            assigned_budget=assigned_budget,
            notes=notes,
        )
        self._session.add(link)
        await self._session.flush()
        return link, True

    async def list_campaign_creators(
        self,
        campaign_id: uuid.UUID,
        *,
        states: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> list[tuple[CampaignCreator, Creator]]:
        stmt = (
            select(CampaignCreator, Creator)
            .join(Creator, col(Creator.id) == CampaignCreator.creator_id)
            .where(CampaignCreator.campaign_id == campaign_id)
            .order_by(col(CampaignCreator.created_at).asc())
        )
        if states:
            stmt = stmt.where(col(CampaignCreator.current_state).in_(list(states)))
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = (await self._session.exec(stmt)).all()
        return [(link, creator) for link, creator in rows]

    async def count_campaign_creators(self, campaign_id: uuid.UUID, *, states: Optional[Sequence[str]] = None) -> int:
        stmt = select(func.count(CampaignCreator.id)).where(CampaignCreator.campaign_id == campaign_id)
        if states:
            stmt = stmt.where(col(CampaignCreator.current_state).in_(list(states)))
        return int((await self._session.exec(stmt)).one() or 0)

    async def update_campaign_creator_state(self, link: CampaignCreator, state: str) -> CampaignCreator:
        link.current_state = state
        link.updated_at = utcnow()
        self._session.add(link)
        await self._session.flush()
        return link

    async def campaign_status(self, campaign: Campaign) -> dict[str, Any]:
        stmt = select(CampaignCreator.current_state).where(CampaignCreator.campaign_id == campaign.id)
        states = list((await self._session.exec(stmt)).all())
        return {
            "campaign": campaign_summary(campaign),
            "creatorStatus": status_breakdown(states),
        }


def campaign_summary(campaign: Campaign) -> dict[str, Any]:
    meta = campaign.meta or {}
    return {
        "id": str(campaign.id),
        "name": campaign.name,
        "description": campaign.description,
        "startDate": campaign.start_date.isoformat(),
        "endDate": campaign.end_date.isoformat(),
        "deliverables": list(meta.get("deliverables") or []),
        "totalBudget": meta.get("total_budget"),
        "status": campaign.state,
        "createdAt": campaign.created_at.isoformat(),
    }
