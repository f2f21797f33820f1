from __future__ import annotations

import argparse
import asyncio

from influencerflow.src.db.session import session_scope
from influencerflow.src.services.campaigns import CampaignService


async def _run(owner_user_id: str, name: str) -> None:
    async with session_scope() as session:
        service = CampaignService(session)
        existing = await service.find_company_by_owner(owner_user_id)
        if existing is not None:
            raise RuntimeError(f"Owner {owner_user_id} already has company {existing.name!r} ({existing.id})")
        company = await service.create_company(owner_user_id, name)
        company_id = company.id

    print(company_id)


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the company profile a chat user's campaigns belong to.")
    parser.add_argument("--owner", required=True, help="Identity of the owning user (token `sub` claim)")
    parser.add_argument("--name", required=True, help="Brand name used in outreach emails")
    args = parser.parse_args()
    asyncio.run(_run(args.owner, args.name))


if __name__ == "__main__":
    main()
