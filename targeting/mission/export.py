"""Campaign export: CSV for spreadsheets/sequencers, JSON for everything else."""

import csv
import io
import json
from typing import Any

from targeting.mission.models import CampaignType, ContactRanking, Mission

EMAIL_VARIATION_COLUMNS = 3
BASE_COLUMNS = ["Rank", "Name", "Title", "Company", "Email", "LinkedIn", "Score"]
LINKEDIN_COLUMNS = ["LinkedIn Connection Request", "LinkedIn Follow-up"]


def _email_columns() -> list[str]:
    columns: list[str] = []
    for i in range(1, EMAIL_VARIATION_COLUMNS + 1):
        columns += [f"Email Subject {i}", f"Email Body {i}"]
    return columns


def _rankings(mission: Mission) -> dict[str, ContactRanking]:
    return {r.contact_id: r for r in mission.rankings}


def _ordered_ids(mission: Mission) -> list[str]:
    """Campaign contacts, best ranked first; unranked keep selection order."""
    rankings = _rankings(mission)
    position = {cid: i for i, cid in enumerate(mission.campaign_contact_ids)}
    return sorted(
        mission.campaign_contact_ids,
        key=lambda cid: (
            rankings[cid].rank if cid in rankings else len(rankings) + 1,
            position[cid],
        ),
    )


def export_campaigns_csv(mission: Mission) -> str:
    """Render one row per campaign contact."""
    is_email = mission.campaign_type is CampaignType.EMAIL
    header = BASE_COLUMNS + (_email_columns() if is_email else LINKEDIN_COLUMNS)
    rankings = _rankings(mission)

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)

    for contact_id in _ordered_ids(mission):
        contact = mission.contacts.get(contact_id)
        if contact is None:
            continue
        ranking = rankings.get(contact_id)
        row: list[Any] = [
            ranking.rank if ranking else "",
            contact.name,
            contact.title,
            contact.company_name,
            contact.email or "",
            contact.linkedin_url or "",
            ranking.score if ranking else "",
        ]

        asset = mission.campaigns.get(contact_id)
        if is_email:
            variations = asset.variations if asset else []
            for i in range(EMAIL_VARIATION_COLUMNS):
                if i < len(variations):
                    row += [variations[i].subject, variations[i].body.replace("\n", " ")]
                else:
                    row += ["", ""]
        else:
            row += [
                (asset.connection_request or "") if asset else "",
                (asset.follow_up or "") if asset else "",
            ]
        writer.writerow(row)

    return buf.getvalue()


def export_campaigns_json(mission: Mission) -> str:
    """Export contacts, rankings and generated copy as a JSON string."""
    rankings = _rankings(mission)
    data = []
    for contact_id in _ordered_ids(mission):
        contact = mission.contacts.get(contact_id)
        if contact is None:
            continue
        ranking = rankings.get(contact_id)
        asset = mission.campaigns.get(contact_id)
        data.append({
            "contact_id": contact_id,
            "name": contact.name,
            "title": contact.title,
            "company": contact.company_name,
            "email": contact.email,
            "linkedin_url": contact.linkedin_url,
            "rank": ranking.rank if ranking else None,
            "score": ranking.score if ranking else None,
            "reasoning": ranking.reasoning if ranking else None,
            "campaign": asset.model_dump(mode="json") if asset else None,
        })
    return json.dumps(
        {
            "user_id": mission.user_id,
            "slot": mission.slot,
            "campaign_type": mission.campaign_type,
            "completed_at": mission.completed_at.isoformat() if mission.completed_at else None,
            "contacts": data,
        },
        indent=2,
    )
