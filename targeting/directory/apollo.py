"""Apollo-style directory adapter.

Calls the REST API directly with ``requests`` (JSON POST, ``X-Api-Key``).

Contact discovery walks a strategy ladder, most precise first:
  1. organization id: only when the target carries one
  2. domain: registrable domain of the website URL
  3. organization name: trademark glyphs stripped
A strategy that errors or yields nothing usable falls through to the next.
"""

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import requests

from targeting.core.config import DirectoryConfig
from targeting.core.errors import UpstreamUnavailable
from targeting.core.schemas import Candidate, IdealCustomerProfile
from targeting.directory.base import CompanyPage, DirectoryAdapter
from targeting.scoring.engine import NATIONWIDE_SCOPES, parse_size_range

logger = logging.getLogger(__name__)

PEOPLE_SEARCH_PATH = "/mixed_people/search"
ORGANIZATIONS_SEARCH_PATH = "/organizations/search"
CONTACT_EMAIL_STATUSES = ["verified", "guessed", "unavailable"]
OPEN_RANGE_CEILING = 1_000_000

_TRADEMARK_RE = re.compile(r"[®™©]")
_LOCKED_EMAIL_MARKER = "email_not_unlocked"


@dataclass(frozen=True)
class SearchStrategy:
    """One rung of the ladder: builds search params, or None when not applicable."""

    name: str
    build: Callable[[Candidate], dict[str, Any] | None]


def extract_domain(website_url: str) -> str:
    """Reduce a website URL to its bare domain.

    >>> extract_domain("https://www.acme.io/about")
    'acme.io'
    """
    domain = re.sub(r"^https?://", "", website_url.strip(), flags=re.IGNORECASE)
    domain = re.sub(r"^www\.", "", domain, flags=re.IGNORECASE)
    return domain.split("/")[0].split("?")[0].strip().lower()


def clean_company_name(name: str) -> str:
    """Strip registration/trademark glyphs before a free-text search."""
    return _TRADEMARK_RE.sub("", name).strip()


def _by_identifier(target: Candidate) -> dict[str, Any] | None:
    if not target.organization_id:
        return None
    return {"organization_ids": [target.organization_id]}


def _by_domain(target: Candidate) -> dict[str, Any] | None:
    domain = extract_domain(target.website_url) if target.website_url else ""
    if not domain:
        return None
    return {"organization_domains": [domain]}


def _by_name(target: Candidate) -> dict[str, Any] | None:
    name = clean_company_name(target.company_name or target.name)
    if not name:
        return None
    return {"q_organization_name": name}


DEFAULT_STRATEGIES: tuple[SearchStrategy, ...] = (
    SearchStrategy("organization_id", _by_identifier),
    SearchStrategy("domain", _by_domain),
    SearchStrategy("organization_name", _by_name),
)


def build_location_array(icp: IdealCustomerProfile) -> list[str]:
    """Translate ICP geography into directory location filters."""
    if any(scope in icp.location_scope for scope in NATIONWIDE_SCOPES):
        return ["United States"]

    locations = [f"{state}, United States" for state in icp.target_states if state.strip()]
    for city in icp.target_cities:
        name = re.sub(r"\s+(Metro|Area|Bay)\b", "", city, flags=re.IGNORECASE).strip()
        if name:
            locations.append(name)
    return locations or ["United States"]


def build_employee_ranges(icp: IdealCustomerProfile) -> list[str]:
    """Map ICP size ranges to the directory's "min,max" filter format."""
    ranges: list[str] = []
    for size_range in icp.company_sizes:
        bounds = parse_size_range(size_range)
        if bounds is None:
            continue
        low, high = bounds
        ranges.append(f"{low},{high if high is not None else OPEN_RANGE_CEILING}")
    return ranges


class ApolloDirectory(DirectoryAdapter):
    """Directory adapter for the Apollo people/organization search API."""

    def __init__(
        self,
        config: DirectoryConfig,
        api_key: str,
        strategies: Iterable[SearchStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self._config = config
        self._api_key = api_key
        self._strategies = tuple(strategies)

    @property
    def directory_id(self) -> str:
        return "apollo"

    def find_candidates(
        self,
        target: Candidate,
        exclude_ids: Iterable[str] = (),
        page: int = 1,
    ) -> list[Candidate]:
        """Find contacts at a company via the strategy ladder.

        Args:
            target: The company to search within.
            exclude_ids: Contact ids surfaced in earlier batches.
            page: Directory result page.

        Returns:
            Normalized contacts, or [] once every strategy is exhausted.
        """
        excluded = set(exclude_ids)
        logger.info(
            "Contact search for '%s' (org=%s, site=%s, %d excluded)",
            target.name, target.organization_id or "-", target.website_url or "-", len(excluded),
        )

        for strategy in self._strategies:
            params = strategy.build(target)
            if params is None:
                logger.debug("Strategy '%s' skipped for '%s'", strategy.name, target.name)
                continue

            payload = {
                **params,
                "page": page,
                "per_page": self._config.contacts_per_page,
                "contact_email_status": CONTACT_EMAIL_STATUSES,
            }
            try:
                data = self._post(PEOPLE_SEARCH_PATH, payload)
                people = data.get("people") or []
                usable = [
                    p for p in people
                    if isinstance(p, dict) and p.get("id") and str(p["id"]) not in excluded
                ]
                candidates = [normalize_person(p, target) for p in usable]
            except (UpstreamUnavailable, ValueError, TypeError, KeyError, AttributeError):
                logger.warning(
                    "Strategy '%s' failed for '%s', falling through",
                    strategy.name, target.name,
                    exc_info=True,
                )
                continue

            if candidates:
                logger.info(
                    "Strategy '%s' found %d contacts for '%s'",
                    strategy.name, len(candidates), target.name,
                )
                return candidates

            logger.info(
                "Strategy '%s' returned %d people, none usable", strategy.name, len(people)
            )

        logger.warning("No contacts found for '%s' after all strategies", target.name)
        return []

    def search_companies(self, icp: IdealCustomerProfile, page: int = 1) -> CompanyPage:
        """Broad organization search for the addressable market.

        Raises:
            UpstreamUnavailable: On any network, HTTP or payload failure.
        """
        payload: dict[str, Any] = {
            "page": page,
            "per_page": self._config.companies_per_page,
            "organization_locations": build_location_array(icp),
        }
        if icp.industries:
            payload["q_organization_keyword_tags"] = list(icp.industries)
        ranges = build_employee_ranges(icp)
        if ranges:
            payload["organization_num_employees_ranges"] = ranges

        logger.debug("Organization search payload: %s", payload)
        data = self._post(ORGANIZATIONS_SEARCH_PATH, payload)

        try:
            orgs = [
                o for o in data.get("organizations") or []
                if isinstance(o, dict) and o.get("id")
            ]
            companies = [normalize_organization(o) for o in orgs]
            pagination = data.get("pagination") or {}
            total = int(pagination.get("total_entries") or len(companies))
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            msg = f"Malformed organization search payload: {e}"
            raise UpstreamUnavailable(msg, service="directory") from e

        logger.info(
            "Organization search page %d: %d companies (total %d)", page, len(companies), total,
        )
        return CompanyPage(companies=companies, total=total, page=page)

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._config.base_url.rstrip('/')}{path}"
        headers = {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
            "X-Api-Key": self._api_key,
        }
        try:
            resp = requests.post(
                url, json=payload, headers=headers, timeout=self._config.timeout_seconds,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            msg = f"Directory returned HTTP {status} for {path}"
            raise UpstreamUnavailable(msg, service="directory", status_code=status) from e
        except (requests.RequestException, ValueError) as e:
            msg = f"Directory request to {path} failed: {e}"
            raise UpstreamUnavailable(msg, service="directory") from e

        if not isinstance(data, dict):
            msg = f"Directory returned a non-object payload for {path}"
            raise UpstreamUnavailable(msg, service="directory")
        return data


def normalize_person(person: dict[str, Any], company: Candidate) -> Candidate:
    """Map a directory person record onto a contact Candidate."""
    org = _mapping(person.get("organization"))
    name = person.get("name") or " ".join(
        p for p in (person.get("first_name"), person.get("last_name")) if p
    )
    return Candidate(
        id=str(person["id"]),
        kind="contact",
        name=name,
        title=person.get("title") or "",
        company_name=org.get("name") or company.company_name or company.name,
        organization_id=str(org["id"]) if org.get("id") else company.organization_id,
        website_url=org.get("website_url") or company.website_url,
        industry=org.get("industry") or company.industry,
        employee_count=_as_int(org.get("estimated_num_employees")) or company.employee_count,
        city=person.get("city") or "",
        state=person.get("state") or "",
        country=person.get("country") or "",
        email=_usable_email(person.get("email")),
        email_status=person.get("email_status"),
        linkedin_url=person.get("linkedin_url") or None,
        phone_numbers=_phone_numbers(person.get("phone_numbers")),
        seniority=person.get("seniority"),
        headline=person.get("headline") or "",
    )


def normalize_organization(org: dict[str, Any]) -> Candidate:
    """Map a directory organization record onto a company Candidate."""
    phone = _mapping(org.get("primary_phone")).get("sanitized_number") or org.get("phone")
    return Candidate(
        id=str(org["id"]),
        kind="company",
        name=org.get("name") or "Unknown",
        company_name=org.get("name") or "",
        organization_id=str(org["id"]),
        website_url=org.get("website_url") or org.get("primary_domain") or "",
        industry=org.get("industry") or "",
        employee_count=_as_int(org.get("estimated_num_employees")),
        city=org.get("city") or "",
        state=org.get("state") or "",
        country=org.get("country") or "",
        linkedin_url=org.get("linkedin_url") or None,
        phone_numbers=[phone] if phone else [],
        headline=org.get("short_description") or "",
    )


def _mapping(value: Any) -> dict[str, Any]:
    """Nested record, or {} when the directory sent something else."""
    return value if isinstance(value, dict) else {}


def _as_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _usable_email(email: Any) -> str | None:
    if not email or not isinstance(email, str) or _LOCKED_EMAIL_MARKER in email:
        return None
    return email


def _phone_numbers(raw: Any) -> list[str]:
    numbers: list[str] = []
    for entry in raw or []:
        if isinstance(entry, dict):
            number = entry.get("sanitized_number") or entry.get("raw_number")
        else:
            number = entry
        if number:
            numbers.append(str(number))
    return numbers
