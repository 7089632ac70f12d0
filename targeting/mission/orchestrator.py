"""Mission orchestrator: the resumable targeting state machine.

Phase order:
  DISCOVERY → VALIDATION → VALIDATION_SUMMARY
  → PER_TARGET_CONTACT_DISCOVERY ⇄ PER_TARGET_CONTACT_REVIEW → COMPANY_SUMMARY
    (repeated per selected company)
  → CAMPAIGN_SELECTION → CAMPAIGN_GENERATION → CAMPAIGN_EXPORT

Every operation persists the mission before returning. Decisions carry the id
of the item they answer, so replaying an operation without new input is a
no-op. Blocking directory and LLM calls run in worker threads.
"""

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime

from targeting.core.config import Credentials, Settings
from targeting.core.errors import (
    ConfigurationError,
    MissionStateError,
    PersistenceFailure,
    TargetingError,
    VersionConflict,
)
from targeting.core.schemas import Candidate, IdealCustomerProfile, ScoredCandidate
from targeting.directory.base import DirectoryAdapter
from targeting.generation.adapter import GenerativeContentAdapter
from targeting.mission import prompts
from targeting.mission.export import export_campaigns_csv, export_campaigns_json
from targeting.mission.models import (
    CampaignType,
    CompanySelection,
    Mission,
    MissionPhase,
    StepResult,
    ValidationSummary,
)
from targeting.mission.repository import MissionRepository
from targeting.scoring.engine import score_candidates

logger = logging.getLogger(__name__)

TOP_COMPANIES_IN_SUMMARY = 10


class MissionOrchestrator:
    """Drives one mission through its phases.

    Usage::

        orch = MissionOrchestrator(settings, credentials, repo, directory, generator)
        await orch.start_mission("user-1", "default")
        await orch.run_discovery()
        ...
    """

    def __init__(
        self,
        settings: Settings,
        credentials: Credentials,
        repository: MissionRepository,
        directory: DirectoryAdapter,
        generator: GenerativeContentAdapter,
    ) -> None:
        self._settings = settings
        self._credentials = credentials
        self._repo = repository
        self._directory = directory
        self._generator = generator
        self._mission: Mission | None = None
        self._icp: IdealCustomerProfile | None = None

    @property
    def mission(self) -> Mission:
        if self._mission is None:
            msg = "No mission started; call start_mission first"
            raise MissionStateError(msg, reason="not_started")
        return self._mission

    @property
    def icp(self) -> IdealCustomerProfile:
        if self._icp is None:
            msg = "No ICP loaded; call start_mission first"
            raise MissionStateError(msg, reason="not_started")
        return self._icp

    # ------------------------------------------------------------------
    # Start / resume
    # ------------------------------------------------------------------

    async def start_mission(self, user_id: str, slot: str, restart: bool = False) -> StepResult:
        """Pre-flight checks, then resume the slot's mission or start a new one.

        Raises:
            ConfigurationError: No ICP stored, or directory key missing.
        """
        icp = self._repo.load_icp(user_id)
        if icp is None:
            msg = f"No ICP configured for user {user_id}"
            raise ConfigurationError(msg, reason="icp_missing")
        self._credentials.require_directory()
        self._icp = icp

        existing = self._repo.load(user_id, slot)
        if existing is not None and not restart:
            self._mission = existing
            if existing.is_terminal:
                return StepResult(existing, "Mission complete; restart to run it again")
            logger.info(
                "Resuming mission %s/%s at %s (v%s)",
                user_id, slot, existing.phase, existing.version,
            )
            return StepResult(existing, f"Resumed mission at {existing.phase}")

        mission = Mission(user_id=user_id, slot=slot)
        if existing is not None:
            mission.version = existing.version
        self._mission = mission
        logger.info("Starting new mission %s/%s", user_id, slot)
        return self._step("Mission started")

    # ------------------------------------------------------------------
    # Discovery and validation
    # ------------------------------------------------------------------

    async def run_discovery(self) -> StepResult:
        """Broad company search and validation sample."""
        mission = self._require_phase(MissionPhase.DISCOVERY)

        if not mission.companies:
            companies, total = await self._search_companies(mission)
            mission.companies = companies
            mission.total_companies = total

        if not mission.companies:
            logger.info("Discovery found no companies for %s", mission.user_id)
            return self._step("No companies matched the ICP; adjust it and retry")

        sample_size = min(self._settings.mission.validation_sample_size, len(mission.companies))
        mission.validation_sample = [c.id for c in mission.companies[:sample_size]]
        mission.validation_index = 0
        mission.phase = MissionPhase.VALIDATION
        logger.info(
            "Discovered %d companies (total %d); validating %d",
            len(mission.companies), mission.total_companies, sample_size,
        )
        return self._step(
            f"Found {mission.total_companies} companies; review {sample_size} to calibrate"
        )

    async def _search_companies(self, mission: Mission) -> tuple[list[Candidate], int]:
        companies: list[Candidate] = []
        seen: set[str] = set()
        total = 0

        for page in range(1, self._settings.mission.discovery_pages + 1):
            try:
                result = await asyncio.to_thread(self._directory.search_companies, self.icp, page)
            except TargetingError as e:
                mission.record_error(f"page:{page}", e.code, str(e))
                if page == 1:
                    self._step("Company search failed")
                    raise
                logger.warning("Company search page %d failed; keeping %d", page, len(companies))
                break

            total = max(total, result.total)
            for company in result.companies:
                if company.id not in seen:
                    seen.add(company.id)
                    companies.append(company)
            if len(result.companies) < self._settings.directory.companies_per_page:
                break

        return companies, max(total, len(companies))

    async def record_validation_decision(
        self, company_id: str, accepted: bool, reasons: Sequence[str] = (),
    ) -> StepResult:
        """Record a keep/skip decision for the current sample company.

        A decision for anything but the current item is ignored.
        """
        mission = self.mission
        if mission.tally.decided(company_id):
            return StepResult(mission, f"Decision for {company_id} already recorded")
        self._require_phase(MissionPhase.VALIDATION)

        if company_id != mission.current_sample_id:
            logger.info(
                "Ignoring decision for %s; current sample item is %s",
                company_id, mission.current_sample_id,
            )
            return StepResult(mission, f"{company_id} is not the company under review")

        mission.tally.record(company_id, accepted, [r.strip() for r in reasons if r.strip()])
        mission.validation_index += 1

        if mission.current_sample_id is None:
            mission.ranked_companies = score_candidates(mission.companies, self.icp)
            mission.phase = MissionPhase.VALIDATION_SUMMARY
            logger.info(
                "Validation complete: %d accepted, %d rejected",
                len(mission.tally.accepted), len(mission.tally.rejected),
            )
            return self._step("Validation complete")

        return self._step(
            f"Recorded; {len(mission.validation_sample) - mission.validation_index} left"
        )

    def validation_summary(self) -> ValidationSummary:
        mission = self.mission
        top_accept, top_reject = mission.tally.top_reasons(3)
        return ValidationSummary(
            accepted=len(mission.tally.accepted),
            rejected=len(mission.tally.rejected),
            top_accept_reasons=top_accept,
            top_reject_reasons=top_reject,
            top_companies=mission.ranked_companies[:TOP_COMPANIES_IN_SUMMARY],
        )

    async def select_companies(self, company_ids: Sequence[str]) -> StepResult:
        """Choose which companies to work through, in order.

        Raises:
            MissionStateError: ``no_companies_selected`` if none are known.
        """
        mission = self._require_phase(MissionPhase.VALIDATION_SUMMARY)
        known = {c.id for c in mission.companies}
        selected = list(dict.fromkeys(cid for cid in company_ids if cid in known))
        if not selected:
            msg = "Select at least one discovered company"
            raise MissionStateError(msg, reason="no_companies_selected")

        mission.selected_company_ids = selected
        mission.company_index = 0
        mission.selections = {}
        mission.phase = MissionPhase.PER_TARGET_CONTACT_DISCOVERY
        logger.info("Selected %d companies", len(selected))
        return self._step(f"Selected {len(selected)} companies")

    # ------------------------------------------------------------------
    # Per-company contact loop
    # ------------------------------------------------------------------

    async def discover_contacts(self) -> StepResult:
        """Find, score and shortlist contacts at the current company.

        No contacts, or a failure for this company, records an empty
        selection and moves on to the next company.
        """
        mission = self._require_phase(MissionPhase.PER_TARGET_CONTACT_DISCOVERY)
        company = self._current_company()
        selection = self._selection_for(company)

        found = await self._load_batch(company, selection)
        if not found:
            name = company.name
            self._advance_company()
            return self._step(f"No contacts found at {name}; moving on")

        mission.phase = MissionPhase.PER_TARGET_CONTACT_REVIEW
        return self._step(f"{len(mission.review_queue)} contacts to review at {company.name}")

    async def record_contact_decision(self, contact_id: str, accepted: bool) -> StepResult:
        """Accept or reject the contact currently under review."""
        mission = self.mission
        company_id = mission.current_company_id
        selection = mission.selections.get(company_id) if company_id else None
        if selection is not None and selection.decided(contact_id):
            return StepResult(mission, f"Decision for {contact_id} already recorded")
        self._require_phase(MissionPhase.PER_TARGET_CONTACT_REVIEW)
        if selection is None:
            msg = "Review has no company selection"
            raise MissionStateError(msg, reason="invalid_phase")

        if contact_id != mission.current_contact_id:
            logger.info(
                "Ignoring decision for %s; current contact is %s",
                contact_id, mission.current_contact_id,
            )
            return StepResult(mission, f"{contact_id} is not the contact under review")

        (selection.accepted if accepted else selection.rejected).append(contact_id)
        mission.contact_index += 1

        if mission.current_contact_id is None:
            mission.phase = MissionPhase.COMPANY_SUMMARY
            logger.info(
                "Company %s reviewed: %d accepted, %d rejected",
                selection.company_id, len(selection.accepted), len(selection.rejected),
            )
            return self._step(f"{selection.company_name} reviewed")

        return self._step("Recorded")

    async def fetch_more_contacts(self) -> StepResult:
        """Next batch for the same company, excluding everyone already shown."""
        mission = self._require_phase(MissionPhase.COMPANY_SUMMARY)
        company = self._current_company()
        selection = self._selection_for(company)

        if selection.exhausted:
            return StepResult(mission, f"No more contacts at {company.name}")

        found = await self._load_batch(company, selection)
        if not found:
            selection.exhausted = True
            return self._step(f"No more contacts at {company.name}")

        mission.phase = MissionPhase.PER_TARGET_CONTACT_REVIEW
        return self._step(f"{len(mission.review_queue)} more contacts at {company.name}")

    async def advance_company(self, expected_index: int) -> StepResult:
        """Move past the current company.

        ``expected_index`` is the company index the caller was looking at; a
        stale index means the advance already happened.
        """
        mission = self.mission
        if expected_index != mission.company_index:
            return StepResult(mission, f"Already past company {expected_index}")
        self._require_phase(MissionPhase.COMPANY_SUMMARY)

        self._advance_company()
        if mission.phase is MissionPhase.CAMPAIGN_SELECTION:
            return self._step("All companies reviewed")
        total = len(mission.selected_company_ids)
        return self._step(f"Company {mission.company_index + 1} of {total}")

    def _current_company(self) -> Candidate:
        mission = self.mission
        company_id = mission.current_company_id
        company = mission.company(company_id) if company_id else None
        if company is None:
            msg = f"Company cursor {mission.company_index} has no company"
            raise MissionStateError(msg, reason="invalid_phase")
        return company

    def _selection_for(self, company: Candidate) -> CompanySelection:
        return self.mission.selections.setdefault(
            company.id, CompanySelection(company_id=company.id, company_name=company.name),
        )

    def _advance_company(self) -> None:
        mission = self.mission
        mission.company_index += 1
        mission.contact_batch = []
        mission.review_queue = []
        mission.suggestion_reasons = {}
        mission.contact_index = 0
        if mission.current_company_id is None:
            mission.phase = MissionPhase.CAMPAIGN_SELECTION
            logger.info("Contact loop finished: %d accepted contacts",
                        len(mission.accepted_contacts()))
        else:
            mission.phase = MissionPhase.PER_TARGET_CONTACT_DISCOVERY

    async def _load_batch(self, company: Candidate, selection: CompanySelection) -> bool:
        """Shortlist the next contacts to review; False when nothing new.

        Contacts from the current batch that were not yet suggested are
        offered before the directory is searched again.
        """
        mission = self.mission
        batch = [s for s in mission.contact_batch if s.candidate.id not in selection.seen_ids]
        if not batch:
            batch = await self._search_contacts(company, selection)
        if not batch:
            return False

        picks = await self._suggest(company, batch)
        selection.seen_ids.extend(cid for cid, _ in picks)
        mission.contact_batch = batch
        mission.review_queue = [cid for cid, _ in picks]
        mission.suggestion_reasons = dict(picks)
        mission.contact_index = 0
        logger.info(
            "Company %s: %d contacts, %d suggested", company.id, len(batch), len(picks),
        )
        return True

    async def _search_contacts(
        self, company: Candidate, selection: CompanySelection,
    ) -> list[ScoredCandidate]:
        """Score contacts from the directory that have not been reviewed yet.

        Once contacts have been seen, a directory page with nothing new moves
        the search on to the following page.
        """
        mission = self.mission
        pages = [selection.directory_page]
        if selection.seen_ids:
            pages.append(selection.directory_page + 1)

        for page in pages:
            try:
                contacts = await asyncio.to_thread(
                    self._directory.find_candidates, company, list(selection.seen_ids), page,
                )
            except TargetingError as e:
                logger.warning("Contact search failed for company %s", company.id, exc_info=True)
                mission.record_error(company.id, e.code, str(e))
                return []

            fresh = [c for c in contacts if c.id not in selection.seen_ids]
            if fresh:
                selection.directory_page = page
                batch = score_candidates(fresh, self.icp)
                for s in batch:
                    mission.contacts[s.candidate.id] = s.candidate
                return batch

        logger.info("No new contacts for company %s", company.id)
        return []

    async def _suggest(
        self, company: Candidate, batch: list[ScoredCandidate],
    ) -> list[tuple[str, str]]:
        cfg = self._settings.mission
        spec = prompts.suggestion_spec(
            company, batch, self.icp, cfg.max_suggestions,
            self._settings.generation.max_tokens.suggestion,
        )
        try:
            data = await asyncio.to_thread(self._generator.generate_structured, spec)
            picks = prompts.parse_suggestions(data, batch, cfg.max_suggestions)
        except TargetingError as e:
            logger.warning(
                "Suggestions failed for company %s (%s); using top %d by score",
                company.id, e.code, cfg.fallback_contact_count,
            )
            self.mission.record_error(company.id, e.code, str(e))
            picks = []
        if not picks:
            picks = prompts.fallback_suggestions(batch, cfg.fallback_contact_count)
        return picks

    # ------------------------------------------------------------------
    # Campaign
    # ------------------------------------------------------------------

    async def rank_contacts(self) -> StepResult:
        """Rank all accepted contacts once; the heuristic covers LLM failure."""
        mission = self._require_phase(MissionPhase.CAMPAIGN_SELECTION)
        if mission.rankings:
            return StepResult(mission, "Contacts already ranked")

        contacts = mission.accepted_contacts()
        if not contacts:
            return StepResult(mission, "No accepted contacts to rank")

        spec = prompts.ranking_spec(
            contacts, self.icp, self._settings.generation.max_tokens.ranking,
        )
        try:
            data = await asyncio.to_thread(self._generator.generate_structured, spec)
            mission.rankings = prompts.parse_rankings(data, contacts)
        except TargetingError as e:
            logger.warning("Ranking failed (%s); using heuristic scores", e.code)
            mission.record_error("ranking", e.code, str(e))
            mission.rankings = prompts.fallback_rankings(contacts)

        logger.info("Ranked %d contacts", len(mission.rankings))
        return self._step(f"Ranked {len(mission.rankings)} contacts")

    async def select_campaign(self, contact_ids: Sequence[str], campaign_type: str) -> StepResult:
        """Pick the contacts and channel for generation.

        Raises:
            MissionStateError: ``no_contacts_selected`` or ``invalid_campaign_type``.
        """
        mission = self._require_phase(MissionPhase.CAMPAIGN_SELECTION)
        try:
            kind = CampaignType(campaign_type)
        except ValueError as e:
            msg = f"Campaign type must be one of {[t.value for t in CampaignType]}"
            raise MissionStateError(msg, reason="invalid_campaign_type") from e

        accepted = {c.id for c in mission.accepted_contacts()}
        chosen = list(dict.fromkeys(cid for cid in contact_ids if cid in accepted))
        if not chosen:
            msg = "Select at least one accepted contact"
            raise MissionStateError(msg, reason="no_contacts_selected")

        mission.campaign_contact_ids = chosen
        mission.campaign_type = kind
        mission.phase = MissionPhase.CAMPAIGN_GENERATION
        logger.info("Campaign: %s for %d contacts", kind, len(chosen))
        return self._step(f"{kind} campaign for {len(chosen)} contacts")

    async def generate_campaigns(self, cancel: asyncio.Event | None = None) -> StepResult:
        """Generate copy one contact at a time, saving after each.

        A failure stops the run and keeps what was generated; calling again
        resumes with the contacts still missing. ``cancel`` is honoured
        between contacts.
        """
        mission = self._require_phase(MissionPhase.CAMPAIGN_GENERATION)
        if mission.campaign_type is None:
            msg = "No campaign type selected"
            raise MissionStateError(msg, reason="invalid_phase")
        pending = [cid for cid in mission.campaign_contact_ids if cid not in mission.campaigns]
        delay = self._settings.mission.campaign_delay_seconds
        degraded = False
        stopped = ""

        for i, contact_id in enumerate(pending):
            if cancel is not None and cancel.is_set():
                stopped = "cancelled"
                logger.info("Campaign generation cancelled with %d pending", len(pending) - i)
                break
            if i > 0 and delay > 0:
                await asyncio.sleep(delay)

            contact = mission.contacts[contact_id]
            spec = prompts.campaign_spec(
                contact, mission.campaign_type, self.icp,
                self._settings.generation.max_tokens.campaign,
            )
            try:
                data = await asyncio.to_thread(self._generator.generate_structured, spec)
                asset = prompts.parse_campaign(data, contact_id, mission.campaign_type)
            except TargetingError as e:
                logger.warning(
                    "Campaign generation failed for contact %s", contact_id, exc_info=True,
                )
                mission.record_error(contact_id, e.code, str(e))
                degraded = self._persist_fields({"errors"}) or degraded
                stopped = "failed"
                break

            mission.campaigns[contact_id] = asset
            degraded = self._persist_fields({"campaigns"}) or degraded

        done = len(mission.campaigns)
        wanted = len(mission.campaign_contact_ids)
        if stopped:
            return StepResult(mission, f"Generation {stopped}: {done} of {wanted} ready", degraded)

        mission.phase = MissionPhase.CAMPAIGN_EXPORT
        mission.completed_at = datetime.now()
        logger.info("Mission %s/%s complete: %d campaigns", mission.user_id, mission.slot, done)
        result = self._step(f"Generated {done} campaigns")
        result.persistence_degraded = result.persistence_degraded or degraded
        return result

    def export_csv(self) -> str:
        return export_campaigns_csv(self._exportable())

    def export_json(self) -> str:
        return export_campaigns_json(self._exportable())

    def _exportable(self) -> Mission:
        """The finished mission, or one mid-generation with its partial set."""
        mission = self.mission
        if mission.phase is MissionPhase.CAMPAIGN_GENERATION:
            return mission
        return self._require_phase(MissionPhase.CAMPAIGN_EXPORT)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _require_phase(self, phase: MissionPhase) -> Mission:
        mission = self.mission
        if mission.phase is not phase:
            msg = f"Operation needs phase {phase}, mission is at {mission.phase}"
            raise MissionStateError(msg, reason="invalid_phase")
        return mission

    def _step(self, message: str) -> StepResult:
        """Save the whole mission and wrap it in a StepResult."""
        mission = self.mission
        degraded = False
        try:
            self._repo.save(mission)
        except VersionConflict:
            raise
        except PersistenceFailure:
            logger.error(
                "Could not save mission %s/%s at %s",
                mission.user_id, mission.slot, mission.phase, exc_info=True,
            )
            degraded = True
        return StepResult(mission, message, degraded)

    def _persist_fields(self, fields: set[str]) -> bool:
        """Merge-save some fields; True when the save failed."""
        mission = self.mission
        try:
            self._repo.save_fields(mission, fields)
        except VersionConflict:
            raise
        except PersistenceFailure:
            logger.error(
                "Could not save %s for mission %s/%s",
                sorted(fields), mission.user_id, mission.slot, exc_info=True,
            )
            return True
        return False

