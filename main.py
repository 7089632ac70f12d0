"""CLI entry point for targeting missions.

Each subcommand resumes the mission in ``--user``/``--slot`` and runs one
control-surface operation, printing the result as JSON.
"""

import argparse
import asyncio
import json
import logging
import signal
import sqlite3
import sys
from pathlib import Path
from typing import Any

import yaml

from targeting.core.config import Settings
from targeting.core.db import init_db
from targeting.core.errors import PersistenceFailure, TargetingError
from targeting.core.schemas import IdealCustomerProfile
from targeting.directory.apollo import ApolloDirectory
from targeting.generation.adapter import GenerativeContentAdapter
from targeting.mission.models import StepResult
from targeting.mission.orchestrator import MissionOrchestrator
from targeting.mission.repository import MissionRepository


def _common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        help="Path to settings YAML file (default: built-in defaults)",
    )
    parser.add_argument("--user", required=True, help="User id owning the ICP and mission")
    parser.add_argument("--slot", default="default", help="Mission slot (default: default)")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def _decision(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--accept", dest="accepted", action="store_true")
    group.add_argument("--reject", dest="accepted", action="store_false")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Targeting missions - turn an ICP into a ranked, ready-to-send outreach list",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    icp_parser = subparsers.add_parser("set-icp", help="Store an ICP from a YAML/JSON file")
    icp_parser.add_argument("--file", required=True, help="ICP document (YAML or JSON)")
    _common(icp_parser)

    start_parser = subparsers.add_parser("start", help="Start or resume a mission")
    start_parser.add_argument(
        "--restart", action="store_true", help="Discard the slot's mission and start over",
    )
    _common(start_parser)

    _common(subparsers.add_parser("status", help="Show the mission's phase and cursors"))
    _common(subparsers.add_parser("discover", help="Search companies and draw a sample"))

    validate_parser = subparsers.add_parser("validate", help="Keep or skip a sample company")
    validate_parser.add_argument("company_id")
    _decision(validate_parser)
    validate_parser.add_argument(
        "--reason", action="append", default=[], help="Reason for the decision (repeatable)",
    )
    _common(validate_parser)

    _common(subparsers.add_parser("summary", help="Show the validation summary"))

    select_parser = subparsers.add_parser("select-companies", help="Choose companies to work")
    select_parser.add_argument("company_ids", nargs="+")
    _common(select_parser)

    _common(subparsers.add_parser("contacts", help="Find contacts at the current company"))

    decide_parser = subparsers.add_parser("decide", help="Keep or skip the contact under review")
    decide_parser.add_argument("contact_id")
    _decision(decide_parser)
    _common(decide_parser)

    _common(subparsers.add_parser("more", help="Fetch more contacts at the current company"))

    next_parser = subparsers.add_parser("next-company", help="Move on to the next company")
    next_parser.add_argument(
        "--index", type=int, required=True, help="Index of the company being left",
    )
    _common(next_parser)

    _common(subparsers.add_parser("rank", help="Rank accepted contacts"))

    campaign_parser = subparsers.add_parser("select-campaign", help="Choose contacts and channel")
    campaign_parser.add_argument("contact_ids", nargs="+")
    campaign_parser.add_argument("--type", required=True, choices=["email", "linkedin"])
    _common(campaign_parser)

    _common(subparsers.add_parser("generate", help="Generate campaign copy (Ctrl-C stops)"))

    export_parser = subparsers.add_parser("export", help="Export the finished campaign")
    export_parser.add_argument("--format", choices=["csv", "json"], default="csv")
    export_parser.add_argument("--output", help="Write to this file instead of stdout")
    _common(export_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def load_settings(path: str | None) -> Settings:
    return Settings.from_yaml(path) if path else Settings()


def _step_json(result: StepResult) -> dict[str, Any]:
    mission = result.mission
    return {
        "phase": mission.phase,
        "message": result.message,
        "persistence_degraded": result.persistence_degraded,
        "version": mission.version,
    }


def _status_json(orch: MissionOrchestrator) -> dict[str, Any]:
    mission = orch.mission
    return {
        "phase": mission.phase,
        "version": mission.version,
        "companies": len(mission.companies),
        "current_sample": mission.current_sample_id,
        "company_index": mission.company_index,
        "current_company": mission.current_company_id,
        "current_contact": mission.current_contact_id,
        "accepted_contacts": len(mission.accepted_contacts()),
        "campaigns": len(mission.campaigns),
        "errors": len(mission.errors),
    }


def cmd_set_icp(args: argparse.Namespace, settings: Settings) -> dict[str, Any]:
    """Handle set-icp subcommand."""
    path = Path(args.file)
    if not path.exists():
        msg = f"ICP file not found: {path}"
        raise FileNotFoundError(msg)
    raw = yaml.safe_load(path.read_text()) or {}
    icp = IdealCustomerProfile.model_validate(raw)

    conn = init_db(settings.database.path)
    try:
        MissionRepository(conn).save_icp(args.user, icp)
    finally:
        conn.close()
    return {"user": args.user, "icp": icp.model_dump(by_alias=True)}


async def run(args: argparse.Namespace, settings: Settings) -> dict[str, Any] | str:
    """Resume the mission and run one operation against it."""
    credentials = settings.resolve_credentials()
    conn = init_db(settings.database.path)
    try:
        orch = MissionOrchestrator(
            settings,
            credentials,
            MissionRepository(conn),
            ApolloDirectory(settings.directory, credentials.directory_api_key or ""),
            GenerativeContentAdapter.from_settings(settings.generation, credentials),
        )
        restart = args.command == "start" and args.restart
        started = await orch.start_mission(args.user, args.slot, restart=restart)
        return await _dispatch(args, orch, started)
    finally:
        conn.close()


async def _dispatch(
    args: argparse.Namespace, orch: MissionOrchestrator, started: StepResult,
) -> dict[str, Any] | str:
    command = args.command
    if command == "start":
        return _step_json(started)
    if command == "status":
        return _status_json(orch)
    if command == "discover":
        return _step_json(await orch.run_discovery())
    if command == "validate":
        return _step_json(
            await orch.record_validation_decision(args.company_id, args.accepted, args.reason)
        )
    if command == "summary":
        return orch.validation_summary().model_dump(mode="json")
    if command == "select-companies":
        return _step_json(await orch.select_companies(args.company_ids))
    if command == "contacts":
        return _step_json(await orch.discover_contacts())
    if command == "decide":
        return _step_json(await orch.record_contact_decision(args.contact_id, args.accepted))
    if command == "more":
        return _step_json(await orch.fetch_more_contacts())
    if command == "next-company":
        return _step_json(await orch.advance_company(args.index))
    if command == "rank":
        return _step_json(await orch.rank_contacts())
    if command == "select-campaign":
        return _step_json(await orch.select_campaign(args.contact_ids, args.type))
    if command == "generate":
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        try:
            result = await orch.generate_campaigns(cancel)
        finally:
            loop.remove_signal_handler(signal.SIGINT)
        mission = result.mission
        return {
            **_step_json(result),
            "campaigns_ready": len(mission.campaigns),
            "campaigns_pending": len(mission.campaign_contact_ids) - len(mission.campaigns),
        }
    if command == "export":
        return orch.export_csv() if args.format == "csv" else orch.export_json()

    msg = f"Unknown command: {command}"
    raise ValueError(msg)


def _emit(output: dict[str, Any] | str, destination: str | None = None) -> None:
    text = output if isinstance(output, str) else json.dumps(output, indent=2, default=str)
    if destination:
        Path(destination).write_text(text)
        print(f"Written to {destination}")
    else:
        print(text)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "set-icp":
            output = cmd_set_icp(args, settings)
        else:
            output = asyncio.run(run(args, settings))
    except TargetingError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        sys.exit(1)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (sqlite3.Error, OSError) as e:
        msg = f"Database {settings.database.path} unavailable: {e}"
        failure = PersistenceFailure(msg)
        print(json.dumps(failure.to_dict(), indent=2), file=sys.stderr)
        sys.exit(1)

    _emit(output, getattr(args, "output", None))


if __name__ == "__main__":
    main()
