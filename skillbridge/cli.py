#!/usr/bin/env python3
"""SkillBridge CLI - Main entry point for skill management."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from skillbridge import __version__
from skillbridge.commands import skills as commands
from skillbridge.context import SkillContext
from skillbridge.errors import SkillBridgeError
from skillbridge.logging_config import set_debug_mode, setup_logging
from skillbridge.models import SyncMode
from skillbridge.service import SkillService

logger = logging.getLogger(__name__)


def _data_dir(args: argparse.Namespace) -> Path | None:
    return Path(args.data_dir).expanduser() if args.data_dir else None


def _service(args: argparse.Namespace) -> SkillService:
    data_dir = _data_dir(args)
    home = Path(args.home).expanduser() if args.home else None
    return SkillService(SkillContext.create(home=home, data_dir=data_dir))


def _exit_with(ok: bool | None) -> None:
    if ok is False:
        sys.exit(1)


def cmd_list(args):
    """List managed skills."""
    commands.cmd_skills_list(_service(args))


def cmd_show(args):
    """Show one skill."""
    _exit_with(commands.cmd_skills_show(_service(args), args.skill))


def cmd_install(args):
    """Install a skill from a local path or git."""
    _exit_with(
        commands.cmd_skills_install(
            _service(args),
            args.source,
            name=args.name,
            git=args.git,
            subpath=args.subpath,
            sync=args.sync,
        )
    )


def cmd_candidates(args):
    """List the skills in a git source."""
    _exit_with(commands.cmd_skills_candidates(_service(args), args.ref))


def cmd_delete(args):
    """Delete a skill."""
    _exit_with(
        commands.cmd_skills_delete(
            _service(args), args.skill, force=args.force, dry_run=args.dry_run
        )
    )


def cmd_update(args):
    """Update one or all skills."""
    _exit_with(
        commands.cmd_skills_update(_service(args), args.skill, update_all=args.all)
    )


def cmd_sync(args):
    """Sync a skill into a tool."""
    _exit_with(
        commands.cmd_skills_sync(
            _service(args),
            args.skill,
            args.tool,
            mode=args.mode,
            overwrite=args.overwrite,
        )
    )


def cmd_unsync(args):
    """Remove a skill from a tool."""
    _exit_with(commands.cmd_skills_unsync(_service(args), args.skill, args.tool))


def cmd_sync_new(args):
    """Sync all skills into newly installed tools."""
    _exit_with(commands.cmd_skills_sync_new(_service(args), args.tool or None))


def cmd_tools(args):
    """Show tool status."""
    commands.cmd_tools(_service(args))


def cmd_onboard(args):
    """Onboarding scan/import."""
    service = _service(args)
    if args.onboard_command == "scan":
        commands.cmd_onboard_scan(service)
    elif args.onboard_command == "import":
        if args.interactive:
            commands.OnboardingWizard(service).run()
        else:
            _exit_with(
                commands.cmd_onboard_import(
                    service, args.name, tool=args.tool, skip=args.skip
                )
            )


def cmd_cache(args):
    """Git cache administration."""
    _exit_with(commands.cmd_cache(_service(args), args.action, args.value))


def cmd_prefs(args):
    """Show or change preferences."""
    commands.cmd_prefs(
        _service(args),
        preferred_tools=args.preferred_tools,
        reset_tools=args.reset_tools,
    )


def cmd_relocate(args):
    """Move the central store."""
    _exit_with(commands.cmd_relocate(_service(args), args.path))


def cmd_serve(args):
    """Run the HTTP API."""
    from skillbridge.server import run_server

    run_server(_service(args), host=args.host, port=args.port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SkillBridge - one skill store, every AI coding tool",
        prog="skillbridge",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--data-dir", help="Data directory (default: ~/.skillbridge)")
    parser.add_argument("--home", help="Home directory tool paths are resolved against")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    p_list = subparsers.add_parser("list", help="List managed skills")
    p_list.set_defaults(func=cmd_list)

    p_show = subparsers.add_parser("show", help="Show a skill and its targets")
    p_show.add_argument("skill", help="Skill id or name")
    p_show.set_defaults(func=cmd_show)

    p_install = subparsers.add_parser("install", help="Install a skill")
    p_install.add_argument("source", help="Local path, or git reference with --git")
    p_install.add_argument("--git", action="store_true", help="Treat source as a git reference")
    p_install.add_argument("--subpath", help="Skill directory inside the git source")
    p_install.add_argument("--name", help="Override the skill name")
    p_install.add_argument(
        "--sync", action="store_true", help="Sync to preferred tools after installing"
    )
    p_install.set_defaults(func=cmd_install)

    p_cand = subparsers.add_parser("candidates", help="List skills in a git source")
    p_cand.add_argument("ref", help="Git reference")
    p_cand.set_defaults(func=cmd_candidates)

    p_delete = subparsers.add_parser("delete", help="Delete a skill everywhere")
    p_delete.add_argument("skill", help="Skill id or name")
    p_delete.add_argument("--force", "-f", action="store_true", help="Skip confirmation")
    p_delete.add_argument("--dry-run", action="store_true", help="Show what would be deleted")
    p_delete.set_defaults(func=cmd_delete)

    p_update = subparsers.add_parser("update", help="Refresh skill content and targets")
    p_update.add_argument("skill", nargs="?", help="Skill id or name")
    p_update.add_argument("--all", "-a", action="store_true", help="Update every skill")
    p_update.set_defaults(func=cmd_update)

    p_sync = subparsers.add_parser("sync", help="Sync a skill into a tool")
    p_sync.add_argument("skill", help="Skill id or name")
    p_sync.add_argument("tool", help="Tool key (see 'skillbridge tools')")
    p_sync.add_argument("--mode", choices=[m.value for m in SyncMode], help="Sync mode")
    p_sync.add_argument(
        "--overwrite", action="store_true", help="Replace unmanaged content at the target"
    )
    p_sync.set_defaults(func=cmd_sync)

    p_unsync = subparsers.add_parser("unsync", help="Remove a skill from a tool")
    p_unsync.add_argument("skill", help="Skill id or name")
    p_unsync.add_argument("tool", help="Tool key")
    p_unsync.set_defaults(func=cmd_unsync)

    p_new = subparsers.add_parser("sync-new", help="Sync all skills to newly installed tools")
    p_new.add_argument("--tool", action="append", help="Tool key (repeatable)")
    p_new.set_defaults(func=cmd_sync_new)

    p_tools = subparsers.add_parser("tools", help="Show tool status")
    p_tools.set_defaults(func=cmd_tools)

    p_onboard = subparsers.add_parser("onboard", help="Adopt skills already in tool dirs")
    onboard_sub = p_onboard.add_subparsers(dest="onboard_command", help="Onboarding commands")
    onboard_sub.add_parser("scan", help="Show unmanaged skills")
    p_import = onboard_sub.add_parser("import", help="Import a discovered skill")
    p_import.add_argument("name", nargs="?", help="Skill name (group)")
    p_import.add_argument("--tool", help="Tool whose variant to import")
    p_import.add_argument("--skip", action="store_true", help="Skip this skill")
    p_import.add_argument(
        "--interactive", "-i", action="store_true", help="Resolve every skill interactively"
    )
    p_onboard.set_defaults(func=cmd_onboard)

    p_cache = subparsers.add_parser("cache", help="Git cache administration")
    p_cache.add_argument("action", choices=["path", "clear", "cleanup", "ttl", "days"])
    p_cache.add_argument("value", nargs="?", type=int, help="New value (ttl/days/cleanup)")
    p_cache.set_defaults(func=cmd_cache)

    p_prefs = subparsers.add_parser("prefs", help="Show or change preferences")
    p_prefs.add_argument(
        "--preferred-tools", nargs="*", metavar="TOOL", help="Tools new skills sync to"
    )
    p_prefs.add_argument(
        "--reset-tools", action="store_true", help="Forget the preferred tool choice"
    )
    p_prefs.set_defaults(func=cmd_prefs)

    p_relocate = subparsers.add_parser("relocate", help="Move the central store")
    p_relocate.add_argument("path", help="New central store directory")
    p_relocate.set_defaults(func=cmd_relocate)

    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    p_serve.add_argument("--port", type=int, default=8765, help="Port")
    p_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_path = setup_logging(command=args.command, data_dir=_data_dir(args))
    if args.debug:
        set_debug_mode(True)
    if log_path is not None:
        logger.debug(f"Logging to {log_path}")

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "onboard":
        if args.onboard_command is None:
            parser.parse_args(["onboard", "--help"])
        if (
            args.onboard_command == "import"
            and not args.interactive
            and not args.name
        ):
            print("Specify a skill name or use --interactive.")
            sys.exit(1)

    try:
        args.func(args)
    except (SkillBridgeError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
