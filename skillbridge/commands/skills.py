"""Skill command implementations for the SkillBridge CLI.

Commands:
    skillbridge list                            List managed skills
    skillbridge show <skill>                    Show a skill and its targets
    skillbridge install <path>                  Install from a local path
    skillbridge install --git <ref>             Install from a git source
    skillbridge candidates <ref>                List skills inside a git source
    skillbridge delete <skill> [--force]        Delete a skill everywhere
    skillbridge update <skill> | --all          Refresh content and targets
    skillbridge sync <skill> <tool>             Project a skill into a tool
    skillbridge unsync <skill> <tool>           Remove a skill from a tool
    skillbridge sync-new [--tool ...]           Sync all skills to new tools
    skillbridge tools                           Show tool status
    skillbridge onboard scan|import             Adopt existing tool skills
    skillbridge cache ...                       Git cache administration
    skillbridge prefs                           Show or change preferences
    skillbridge relocate <path>                 Move the central store
"""

from __future__ import annotations

from skillbridge.commands.renderers.rich_renderer import RichRenderer
from skillbridge.errors import PartialUpdateFailure, SkillBridgeError
from skillbridge.models import (
    ImportResolution,
    OnboardingGroup,
    SyncMode,
)
from skillbridge.service import SkillService
from skillbridge.utils import CancelToken


def _confirm_action(prompt: str) -> bool:
    """Prompt for confirmation. Returns True if confirmed."""
    try:
        confirm = input(f"{prompt} [y/N]: ").strip().lower()
        return confirm == "y"
    except (EOFError, KeyboardInterrupt):
        print("\nCancelled.")
        return False


# ──────────────────────────────────────────────────────────
# Catalog
# ──────────────────────────────────────────────────────────


def cmd_skills_list(service: SkillService, renderer: RichRenderer | None = None) -> None:
    """List all managed skills."""
    renderer = renderer or RichRenderer()
    renderer.print(renderer.build_skills_table(service.list_skills()))


def cmd_skills_show(
    service: SkillService, ident: str, renderer: RichRenderer | None = None
) -> bool:
    """Show details of a managed skill."""
    renderer = renderer or RichRenderer()
    skill = service.resolve_skill(ident)
    renderer.print(renderer.build_skill_detail(skill))
    if skill.targets:
        renderer.print(renderer.build_targets_table(skill))
    else:
        print("  Not synced to any tool.")
    return True


def cmd_skills_install(
    service: SkillService,
    source: str,
    name: str | None = None,
    git: bool = False,
    subpath: str | None = None,
    sync: bool = False,
    renderer: RichRenderer | None = None,
) -> bool:
    """Install a skill from a local path or a git source.

    Returns:
        True if installed.
    """
    if git:
        result = service.install_git(source, subpath=subpath, name=name)
    else:
        result = service.install_local(source, name=name)
    print(f"Installed '{result.name}' ({result.skill_id[:8]}) at {result.central_path}")

    if sync:
        bulk = service.sync_to_preferred(result.skill_id)
        if bulk.succeeded or bulk.failed:
            renderer = renderer or RichRenderer()
            renderer.print(renderer.build_bulk_table(bulk))
        else:
            print("  No preferred tools installed; nothing synced.")
    return True


def cmd_skills_candidates(service: SkillService, ref: str) -> bool:
    """List skills found inside a git source."""
    candidates = service.list_git_candidates(ref)
    if not candidates:
        print(f"No skills found in {ref}.")
        return False
    for candidate in candidates:
        desc = candidate.description[:60] if candidate.description else ""
        print(f"  {candidate.name:<25} {candidate.subpath or '/':<30} {desc}")
    return True


def cmd_skills_delete(
    service: SkillService,
    ident: str,
    force: bool = False,
    dry_run: bool = False,
) -> bool:
    """Delete a skill from the store and from every tool.

    Returns:
        True if deleted, False otherwise.
    """
    skill = service.resolve_skill(ident)
    tools = ", ".join(t.tool for t in skill.targets) or "no tools"

    if dry_run:
        print(f"[dry-run] Would delete '{skill.name}' and remove it from {tools}.")
        return False

    if not force and not _confirm_action(
        f"Delete skill '{skill.name}' (synced to {tools})?"
    ):
        return False

    service.delete_skill(skill.id)
    print(f"Deleted '{skill.name}' ({len(skill.targets)} target(s) removed).")
    return True


def cmd_skills_update(
    service: SkillService,
    ident: str | None = None,
    update_all: bool = False,
    renderer: RichRenderer | None = None,
) -> bool:
    """Refresh one or all skills and re-sync their targets.

    Returns:
        True if every target was updated.
    """
    renderer = renderer or RichRenderer()
    if update_all:
        skills = service.list_skills()
    elif ident:
        skills = [service.resolve_skill(ident)]
    else:
        print("Specify a skill or --all.")
        return False

    ok = True
    for skill in skills:
        try:
            result = service.update_skill(skill.id)
        except SkillBridgeError as e:
            print(f"  {skill.name}: {e}")
            ok = False
            continue
        state = "changed" if result.content_changed else "unchanged"
        print(f"{result.name}: content {state}")
        if result.updated_targets or result.failed_targets:
            renderer.print(renderer.build_update_table(result))
        try:
            result.raise_for_failures()
        except PartialUpdateFailure as e:
            print(f"  {e}")
            ok = False
    return ok


# ──────────────────────────────────────────────────────────
# Sync
# ──────────────────────────────────────────────────────────


def cmd_skills_sync(
    service: SkillService,
    ident: str,
    tool: str,
    mode: str | None = None,
    overwrite: bool = False,
) -> bool:
    """Sync a skill into a tool."""
    skill = service.resolve_skill(ident)
    result = service.set_sync(
        skill.id,
        tool,
        True,
        mode=SyncMode(mode) if mode else None,
        overwrite=overwrite,
    )
    if result is None:
        return False
    if result.unchanged:
        print(f"'{skill.name}' already up to date in {tool}.")
    else:
        print(f"Synced '{skill.name}' to {tool} ({result.mode_used.value}): {result.target_path}")
    if mode and result.mode_used.value != mode:
        print(f"  Note: {mode} not possible here, used {result.mode_used.value}.")
    return True


def cmd_skills_unsync(service: SkillService, ident: str, tool: str) -> bool:
    """Remove a skill from a tool."""
    skill = service.resolve_skill(ident)
    service.set_sync(skill.id, tool, False)
    print(f"Removed '{skill.name}' from {tool}.")
    return True


def cmd_skills_sync_new(
    service: SkillService,
    tools: list[str] | None = None,
    renderer: RichRenderer | None = None,
) -> bool:
    """Sync every managed skill into newly installed tools.

    Ctrl-C stops pairs that have not started yet; the summary of what
    did run is still shown.
    """
    renderer = renderer or RichRenderer()
    result = service.sync_all_new_tools(tools, cancel=CancelToken())

    if not result.succeeded and not result.failed:
        print("Nothing to sync.")
        return True
    renderer.print(renderer.build_bulk_table(result))
    print(f"{len(result.succeeded)} succeeded, {len(result.failed)} failed.")
    if result.cancelled:
        print("Cancelled before every skill was synced; run sync-new again to finish.")
    return not result.failed


# ──────────────────────────────────────────────────────────
# Tools
# ──────────────────────────────────────────────────────────


def cmd_tools(service: SkillService, renderer: RichRenderer | None = None) -> None:
    """Show known tools and which ones are installed."""
    renderer = renderer or RichRenderer()
    status = service.tool_status()
    renderer.print(renderer.build_tools_table(status))
    if status.newly_installed:
        print(
            f"New tools detected: {', '.join(status.newly_installed)}. "
            "Run 'skillbridge sync-new' to sync existing skills to them."
        )


# ──────────────────────────────────────────────────────────
# Onboarding
# ──────────────────────────────────────────────────────────


def cmd_onboard_scan(service: SkillService, renderer: RichRenderer | None = None) -> bool:
    """Show unmanaged skills found in tool directories."""
    renderer = renderer or RichRenderer()
    plan = service.onboarding_scan()
    if not plan.groups:
        print(f"No unmanaged skills found in {plan.total_tools_scanned} tool(s).")
        return False
    renderer.print(renderer.build_onboarding_table(plan))
    return True


def cmd_onboard_import(
    service: SkillService,
    name: str,
    tool: str | None = None,
    skip: bool = False,
) -> bool:
    """Import one onboarding group using the variant from ``tool``."""
    if not skip and not tool:
        print("Specify --tool to choose the variant to import, or --skip.")
        return False
    result = service.onboarding_import(name, ImportResolution(tool=tool, skip=skip))
    if result is None:
        print(f"Skipped '{name}'.")
        return False
    print(f"Imported '{result.name}' ({result.skill_id[:8]}) from {tool}.")
    return True


class OnboardingWizard:
    """Interactive onboarding: pick a variant for every discovered skill."""

    def __init__(self, service: SkillService, renderer: RichRenderer | None = None) -> None:
        self._service = service
        self._renderer = renderer or RichRenderer()

    def _show_menu(self, items: list[str], title: str) -> int | None:
        """Display a *simple_term_menu* menu.

        Returns the selected index, or ``None`` on ESC / Ctrl-C.
        """
        from simple_term_menu import TerminalMenu

        from skillbridge.styles import TERM_MENU_STYLES

        menu = TerminalMenu(items, title=title, **TERM_MENU_STYLES)
        result = menu.show()
        return int(result) if result is not None else None

    def _choose(self, group: OnboardingGroup) -> ImportResolution | None:
        """Ask which variant to import. None aborts the whole wizard."""
        from skillbridge.styles import build_numbered_items

        labels = []
        for variant in group.variants:
            kind = "link" if variant.is_link else "dir"
            fp = (variant.fingerprint or "unreadable")[7:19]
            labels.append(f"{variant.tool_label or variant.tool:<16} {kind:<4} {fp}")
        items = build_numbered_items(labels, footer_items=[("s", "Skip"), ("q", "Quit")])

        title = f"Import '{group.name}'"
        if group.has_conflict:
            title += " (variants differ)"
        index = self._show_menu(items, title)
        if index is None:
            return None
        if index < len(group.variants):
            return ImportResolution(tool=group.variants[index].tool)
        if items[index].startswith("[s]"):
            return ImportResolution(skip=True)
        if items[index].startswith("[q]"):
            return None
        return ImportResolution(skip=True)

    def run(self) -> int:
        """Walk every group. Returns the number of imported skills."""
        try:
            from simple_term_menu import TerminalMenu  # noqa: F401
        except ImportError:
            print("Interactive onboarding requires simple-term-menu.")
            return 0

        plan = self._service.onboarding_scan()
        if not plan.groups:
            print("No unmanaged skills found.")
            return 0
        self._renderer.print(self._renderer.build_onboarding_table(plan))

        imported = 0
        for group in plan.groups:
            if not group.has_conflict:
                resolution = ImportResolution(tool=group.variants[0].tool)
            else:
                resolution = self._choose(group)
                if resolution is None:
                    print("Stopped.")
                    break
            try:
                result = self._service.onboarding_import(group.name, resolution)
            except SkillBridgeError as e:
                print(f"  {group.name}: {e}")
                continue
            if result is not None:
                imported += 1
                print(f"  Imported '{result.name}' from {resolution.tool}")
        print(f"Imported {imported} skill(s).")
        return imported


# ──────────────────────────────────────────────────────────
# Cache & preferences
# ──────────────────────────────────────────────────────────


def cmd_cache(service: SkillService, action: str, value: int | None = None) -> bool:
    """Git cache administration."""
    if action == "path":
        print(service.get_cache_path())
    elif action == "clear":
        print(f"Removed {service.clear_cache()} cached source(s).")
    elif action == "cleanup":
        print(f"Removed {service.cleanup_cache(value)} expired source(s).")
    elif action == "ttl":
        if value is not None:
            service.set_cache_ttl_secs(value)
        print(f"Cache TTL: {service.get_cache_ttl_secs()}s")
    elif action == "days":
        if value is not None:
            service.set_cache_cleanup_days(value)
        print(f"Cleanup after: {service.get_cache_cleanup_days()} day(s)")
    else:
        print(f"Unknown cache action: {action}")
        return False
    return True


def cmd_prefs(
    service: SkillService,
    preferred_tools: list[str] | None = None,
    reset_tools: bool = False,
) -> None:
    """Show preferences, optionally setting the preferred tools."""
    if reset_tools:
        service.set_preferred_tools(None)
    elif preferred_tools is not None:
        service.set_preferred_tools(preferred_tools)

    tools = service.get_preferred_tools()
    if tools is None:
        tools_str = "(not set: all installed tools)"
    else:
        tools_str = ", ".join(tools) or "(none)"
    print(f"  Central store:   {service.get_central_path()}")
    print(f"  Preferred tools: {tools_str}")
    print(f"  Cache TTL:       {service.get_cache_ttl_secs()}s")
    print(f"  Cache cleanup:   {service.get_cache_cleanup_days()} day(s)")


def cmd_relocate(
    service: SkillService, path: str, renderer: RichRenderer | None = None
) -> bool:
    """Move the central store and re-point synced targets."""
    old = service.get_central_path()
    result = service.relocate_central(path)
    print(f"Moved central store from {old} to {service.get_central_path()}.")
    if result.failed:
        renderer = renderer or RichRenderer()
        renderer.print(renderer.build_bulk_table(result))
        return False
    return True
