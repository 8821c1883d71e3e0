"""Rich table renderer for SkillBridge CLI output."""

from __future__ import annotations

from datetime import datetime

from rich import box
from rich.console import Console
from rich.markup import escape as rich_escape
from rich.table import Table
from rich.text import Text

from skillbridge.models import (
    BulkSyncResult,
    ManagedSkill,
    OnboardingPlan,
    ToolStatus,
    UpdateResult,
)
from skillbridge.styles import TARGET_STATUS_STYLES


def _format_ms(value: int | None) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M")


class RichRenderer:
    """Builds and prints rich tables for skills, tools and onboarding."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    def _format_status(self, status: str) -> Text:
        return Text(status, style=TARGET_STATUS_STYLES.get(status, ""))

    def build_skills_table(self, skills: list[ManagedSkill]) -> Table:
        table = Table(box=box.ROUNDED, title="Managed skills")
        table.add_column("NAME", style="bold")
        table.add_column("SOURCE")
        table.add_column("TOOLS")
        table.add_column("LAST SYNC")
        table.add_column("ID", style="dim")

        if not skills:
            table.add_row(Text("No skills managed yet.", style="dim"), "", "", "", "")
            return table

        for skill in skills:
            tools = Text()
            for i, target in enumerate(sorted(skill.targets, key=lambda t: t.tool)):
                if i:
                    tools.append(", ")
                tools.append(
                    target.tool, style=TARGET_STATUS_STYLES.get(target.status.value, "")
                )
            table.add_row(
                rich_escape(skill.name),
                skill.source_type.value,
                tools if skill.targets else Text("-", style="dim"),
                _format_ms(skill.last_sync_at),
                skill.id[:8],
            )
        return table

    def build_skill_detail(self, skill: ManagedSkill) -> Table:
        table = Table(box=box.SIMPLE, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Name", rich_escape(skill.name))
        table.add_row("ID", skill.id)
        table.add_row("Source", skill.source_type.value)
        table.add_row("Source ref", rich_escape(skill.source_ref or "-"))
        table.add_row("Revision", skill.source_revision or "-")
        table.add_row("Central path", rich_escape(skill.central_path))
        table.add_row("Content hash", skill.content_hash or "-")
        table.add_row("Updated", _format_ms(skill.updated_at))
        table.add_row("Last sync", _format_ms(skill.last_sync_at))
        return table

    def build_targets_table(self, skill: ManagedSkill) -> Table:
        table = Table(box=box.ROUNDED, title=f"Targets of {rich_escape(skill.name)}")
        table.add_column("TOOL", style="bold")
        table.add_column("MODE")
        table.add_column("STATUS")
        table.add_column("SYNCED")
        table.add_column("PATH")
        for target in sorted(skill.targets, key=lambda t: t.tool):
            status = self._format_status(target.status.value)
            if target.error_message:
                status.append(f" ({target.error_message})", style="dim")
            table.add_row(
                target.tool,
                target.mode.value,
                status,
                _format_ms(target.synced_at),
                rich_escape(target.target_path),
            )
        return table

    def build_tools_table(self, status: ToolStatus) -> Table:
        newly = set(status.newly_installed)
        table = Table(box=box.ROUNDED, title="Tools")
        table.add_column("KEY", style="bold")
        table.add_column("NAME")
        table.add_column("INSTALLED")
        table.add_column("SKILLS DIR")
        for tool in status.tools:
            if tool.key in newly:
                installed = Text("new", style="bold cyan")
            elif tool.installed:
                installed = Text("yes", style="green")
            else:
                installed = Text("no", style="dim")
            label = tool.label + (" (copy)" if tool.force_copy else "")
            table.add_row(tool.key, rich_escape(label), installed, rich_escape(tool.skills_dir))
        return table

    def build_onboarding_table(self, plan: OnboardingPlan) -> Table:
        table = Table(
            box=box.ROUNDED,
            title=(
                f"{plan.total_skills_found} unmanaged skill(s) "
                f"in {plan.total_tools_scanned} tool(s)"
            ),
        )
        table.add_column("SKILL", style="bold")
        table.add_column("TOOL")
        table.add_column("KIND")
        table.add_column("FINGERPRINT", style="dim")
        table.add_column("CONFLICTS WITH")
        for group in plan.groups:
            for i, variant in enumerate(group.variants):
                name = Text(group.name if i == 0 else "")
                if i == 0 and group.has_conflict:
                    name.append(" !", style="bold red")
                table.add_row(
                    name,
                    variant.tool_label or variant.tool,
                    "link" if variant.is_link else "dir",
                    (variant.fingerprint or "unreadable")[:19],
                    ", ".join(variant.conflicting_tools) or "-",
                )
        return table

    def build_bulk_table(self, result: BulkSyncResult) -> Table:
        table = Table(box=box.ROUNDED, title="Sync results")
        table.add_column("TOOL", style="bold")
        table.add_column("RESULT")
        table.add_column("DETAIL")
        for item in result.succeeded:
            outcome = "unchanged" if item.unchanged else f"synced ({item.mode_used.value})"
            table.add_row(item.tool, Text(outcome, style="green"), rich_escape(item.target_path))
        for failure in result.failed:
            table.add_row(
                failure.tool, Text("failed", style="bold red"), rich_escape(failure.error)
            )
        return table

    def build_update_table(self, result: UpdateResult) -> Table:
        table = Table(box=box.ROUNDED, title=f"Update of {rich_escape(result.name)}")
        table.add_column("TOOL", style="bold")
        table.add_column("RESULT")
        for tool in result.updated_targets:
            table.add_row(tool, Text("updated", style="green"))
        for failure in result.failed_targets:
            table.add_row(
                failure.tool, Text(f"failed: {failure.error}", style="bold red")
            )
        return table

    def print(self, *renderables: object) -> None:
        self._console.print(*renderables)
