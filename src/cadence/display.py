#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from typing import Any

from rich.console import Console
from rich.table import Table

from cadence.scheduling.time_utils import parse_instant


def _kind(appointment: dict[str, Any]) -> str:
    if appointment.get("isException"):
        return "rescheduled"
    if appointment.get("recurrenceRuleId") is None:
        return "one-off"
    return "recurring"


def schedule_table(appointments: list[dict[str, Any]], title: str | None = None) -> Table:
    """Build a `rich` table of appointment payloads with the following format

    ┏━━━━━━━━━━━━━━━━━━┳━━━━━━━┳━━━━━━━━━━━━━┳━━━━━━━━━━━┳━━━━━━━━━━━━━━┓
    ┃ Starts (UTC)     ┃ Ends  ┃ Patient     ┃ Kind      ┃ Note         ┃
    ┡━━━━━━━━━━━━━━━━━━╇━━━━━━━╇━━━━━━━━━━━━━╇━━━━━━━━━━━╇━━━━━━━━━━━━━━┩

    The patient column shows the patient's name when the payload carries a
    `patient` entry and the patient id otherwise.
    """  # noqa

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Starts (UTC)", style="cyan", no_wrap=True)
    table.add_column("Ends", style="cyan", no_wrap=True)
    table.add_column("Patient", style="white")
    table.add_column("Kind", justify="center", style="green")
    table.add_column("Note", style="dim")
    for appointment in appointments:
        start = parse_instant(appointment["startDateTime"])
        end = parse_instant(appointment["endDateTime"])
        patient = appointment.get("patient", {}).get("name", appointment["patientId"])
        table.add_row(
            start.strftime("%a %Y-%m-%d %H:%M"),
            end.strftime("%H:%M"),
            patient,
            _kind(appointment),
            appointment.get("note") or "",
        )
    return table


def display_schedule(appointments: list[dict[str, Any]], title: str | None = None):
    """Print appointment payloads as a `rich` table."""
    console = Console()
    if not appointments:
        console.print("[yellow]No appointments in this window.[/yellow]")
        return
    console.print(schedule_table(appointments, title=title))
