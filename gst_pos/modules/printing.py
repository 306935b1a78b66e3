"""
Label printer selection.

Only the choice of device is handled here; rendering and sending the label
to the print driver is the UI's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ..utils.loggers import get_logger

_log = get_logger(__name__)


@dataclass(frozen=True)
class PrinterChoice:
    device_name: Optional[str]
    note: str = ""


def available_printers() -> list[str]:
    from PySide6.QtPrintSupport import QPrinterInfo

    return [str(n) for n in QPrinterInfo.availablePrinterNames()]


def default_printer() -> Optional[str]:
    from PySide6.QtPrintSupport import QPrinterInfo

    name = QPrinterInfo.defaultPrinterName()
    return str(name) if name else None


def resolve_label_printer(
    requested: Optional[str] = None,
    saved: Optional[str] = None,
    printers: Optional[Sequence[str]] = None,
    default: Optional[str] = None,
) -> PrinterChoice:
    """
    Pick the device for a label print job.

    Preference order is the explicitly requested printer, then the saved
    store setting, then the system default. A preferred name that is not
    installed falls through to the next candidate, and the returned note
    says so. device_name is None when nothing usable is found.
    """
    if printers is None:
        printers = available_printers()
        if default is None:
            default = default_printer()
    installed = set(printers)

    notes: list[str] = []
    for label, name in (("Requested", requested), ("Saved", saved)):
        name = (name or "").strip()
        if not name:
            continue
        if name in installed:
            return PrinterChoice(name, " ".join(notes))
        notes.append(f'{label} printer "{name}" not found.')

    if default and default in installed:
        if notes:
            notes.append(f'Using default printer "{default}".')
        return PrinterChoice(default, " ".join(notes))

    notes.append("No label printer available.")
    _log.warning("Label printer not resolved: %s", " ".join(notes))
    return PrinterChoice(None, " ".join(notes))


__all__ = ["PrinterChoice", "available_printers", "default_printer", "resolve_label_printer"]
