"""Agenda: deadline reminders and calendar day aggregation for tasks and meetings."""

from __future__ import annotations

__version__ = "0.1.0"
