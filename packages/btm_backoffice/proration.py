"""Calendar-month windows and fixed-cost proration for ATM profiles.

Fixed monthly costs (rent and the two cash-management fees) are charged only
for whole calendar months a machine was in service: the month after
installation through the month before removal, clipped to the reporting
window. Platform attribution follows the profile's platform-switch date rather
than the platform tag stored on each transaction.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from .models import Platform


class ProfileLike(Protocol):
    id: str
    atm_id: str | None
    platform: str | None
    platform_switch_date: date | None
    installed_date: date | None
    removed_date: date | None


def month_index(d: date) -> int:
    return d.year * 12 + d.month


def first_of_month(d: date) -> date:
    return d.replace(day=1)


def last_of_month(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


@dataclass(frozen=True, slots=True)
class MonthWindow:
    """A closed date range covering whole calendar months.

    ``start`` is the first day of the first month and ``end`` the last day of
    the last month.
    """

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start.day != 1:
            raise ValueError("MonthWindow.start must be the first day of a month")
        if self.end != last_of_month(self.end):
            raise ValueError("MonthWindow.end must be the last day of a month")
        if self.end < self.start:
            raise ValueError("MonthWindow.end must not precede start")

    @classmethod
    def for_months(cls, year: int, start_month: int, end_month: int | None = None) -> MonthWindow:
        end_month = start_month if end_month is None else end_month
        if not (1 <= start_month <= 12 and 1 <= end_month <= 12):
            raise ValueError("months must be between 1 and 12")
        if end_month < start_month:
            raise ValueError("end_month must not precede start_month")
        return cls(date(year, start_month, 1), last_of_month(date(year, end_month, 1)))

    @classmethod
    def single(cls, year: int, month: int) -> MonthWindow:
        return cls.for_months(year, month, month)

    @classmethod
    def spanning(cls, first: date, last: date) -> MonthWindow:
        """Smallest whole-month window containing both dates."""
        return cls(first_of_month(first), last_of_month(last))

    @property
    def start_index(self) -> int:
        return month_index(self.start)

    @property
    def end_index(self) -> int:
        return month_index(self.end)

    def months(self) -> list[date]:
        """First day of every month in the window, in order."""
        out: list[date] = []
        for idx in range(self.start_index, self.end_index + 1):
            year, month0 = divmod(idx - 1, 12)
            out.append(date(year, month0 + 1, 1))
        return out

    def contains(self, d: date | None) -> bool:
        return d is not None and self.start <= d <= self.end

    def label(self) -> str:
        if self.start_index == self.end_index:
            return self.start.strftime("%B %Y")
        return f"{self.start.strftime('%B %Y')} - {self.end.strftime('%B %Y')}"


def expense_months(
    installed: date | None, removed: date | None, window: MonthWindow
) -> int:
    """Count chargeable months for one installation inside ``window``.

    The install month and the removal month are never charged; without an
    install date nothing is charged.
    """

    if installed is None:
        return 0
    first = max(month_index(installed) + 1, window.start_index)
    last = window.end_index
    if removed is not None:
        last = min(last, month_index(removed) - 1)
    return max(0, last - first + 1)


def is_active_during(profile: ProfileLike, window: MonthWindow) -> bool:
    """Installed by the window's end and not removed before its start."""

    if profile.installed_date is None or profile.installed_date > window.end:
        return False
    return profile.removed_date is None or profile.removed_date >= window.start


def _current_platform(profile: ProfileLike) -> Platform | None:
    return Platform(profile.platform) if profile.platform else None


def effective_platform(profile: ProfileLike, tx_date: date | None) -> Platform | None:
    """Platform a transaction on ``tx_date`` belongs to for this profile.

    Before the switch date the machine ran on Denet; from the switch date on
    it runs on the profile's current platform.
    """

    switch = profile.platform_switch_date
    if switch is not None and tx_date is not None and tx_date < switch:
        return Platform.DENET
    return _current_platform(profile)


def window_platforms(profile: ProfileLike, window: MonthWindow) -> frozenset[Platform]:
    """Platforms the profile counts under for ``window``.

    A window that straddles the switch date counts under both.
    """

    current = _current_platform(profile)
    switch = profile.platform_switch_date
    if switch is None or window.start >= switch:
        return frozenset({current}) if current else frozenset()
    if window.end < switch:
        return frozenset({Platform.DENET})
    return frozenset({Platform.DENET, current} if current else {Platform.DENET})


def platform_for_window(
    profile: ProfileLike, window: MonthWindow, selected: Platform | None = None
) -> Platform | None:
    """Platform a report row shows for ``profile``, or ``None`` when excluded.

    With no filter the row shows Denet for a window entirely before the switch
    date and the profile's platform otherwise. With a filter the row shows the
    filter platform when the profile counts under it.
    """

    if selected is not None:
        return selected if selected in window_platforms(profile, window) else None
    switch = profile.platform_switch_date
    if switch is not None and window.end < switch:
        return Platform.DENET
    return _current_platform(profile)


def _covers(profile: ProfileLike, d: date) -> bool:
    if profile.installed_date is None or profile.installed_date > d:
        return False
    return profile.removed_date is None or d <= profile.removed_date


def attribute_profile[P: ProfileLike](profiles: Sequence[P], tx_date: date | None) -> P | None:
    """Pick the installation of one ATM id that a transaction belongs to.

    The profile whose ``[installed, removed]`` range contains the date wins,
    then the active profile, then the most recently installed one.
    """

    if not profiles:
        return None
    if tx_date is not None:
        for p in profiles:
            if _covers(p, tx_date):
                return p
    for p in profiles:
        if p.removed_date is None:
            return p
    return max(profiles, key=lambda p: p.installed_date or date.min)


def group_by_atm_id[P: ProfileLike](profiles: Iterable[P]) -> dict[str, list[P]]:
    groups: dict[str, list[P]] = {}
    for p in profiles:
        if p.atm_id:
            groups.setdefault(p.atm_id, []).append(p)
    return groups


__all__ = [
    "MonthWindow",
    "ProfileLike",
    "month_index",
    "first_of_month",
    "last_of_month",
    "expense_months",
    "is_active_during",
    "effective_platform",
    "window_platforms",
    "platform_for_window",
    "attribute_profile",
    "group_by_atm_id",
]
