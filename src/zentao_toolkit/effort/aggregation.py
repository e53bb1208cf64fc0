"""Monthly effort aggregation.

Tasks stream in one execution at a time. `EffortAggregator.fold` filters each
batch and adds the remaining tasks' consumed hours to their owner's running
total. `fold` contains no `await`, so batches completing in any order on the
event loop are folded one at a time.

A task counts towards a month when:
- its status is one of the accepted statuses (case-insensitive)
- its real start time parses and falls in `[month start, next month start)`
- an owner can be resolved (finisher, then closer, then assignee)
- it has non-zero consumed hours
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime

from zentao_toolkit.api.models import User, WorkItem

DEFAULT_ACCEPTED_STATUSES: frozenset[str] = frozenset({"done", "closed"})
HOURS_PER_DAY = 8

OwnerAccessor = Callable[[WorkItem], str | None]

# Tried in order; the first role with an account wins.
OWNER_PRIORITY: tuple[tuple[str, OwnerAccessor], ...] = (
    ("finisher", lambda item: item.finished_by),
    ("closer", lambda item: item.closed_by),
    ("assignee", lambda item: item.assigned_to),
)


def resolve_owner(item: WorkItem) -> str | None:
    for _role, accessor in OWNER_PRIORITY:
        account = accessor(item)
        if account:
            return account
    return None


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a ZenTao timestamp; `None` when missing or unparseable.

    ZenTao writes `0000-00-00 00:00:00` for "never", which fails to parse and
    is treated as missing. Aware values are converted to local naive time.
    """

    if not value or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


@dataclass(frozen=True, slots=True)
class MonthWindow:
    """Half-open calendar-month interval `[start, end)`."""

    start: datetime
    end: datetime

    @classmethod
    def parse(cls, month: str) -> MonthWindow:
        """Build the window for a `YYYY-MM` string.

        Raises:
            ValueError: if `month` is not a valid `YYYY-MM` value.
        """

        try:
            first = datetime.strptime(month.strip(), "%Y-%m")
        except ValueError:
            raise ValueError(f"Invalid month {month!r}; expected YYYY-MM") from None
        if first.month == 12:
            following = first.replace(year=first.year + 1, month=1)
        else:
            following = first.replace(month=first.month + 1)
        return cls(start=first, end=following)

    @property
    def label(self) -> str:
        return self.start.strftime("%Y-%m")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def current_month(today: date | None = None) -> str:
    today = today or date.today()
    return f"{today.year}-{today.month:02d}"


def format_hours(hours: float) -> str:
    return f"{round(hours * 100) / 100:.2f}"


def to_days(hours: float) -> str:
    return format_hours(hours / HOURS_PER_DAY)


@dataclass(frozen=True, slots=True)
class EffortRow:
    account: str
    realname: str
    hours: float

    @property
    def days(self) -> float:
        return self.hours / HOURS_PER_DAY


@dataclass(frozen=True, slots=True)
class EffortReport:
    month: str
    rows: list[EffortRow]
    total_hours: float

    @property
    def total_days(self) -> float:
        return self.total_hours / HOURS_PER_DAY


class EffortAggregator:
    """Running per-account sum of consumed hours for one month."""

    def __init__(
        self,
        month: str,
        *,
        accepted_statuses: Iterable[str] = DEFAULT_ACCEPTED_STATUSES,
    ) -> None:
        self.window = MonthWindow.parse(month)
        self._accepted = frozenset(s.strip().lower() for s in accepted_statuses)
        self._totals: dict[str, float] = {}
        self._seen = 0
        self._counted = 0

    @property
    def totals(self) -> Mapping[str, float]:
        """A copy of the current per-account totals."""

        return dict(self._totals)

    @property
    def items_seen(self) -> int:
        return self._seen

    @property
    def items_counted(self) -> int:
        return self._counted

    def reset(self) -> None:
        self._totals = {}
        self._seen = 0
        self._counted = 0

    def credited_account(self, item: WorkItem) -> str | None:
        """Return the account to credit for `item`, or `None` if it is filtered out."""

        if item.status.strip().lower() not in self._accepted:
            return None
        started = parse_timestamp(item.real_started)
        if started is None or not self.window.contains(started):
            return None
        account = resolve_owner(item)
        if account is None:
            return None
        if not item.consumed:
            return None
        return account

    def fold(self, batch: Iterable[WorkItem]) -> Mapping[str, float]:
        """Fold one batch into the running totals and return a snapshot."""

        for item in batch:
            self._seen += 1
            account = self.credited_account(item)
            if account is None:
                continue
            self._counted += 1
            self._totals[account] = self._totals.get(account, 0.0) + item.consumed
        return self.totals

    def report(
        self,
        *,
        accounts: Iterable[str] | None = None,
        users: Iterable[User] = (),
    ) -> EffortReport:
        """Build the sorted report.

        With `accounts`, exactly those accounts are reported once each (zero
        when nothing accumulated); otherwise every account seen. Rows are sorted by hours,
        highest first; ties keep their selection order.
        """

        selected = list(dict.fromkeys(accounts)) if accounts else list(self._totals)
        names = {u.account: u.realname for u in users if u.account}
        rows = [
            EffortRow(
                account=account,
                realname=names.get(account) or account,
                hours=self._totals.get(account, 0.0),
            )
            for account in selected
        ]
        rows.sort(key=lambda row: row.hours, reverse=True)
        return EffortReport(
            month=self.window.label,
            rows=rows,
            total_hours=sum(row.hours for row in rows),
        )
