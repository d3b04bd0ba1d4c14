"""Per-user quotas by trust level, with daily usage counters."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Any

from timetiles.core.store import DataStore, parse_timestamp, to_timestamp, utc_now

logger = logging.getLogger(__name__)

USER_USAGE_COLLECTION = "user-usage"
UNLIMITED = -1


class TrustLevel(IntEnum):
    UNTRUSTED = 0
    BASIC = 1
    REGULAR = 2
    TRUSTED = 3
    POWER_USER = 4
    UNLIMITED = 5


class QuotaType(str, Enum):
    ACTIVE_SCHEDULES = "max_active_schedules"
    URL_FETCHES_PER_DAY = "max_url_fetches_per_day"
    FILE_UPLOADS_PER_DAY = "max_file_uploads_per_day"
    EVENTS_PER_IMPORT = "max_events_per_import"
    TOTAL_EVENTS = "max_total_events"
    IMPORT_JOBS_PER_DAY = "max_import_jobs_per_day"
    FILE_SIZE_MB = "max_file_size_mb"
    CATALOGS_PER_USER = "max_catalogs_per_user"


class UsageType(str, Enum):
    CURRENT_ACTIVE_SCHEDULES = "current_active_schedules"
    URL_FETCHES_TODAY = "url_fetches_today"
    FILE_UPLOADS_TODAY = "file_uploads_today"
    IMPORT_JOBS_TODAY = "import_jobs_today"
    TOTAL_EVENTS_CREATED = "total_events_created"
    CURRENT_CATALOGS = "current_catalogs"


QUOTA_USAGE: dict[QuotaType, UsageType] = {
    QuotaType.ACTIVE_SCHEDULES: UsageType.CURRENT_ACTIVE_SCHEDULES,
    QuotaType.URL_FETCHES_PER_DAY: UsageType.URL_FETCHES_TODAY,
    QuotaType.FILE_UPLOADS_PER_DAY: UsageType.FILE_UPLOADS_TODAY,
    QuotaType.IMPORT_JOBS_PER_DAY: UsageType.IMPORT_JOBS_TODAY,
    QuotaType.TOTAL_EVENTS: UsageType.TOTAL_EVENTS_CREATED,
    QuotaType.CATALOGS_PER_USER: UsageType.CURRENT_CATALOGS,
}

DAILY_USAGE = frozenset(
    {
        UsageType.URL_FETCHES_TODAY,
        UsageType.FILE_UPLOADS_TODAY,
        UsageType.IMPORT_JOBS_TODAY,
    }
)


def _quotas(
    schedules: int,
    url_fetches: int,
    uploads: int,
    events_per_import: int,
    total_events: int,
    import_jobs: int,
    file_size_mb: int,
    catalogs: int,
) -> dict[QuotaType, int]:
    return {
        QuotaType.ACTIVE_SCHEDULES: schedules,
        QuotaType.URL_FETCHES_PER_DAY: url_fetches,
        QuotaType.FILE_UPLOADS_PER_DAY: uploads,
        QuotaType.EVENTS_PER_IMPORT: events_per_import,
        QuotaType.TOTAL_EVENTS: total_events,
        QuotaType.IMPORT_JOBS_PER_DAY: import_jobs,
        QuotaType.FILE_SIZE_MB: file_size_mb,
        QuotaType.CATALOGS_PER_USER: catalogs,
    }


DEFAULT_QUOTAS: dict[TrustLevel, dict[QuotaType, int]] = {
    TrustLevel.UNTRUSTED: _quotas(0, 0, 1, 100, 100, 1, 1, 1),
    TrustLevel.BASIC: _quotas(1, 5, 3, 1000, 5000, 5, 10, 2),
    TrustLevel.REGULAR: _quotas(5, 20, 10, 10000, 50000, 20, 50, 5),
    TrustLevel.TRUSTED: _quotas(20, 100, 50, 50000, 500000, 100, 100, 20),
    TrustLevel.POWER_USER: _quotas(100, 500, 200, 200000, 2000000, 500, 500, 100),
    TrustLevel.UNLIMITED: _quotas(-1, -1, -1, -1, -1, -1, 1000, -1),
}


@dataclass(frozen=True)
class QuotaCheckResult:
    allowed: bool
    current: int
    limit: int
    remaining: int
    quota_type: QuotaType
    reset_time: datetime | None = None


class QuotaService:
    """Check and record usage against a user's quotas.

    Users are plain dicts with an optional ``trust_level`` (default REGULAR)
    and optional ``quotas`` overrides keyed by quota type value. Usage lives
    in the ``user-usage`` collection, one document per user.
    """

    def __init__(self, store: DataStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def get_effective_quotas(self, user: dict[str, Any] | None) -> dict[QuotaType, int]:
        if not user:
            return dict(DEFAULT_QUOTAS[TrustLevel.UNTRUSTED])
        try:
            level = TrustLevel(int(user.get("trust_level", TrustLevel.REGULAR)))
        except (TypeError, ValueError):
            level = TrustLevel.REGULAR
        quotas = dict(DEFAULT_QUOTAS[level])
        for key, value in (user.get("quotas") or {}).items():
            if value is not None:
                quotas[QuotaType(key)] = int(value)
        return quotas

    async def get_usage(self, user_id: str) -> dict[str, Any] | None:
        docs = await self.store.find(USER_USAGE_COLLECTION, {"user": user_id}, limit=1)
        return docs[0] if docs else None

    def needs_daily_reset(self, last_reset: str | datetime | None) -> bool:
        parsed = parse_timestamp(last_reset)
        return parsed is None or parsed.date() < self.clock().date()

    def next_reset_time(self) -> datetime:
        now = self.clock()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight + timedelta(days=1)

    async def check_quota(
        self, user: dict[str, Any] | None, quota_type: QuotaType, amount: int = 1
    ) -> QuotaCheckResult:
        """Check whether ``amount`` more units fit within the user's quota."""
        limit = self.get_effective_quotas(user)[quota_type]
        if limit == UNLIMITED:
            return QuotaCheckResult(True, 0, UNLIMITED, UNLIMITED, quota_type)

        usage_type = QUOTA_USAGE.get(quota_type)
        if not user or usage_type is None:
            allowed = amount <= limit
            return QuotaCheckResult(allowed, 0, limit, limit, quota_type)

        usage = await self.get_usage(user["id"])
        reset_time = self.next_reset_time() if usage_type in DAILY_USAGE else None
        if usage is None or (
            usage_type in DAILY_USAGE
            and self.needs_daily_reset(usage.get("last_reset_date"))
        ):
            return QuotaCheckResult(amount <= limit, 0, limit, limit, quota_type, reset_time)

        current = int(usage.get(usage_type.value) or 0)
        return QuotaCheckResult(
            allowed=current + amount <= limit,
            current=current,
            limit=limit,
            remaining=max(0, limit - current),
            quota_type=quota_type,
            reset_time=reset_time,
        )

    async def increment_usage(
        self, user_id: str, usage_type: UsageType, amount: int = 1
    ) -> int:
        """Add ``amount`` to a usage counter and return the new value.

        Daily counters are zeroed first when the last reset was before today.
        """
        usage = await self.get_usage(user_id)
        now = to_timestamp(self.clock())
        if usage is None:
            usage = await self.store.create(
                USER_USAGE_COLLECTION,
                {"user": user_id, **{u.value: 0 for u in UsageType}, "last_reset_date": now},
            )

        update: dict[str, Any] = {}
        if usage_type in DAILY_USAGE and self.needs_daily_reset(usage.get("last_reset_date")):
            update = {u.value: 0 for u in DAILY_USAGE}
            update["last_reset_date"] = now
            current = 0
        else:
            current = int(usage.get(usage_type.value) or 0)

        update[usage_type.value] = current + amount
        await self.store.update(USER_USAGE_COLLECTION, usage["id"], update)
        logger.debug(f"Usage {usage_type.value} for user {user_id} is now {current + amount}")
        return current + amount

    async def decrement_usage(
        self, user_id: str, usage_type: UsageType, amount: int = 1
    ) -> int:
        usage = await self.get_usage(user_id)
        if usage is None:
            return 0
        value = max(0, int(usage.get(usage_type.value) or 0) - amount)
        await self.store.update(USER_USAGE_COLLECTION, usage["id"], {usage_type.value: value})
        return value
