from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from tokenvesting.core.blockchain_exceptions import InvalidScheduleError

logger = logging.getLogger("tokenvesting.blockchain.vesting")

UINT256_MAX = 2**256 - 1
UINT64_MAX = 2**64 - 1
MAX_UNLOCK_PERCENTAGE = 100


@dataclass(frozen=True)
class VestingSchedule:
    allocation: int
    claimed: int
    start_timestamp: int
    end_timestamp: int
    init_unlock_percentage: int

    def with_claimed(self, claimed: int) -> "VestingSchedule":
        return replace(self, claimed=claimed)

    def to_dict(self) -> dict[str, int]:
        return {
            "allocation": self.allocation,
            "claimed": self.claimed,
            "start_timestamp": self.start_timestamp,
            "end_timestamp": self.end_timestamp,
            "init_unlock_percentage": self.init_unlock_percentage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, int]) -> "VestingSchedule":
        return cls(
            allocation=int(data["allocation"]),
            claimed=int(data["claimed"]),
            start_timestamp=int(data["start_timestamp"]),
            end_timestamp=int(data["end_timestamp"]),
            init_unlock_percentage=int(data["init_unlock_percentage"]),
        )


def validate_schedule_terms(
    allocation: int,
    start_timestamp: int,
    end_timestamp: int,
    init_unlock_percentage: int,
) -> None:
    """
    Reject vesting terms that cannot be accounted for.

    A schedule whose start equals its end has no linear phase, so it is refused
    rather than being treated as an instant unlock.
    """
    for name, value in (
        ("allocation", allocation),
        ("start_timestamp", start_timestamp),
        ("end_timestamp", end_timestamp),
        ("init_unlock_percentage", init_unlock_percentage),
    ):
        if not isinstance(value, int) or isinstance(value, bool):
            raise InvalidScheduleError(f"{name} must be an integer.")
    if allocation <= 0 or allocation > UINT256_MAX:
        raise InvalidScheduleError("Allocation must be a positive uint256.")
    if not 0 <= start_timestamp <= UINT64_MAX or not 0 <= end_timestamp <= UINT64_MAX:
        raise InvalidScheduleError("Timestamps must fit in uint64.")
    if start_timestamp >= end_timestamp:
        raise InvalidScheduleError(
            "Start time must be before end time.",
            details={"start_timestamp": start_timestamp, "end_timestamp": end_timestamp},
        )
    if not 0 <= init_unlock_percentage <= MAX_UNLOCK_PERCENTAGE:
        raise InvalidScheduleError("Initial unlock percentage must be between 0 and 100.")


def vested_amount(schedule: VestingSchedule, current_time: int) -> int:
    """
    Cumulative amount unlocked at current_time, independent of withdrawals.

    Both the initial unlock and the linear portion round down, so the sum of
    all releases never exceeds the allocation.
    """
    allocation = schedule.allocation
    start_time = schedule.start_timestamp
    end_time = schedule.end_timestamp

    if current_time < start_time:
        return 0
    if current_time > end_time:
        return allocation

    initial = allocation * schedule.init_unlock_percentage // 100
    duration = end_time - start_time
    if duration == 0:
        return allocation

    linear = (allocation - initial) * (current_time - start_time) // duration
    return initial + linear


def claimable_amount(schedule: VestingSchedule, current_time: int) -> int:
    """Vested amount not yet withdrawn."""
    vested = vested_amount(schedule, current_time)
    if vested < schedule.claimed:
        logger.error(
            "Claimed amount exceeds vested amount",
            extra={
                "event": "vesting.claimed_exceeds_vested",
                "vested": vested,
                "claimed": schedule.claimed,
            },
        )
        return 0
    return vested - schedule.claimed
