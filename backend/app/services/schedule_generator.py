"""
Capital call schedule generation

Pure functions that turn an allocation commitment and schedule parameters
into capital call creation records. Nothing here touches storage: the
orchestrating service persists the records through the integrity layer.

Supported schedule types:
- single: one call, already settled on creation
- monthly / quarterly / biannual / annual: evenly split regular calls
- custom: caller-supplied dates and amounts
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from dateutil.relativedelta import relativedelta
import logging

from app.exceptions import ValidationError

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")

SCHEDULE_SINGLE = "single"
SCHEDULE_CUSTOM = "custom"

# Months between consecutive calls for regular schedules
SCHEDULE_MONTH_INTERVALS = {
    "monthly": 1,
    "quarterly": 3,
    "biannual": 6,
    "annual": 12,
}

SCHEDULE_TYPES = [SCHEDULE_SINGLE, *SCHEDULE_MONTH_INTERVALS, SCHEDULE_CUSTOM]
AMOUNT_TYPES = ("percentage", "dollar")


def to_decimal(value: Any) -> Decimal:
    """Convert int/float/str/Decimal to Decimal without float artefacts"""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value}")


def get_reference_date(allocation: Any, fallback: Optional[date] = None) -> date:
    """
    Date every schedule is anchored on

    The allocation's own allocation_date wins so generated calls stay
    consistent with the allocation; the caller's first call date is only
    a fallback.
    """
    reference = _parse_date(getattr(allocation, "allocation_date", None)) or _parse_date(fallback)
    if reference is None:
        raise ValidationError("Allocation date or first call date is required")
    return reference


def calculate_due_date(call_date: date, due_days: int = 14) -> date:
    """Due date is the call date plus the configured grace period"""
    return call_date + timedelta(days=due_days)


def generate_schedule_dates(reference_date: date, schedule_type: str, count: int) -> List[date]:
    """Step forward from the reference date by the schedule's month interval"""
    interval = SCHEDULE_MONTH_INTERVALS.get(schedule_type)
    if interval is None:
        raise ValidationError(f"Unknown schedule type: {schedule_type}")
    return [reference_date + relativedelta(months=i * interval) for i in range(count)]


def split_percentages(
    total_percentage: Any,
    call_count: int,
    call_percentage: Any = None
) -> List[Decimal]:
    """
    Split a total percentage into call_count shares

    Every call but the last gets call_percentage (or an even share rounded
    to cents); the last call absorbs the remainder so the shares always sum
    exactly to total_percentage.
    """
    if call_count is None or call_count < 1:
        raise ValidationError("Call count must be at least 1")

    total = quantize(to_decimal(total_percentage))
    if total <= 0 or total > HUNDRED:
        raise ValidationError("Total percentage must be greater than 0 and at most 100")

    if call_percentage is not None:
        share = quantize(to_decimal(call_percentage))
        if share <= 0:
            raise ValidationError("Call percentage must be greater than 0")
    else:
        share = quantize(total / call_count)

    shares = [share] * (call_count - 1)
    last = total - sum(shares, Decimal("0"))
    if last <= 0:
        raise ValidationError(
            f"{call_count} calls of {share}% exceed the requested total of {total}%"
        )
    shares.append(last)
    return shares


def _amounts_for_allocation(allocation: Any, percentages: List[Decimal]) -> List[Decimal]:
    """
    Convert percentage shares to call amounts

    Dollar allocations get cent-rounded dollar figures, with the last call
    absorbing the rounding so the calls add up to the converted total.
    Percentage allocations keep the percentages as-is.
    """
    if getattr(allocation, "amount_type", "dollar") != "dollar":
        return list(percentages)

    commitment = to_decimal(allocation.amount)
    total = quantize(commitment * sum(percentages, Decimal("0")) / HUNDRED)
    amounts = [quantize(commitment * pct / HUNDRED) for pct in percentages[:-1]]
    amounts.append(total - sum(amounts, Decimal("0")))
    return amounts


def _call_amount_type(allocation: Any) -> str:
    return "dollar" if getattr(allocation, "amount_type", "dollar") == "dollar" else "percentage"


def _format_share(percentage: Decimal) -> str:
    return f"{percentage.normalize():f}%"


def build_single_call(
    allocation: Any,
    reference_date: date,
    call_percentage: Any = None
) -> Dict[str, Any]:
    """One call for the whole (or a caller-specified share of the) commitment, already paid"""
    percentage = to_decimal(call_percentage) if call_percentage is not None else HUNDRED
    if percentage <= 0 or percentage > HUNDRED:
        raise ValidationError("Call percentage must be greater than 0 and at most 100")

    amount = _amounts_for_allocation(allocation, [percentage])[0]
    return {
        "allocation_id": allocation.id,
        "call_amount": amount,
        "amount_type": _call_amount_type(allocation),
        "call_date": reference_date,
        "due_date": reference_date,
        "status": "paid",
        "paid_amount": amount,
        "outstanding_amount": Decimal("0"),
        "paid_date": reference_date,
        "notes": f"{_format_share(percentage)} single payment - fully funded",
    }


def build_regular_calls(
    allocation: Any,
    schedule_type: str,
    reference_date: date,
    call_count: int,
    call_percentage: Any = None,
    total_percentage: Any = HUNDRED,
    due_days: int = 14
) -> List[Dict[str, Any]]:
    """Evenly spaced scheduled calls stepping forward from the reference date"""
    percentages = split_percentages(total_percentage, call_count, call_percentage)
    dates = generate_schedule_dates(reference_date, schedule_type, call_count)
    amounts = _amounts_for_allocation(allocation, percentages)
    amount_type = _call_amount_type(allocation)

    calls = []
    for i, (call_date, pct, amount) in enumerate(zip(dates, percentages, amounts)):
        calls.append({
            "allocation_id": allocation.id,
            "call_amount": amount,
            "amount_type": amount_type,
            "call_date": call_date,
            "due_date": calculate_due_date(call_date, due_days),
            "status": "scheduled",
            "paid_amount": Decimal("0"),
            "outstanding_amount": amount,
            "paid_date": None,
            "notes": f"{schedule_type} capital call {i + 1} of {call_count} ({_format_share(pct)})",
        })
    return calls


def build_custom_calls(
    allocation: Any,
    reference_date: date,
    custom_schedule: Iterable[Mapping[str, Any]],
    due_days: int = 14
) -> List[Dict[str, Any]]:
    """One scheduled call per caller-supplied entry"""
    entries = list(custom_schedule or [])
    if not entries:
        raise ValidationError("Custom schedule requires at least one entry")

    calls = []
    for i, entry in enumerate(entries, start=1):
        entry_type = entry.get("amount_type") or "percentage"
        if entry_type not in AMOUNT_TYPES:
            raise ValidationError(f"Entry {i}: amount type must be one of {', '.join(AMOUNT_TYPES)}")

        dollar_amount = entry.get("dollar_amount")
        percentage = entry.get("percentage")

        if entry_type == "dollar" or (dollar_amount is not None and percentage is None):
            if dollar_amount is None:
                raise ValidationError(f"Entry {i}: dollar amount is required")
            amount = quantize(to_decimal(dollar_amount))
            amount_type = "dollar"
            label = f"${amount:,}"
        else:
            if percentage is None:
                raise ValidationError(f"Entry {i}: percentage or dollar amount is required")
            pct = to_decimal(percentage)
            if pct <= 0 or pct > HUNDRED:
                raise ValidationError(f"Entry {i}: percentage must be greater than 0 and at most 100")
            amount = quantize(_amounts_for_allocation(allocation, [pct])[0])
            amount_type = _call_amount_type(allocation)
            label = _format_share(pct)

        if amount <= 0:
            raise ValidationError(f"Entry {i}: amount must be greater than 0")

        call_date = _parse_date(entry.get("date")) or reference_date
        due_date = _parse_date(entry.get("due_date")) or calculate_due_date(call_date, due_days)
        if due_date < call_date:
            raise ValidationError(f"Entry {i}: due date must not be before call date")

        calls.append({
            "allocation_id": allocation.id,
            "call_amount": amount,
            "amount_type": amount_type,
            "call_date": call_date,
            "due_date": due_date,
            "status": "scheduled",
            "paid_amount": Decimal("0"),
            "outstanding_amount": amount,
            "paid_date": None,
            "notes": f"{label} capital call",
        })
    return calls


def generate_schedule(
    allocation: Any,
    schedule_type: str,
    call_count: Optional[int] = None,
    call_percentage: Any = None,
    total_percentage: Any = HUNDRED,
    custom_schedule: Optional[Iterable[Mapping[str, Any]]] = None,
    first_call_date: Optional[date] = None,
    due_days: int = 14
) -> List[Dict[str, Any]]:
    """
    Generate capital call creation records for an allocation

    Args:
        allocation: Object exposing id, amount, amount_type and allocation_date
        schedule_type: single, monthly, quarterly, biannual, annual or custom
        call_count: Number of calls for regular schedules (default 1)
        call_percentage: Per-call share for regular schedules, or the share
            of a single payment
        total_percentage: Share of the commitment a regular schedule covers
        custom_schedule: Entries of {date, percentage | dollar_amount,
            amount_type, due_date} for custom schedules
        first_call_date: Fallback reference date when the allocation has none
        due_days: Days between call date and due date

    Returns:
        Ordered list of capital call records ready for persistence
    """
    schedule_type = (schedule_type or "").lower()
    if schedule_type not in SCHEDULE_TYPES:
        raise ValidationError(
            f"Unknown schedule type '{schedule_type}'. Expected one of: {', '.join(SCHEDULE_TYPES)}"
        )

    reference_date = get_reference_date(allocation, first_call_date)

    if schedule_type == SCHEDULE_SINGLE:
        calls = [build_single_call(allocation, reference_date, call_percentage)]
    elif schedule_type == SCHEDULE_CUSTOM:
        calls = build_custom_calls(allocation, reference_date, custom_schedule, due_days)
    else:
        calls = build_regular_calls(
            allocation,
            schedule_type,
            reference_date,
            call_count or 1,
            call_percentage=call_percentage,
            total_percentage=total_percentage,
            due_days=due_days
        )

    logger.debug(f"Generated {len(calls)} {schedule_type} capital calls for allocation {allocation.id}")
    return calls
