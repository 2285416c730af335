from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from itertools import takewhile

from dateutil.rrule import rrule, rrulestr

from .errors import MalformedRule

FREQUENCIES = ("YEARLY", "MONTHLY", "WEEKLY", "DAILY", "HOURLY", "MINUTELY", "SECONDLY")
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

_BOUND_PARTS = ("FREQ", "INTERVAL", "UNTIL", "COUNT")
_ICAL_VALUE_RE = re.compile(r"^(\d{8})(?:T(\d{6})(Z)?)?$")
_VALIDATION_ANCHOR = datetime(2000, 1, 3)


def as_local(value: datetime) -> datetime:
    """Return ``value`` as naive local wall-clock time."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def format_ical_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        return value.strftime("%Y%m%dT%H%M%S")
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def parse_ical_value(value: str) -> tuple[datetime, bool]:
    """Parse an RFC 5545 DATE or DATE-TIME into local time; flag date-only values."""
    match = _ICAL_VALUE_RE.match(value.strip())
    if not match:
        raise ValueError(f"not an RFC 5545 date or date-time: {value!r}")
    day_text, time_text, utc = match.groups()
    day = datetime.strptime(day_text, "%Y%m%d")
    if time_text is None:
        return day, True
    parsed = datetime.strptime(day_text + time_text, "%Y%m%d%H%M%S")
    if utc:
        parsed = as_local(parsed.replace(tzinfo=timezone.utc))
    return parsed, False


@dataclass(frozen=True)
class RuleSpec:
    parts: tuple[tuple[str, str], ...]
    exdates: tuple[date, ...] = ()
    dtstart: str | None = None
    prefixed: bool = True

    def get(self, name: str) -> str | None:
        for key, value in self.parts:
            if key == name:
                return value
        return None

    def with_part(self, name: str, value: str) -> RuleSpec:
        if self.get(name) is None:
            return replace(self, parts=self.parts + ((name, value),))
        parts = tuple((key, value if key == name else current) for key, current in self.parts)
        return replace(self, parts=parts)

    def without(self, *names: str) -> RuleSpec:
        return replace(self, parts=tuple(p for p in self.parts if p[0] not in names))

    @property
    def freq(self) -> str:
        return (self.get("FREQ") or "").upper()

    @property
    def interval(self) -> int:
        return int(self.get("INTERVAL") or 1)

    @property
    def count(self) -> int | None:
        raw = self.get("COUNT")
        return int(raw) if raw is not None else None

    @property
    def until(self) -> datetime | None:
        raw = self.get("UNTIL")
        if raw is None:
            return None
        value, date_only = parse_ical_value(raw)
        # A DATE bound covers the whole day, whatever time of day the series runs at.
        return datetime.combine(value.date(), time.max) if date_only else value

    @property
    def byday(self) -> tuple[str, ...]:
        raw = self.get("BYDAY")
        return tuple(raw.upper().split(",")) if raw else ()

    @property
    def bymonthday(self) -> tuple[int, ...]:
        raw = self.get("BYMONTHDAY")
        return tuple(int(v) for v in raw.split(",")) if raw else ()

    @property
    def constraints(self) -> dict[str, str]:
        return {key: value for key, value in self.parts if key not in _BOUND_PARTS}

    @property
    def dtstart_value(self) -> datetime | None:
        if self.dtstart is None:
            return None
        return parse_ical_value(self.dtstart.partition(":")[2])[0]


def parse(rule: str | None) -> RuleSpec:
    if not rule or not rule.strip():
        raise MalformedRule(rule, "empty rule")

    body: str | None = None
    prefixed = False
    dtstart: str | None = None
    exdates: list[date] = []

    for raw_line in rule.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        head, colon, value = line.partition(":")
        name = head.split(";", 1)[0].upper()
        if colon and name == "DTSTART":
            if dtstart is not None:
                raise MalformedRule(rule, "more than one DTSTART line")
            _parse_value(rule, value)
            dtstart = line
        elif colon and name == "EXDATE":
            for token in value.split(","):
                day = _parse_value(rule, token).date()
                if day not in exdates:
                    exdates.append(day)
        elif colon and name == "RRULE":
            if body is not None:
                raise MalformedRule(rule, "more than one RRULE line")
            body, prefixed = value, True
        elif not colon and "=" in line:
            if body is not None:
                raise MalformedRule(rule, "more than one RRULE line")
            body = line
        else:
            raise MalformedRule(rule, f"unsupported line {line!r}")

    if body is None:
        raise MalformedRule(rule, "no RRULE line")

    spec = RuleSpec(
        parts=_parse_parts(rule, body),
        exdates=tuple(exdates),
        dtstart=dtstart,
        prefixed=prefixed,
    )
    try:
        build_rrule(spec, _VALIDATION_ANCHOR)
    except (ValueError, TypeError) as exc:
        raise MalformedRule(rule, str(exc)) from exc
    return spec


def serialize(spec: RuleSpec) -> str:
    lines: list[str] = []
    if spec.dtstart:
        lines.append(spec.dtstart)
    body = ";".join(f"{name}={value}" for name, value in spec.parts)
    lines.append(f"RRULE:{body}" if spec.prefixed else body)
    if spec.exdates:
        days = ",".join(day.strftime("%Y%m%d") for day in spec.exdates)
        lines.append(f"EXDATE;VALUE=DATE:{days}")
    return "\n".join(lines)


def add_exclusion_date(rule: str, day: date | datetime) -> str:
    if not rule:
        raise ValueError("cannot add an exclusion date to a non-recurring task")
    spec = parse(rule)
    target = _as_date(day)
    if target in spec.exdates:
        return rule
    return serialize(replace(spec, exdates=spec.exdates + (target,)))


def add_until_bound(rule: str, instant: datetime) -> str:
    spec = parse(rule)
    value = format_ical_datetime(instant)
    parts: list[tuple[str, str]] = []
    placed = False
    for name, current in spec.parts:
        if name in ("UNTIL", "COUNT"):
            if not placed:
                parts.append(("UNTIL", value))
                placed = True
            continue
        parts.append((name, current))
    if not placed:
        parts.append(("UNTIL", value))
    return serialize(replace(spec, parts=tuple(parts)))


def set_dtstart(rule: str, start: datetime) -> str:
    spec = parse(rule)
    return serialize(replace(spec, dtstart=f"DTSTART:{format_ical_datetime(start)}"))


def update_byday(rule: str, day: date | datetime) -> str:
    spec = parse(rule)
    if spec.freq != "WEEKLY":
        return rule
    return serialize(spec.with_part("BYDAY", WEEKDAY_CODES[_as_date(day).weekday()]))


def build_rrule(spec: RuleSpec, dtstart: datetime) -> rrule:
    body = ";".join(f"{name}={value}" for name, value in spec.parts if name != "UNTIL")
    rule = rrulestr(body, dtstart=as_local(dtstart))
    until = spec.until
    if until is not None:
        rule = rule.replace(until=until)
    return rule


def anchor_in_rule(spec: RuleSpec, dtstart: datetime) -> bool:
    """Whether the rule's own BY-parts generate ``dtstart``."""
    anchor = as_local(dtstart)
    return build_rrule(spec, anchor).after(anchor, inc=True) == anchor


def series_rule(spec: RuleSpec, dtstart: datetime) -> rrule:
    # The anchor is always the first instance and takes one COUNT slot, even when
    # the BY-parts skip it.
    rule = build_rrule(spec, dtstart)
    if spec.count is None or anchor_in_rule(spec, dtstart):
        return rule
    return rule.replace(count=spec.count - 1)


def expand(spec: RuleSpec, dtstart: datetime, start: datetime, end: datetime) -> list[datetime]:
    excluded = set(spec.exdates)
    instants = series_rule(spec, dtstart).between(as_local(start), as_local(end), inc=True)
    return [instant for instant in instants if instant.date() not in excluded]


def next_after(spec: RuleSpec, dtstart: datetime, after: datetime) -> datetime | None:
    rule = series_rule(spec, dtstart)
    excluded = set(spec.exdates)
    candidate = rule.after(as_local(after), inc=False)
    while candidate is not None and candidate.date() in excluded:
        candidate = rule.after(candidate, inc=False)
    return candidate


def count_before(spec: RuleSpec, dtstart: datetime, instant: datetime) -> int:
    # COUNT is applied before exclusions, so excluded dates still count here.
    anchor = as_local(dtstart)
    counted = sum(1 for _ in takewhile(lambda occ: occ < instant, series_rule(spec, anchor)))
    if not anchor_in_rule(spec, anchor) and anchor < instant:
        counted += 1
    return counted


def _parse_parts(rule: str, body: str) -> tuple[tuple[str, str], ...]:
    parts: list[tuple[str, str]] = []
    seen: set[str] = set()
    for chunk in body.strip().strip(";").split(";"):
        name, eq, value = chunk.partition("=")
        name = name.strip().upper()
        if not eq or not name or not value:
            raise MalformedRule(rule, f"bad rule part {chunk!r}")
        if name in seen:
            raise MalformedRule(rule, f"duplicate rule part {name}")
        seen.add(name)
        parts.append((name, value))

    names = {name for name, _ in parts}
    freq = dict(parts).get("FREQ", "").upper()
    if freq not in FREQUENCIES:
        raise MalformedRule(rule, f"unknown or missing FREQ {freq!r}")
    for name in ("INTERVAL", "COUNT"):
        raw = dict(parts).get(name)
        if raw is not None and (not raw.isdigit() or int(raw) < 1):
            raise MalformedRule(rule, f"{name} must be a positive integer")
    if {"UNTIL", "COUNT"} <= names:
        raise MalformedRule(rule, "UNTIL and COUNT are mutually exclusive")
    if "UNTIL" in names:
        _parse_value(rule, dict(parts)["UNTIL"])
    return tuple(parts)


def _parse_value(rule: str, value: str) -> datetime:
    try:
        return parse_ical_value(value)[0]
    except ValueError as exc:
        raise MalformedRule(rule, str(exc)) from exc


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return as_local(value).date()
    return value
