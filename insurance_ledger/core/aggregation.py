"""Fold raw contribution records into period summaries and charge rows.

The same folding runs twice per period: once over the normal records and
once over the adjustment records.  The two passes never share state and
their outputs carry ``is_adjustment`` so that they can live side by side
in storage; combining them is left to the reports that read them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from insurance_ledger.core.coercion import quantize
from insurance_ledger.core.roster_index import RosterMatch
from insurance_ledger.core.schema import (
    FileType,
    Part,
    PeriodSummary,
    PersonalCharge,
    RawRecord,
    Scheme,
    UnitCharge,
)
from insurance_ledger.core.validation import validate_required

ZERO = Decimal("0")

PERSONAL_SCHEMES = (Scheme.PENSION, Scheme.MEDICAL, Scheme.SERIOUS_ILLNESS, Scheme.UNEMPLOYMENT)
UNIT_SCHEMES = PERSONAL_SCHEMES + (Scheme.INJURY,)


@dataclass
class _SummaryAccumulator:
    id_numbers: set[str] = field(default_factory=set)
    base_total: Decimal = ZERO
    amount_total: Decimal = ZERO


@dataclass
class PersonAccumulator:
    name: str
    id_number: str
    department: str
    personal_base: Decimal = ZERO
    unit_base: Decimal = ZERO
    personal: dict[Scheme, Decimal] = field(default_factory=lambda: {s: ZERO for s in PERSONAL_SCHEMES})
    unit: dict[Scheme, Decimal] = field(default_factory=lambda: {s: ZERO for s in UNIT_SCHEMES})

    def add(self, record: RawRecord) -> None:
        # The first record of a part sets its base; later ones only fill a zero.
        if record.part is Part.PERSONAL:
            if self.personal_base == ZERO:
                self.personal_base = record.pay_base
            buckets = self.personal
        else:
            if self.unit_base == ZERO:
                self.unit_base = record.pay_base
            buckets = self.unit
        if record.scheme in buckets:
            buckets[record.scheme] += record.amount_due


@dataclass
class AggregateResult:
    summaries: list[PeriodSummary]
    personal: list[PersonalCharge]
    unit: list[UnitCharge]


def canonical_order(records: Iterable[RawRecord]) -> list[RawRecord]:
    """Order records so that first-record-wins rules do not depend on load order."""

    return sorted(
        records,
        key=lambda r: (r.id_number, r.part.value, r.scheme.value, r.source_file_id or 0, r.sequence),
    )


def build_summaries(
    records: Iterable[RawRecord],
    period_id: int,
    *,
    is_adjustment: bool = False,
) -> list[PeriodSummary]:
    groups: dict[tuple[Part, Scheme], _SummaryAccumulator] = {}
    for record in records:
        acc = groups.setdefault((record.part, record.scheme), _SummaryAccumulator())
        acc.id_numbers.add(record.id_number)
        acc.base_total += record.pay_base
        acc.amount_total += record.amount_due

    summaries = [
        PeriodSummary(
            period_id=period_id,
            scheme=scheme,
            part=part,
            headcount=len(acc.id_numbers),
            base_total=quantize(acc.base_total),
            amount_total=quantize(acc.amount_total),
            is_adjustment=is_adjustment,
        )
        for (part, scheme), acc in groups.items()
    ]
    summaries.sort(key=lambda s: (s.part.value, s.scheme.value))
    return summaries


def fold_people(
    records: Iterable[RawRecord],
    roster: Mapping[str, RosterMatch],
) -> dict[str, PersonAccumulator]:
    people: dict[str, PersonAccumulator] = {}
    for record in records:
        person = people.get(record.id_number)
        if person is None:
            match = roster.get(record.id_number)
            name = match.name if match else ""
            department = match.department if match else ""
            person = PersonAccumulator(
                name=name or record.name,
                id_number=record.id_number,
                department=department or record.department,
            )
            people[record.id_number] = person
        person.add(record)
    return people


def personal_charge(person: PersonAccumulator, period_id: int, *, is_adjustment: bool = False) -> PersonalCharge:
    pension = quantize(person.personal[Scheme.PENSION])
    medical = quantize(person.personal[Scheme.MEDICAL])
    serious = quantize(person.personal[Scheme.SERIOUS_ILLNESS])
    unemployment = quantize(person.personal[Scheme.UNEMPLOYMENT])
    return PersonalCharge(
        period_id=period_id,
        name=person.name,
        id_number=person.id_number,
        department=person.department,
        base=quantize(person.personal_base),
        pension=pension,
        medical_maternity=medical,
        serious_illness=serious,
        unemployment=unemployment,
        subtotal=quantize(pension + medical + serious + unemployment),
        is_adjustment=is_adjustment,
    )


def unit_charge(person: PersonAccumulator, period_id: int, *, is_adjustment: bool = False) -> UnitCharge:
    pension = quantize(person.unit[Scheme.PENSION])
    # Serious illness is billed to the unit together with medical/maternity.
    medical_maternity = quantize(person.unit[Scheme.MEDICAL] + person.unit[Scheme.SERIOUS_ILLNESS])
    injury = quantize(person.unit[Scheme.INJURY])
    unemployment = quantize(person.unit[Scheme.UNEMPLOYMENT])
    return UnitCharge(
        period_id=period_id,
        name=person.name,
        id_number=person.id_number,
        department=person.department,
        base=quantize(max(person.unit_base, person.personal_base)),
        pension=pension,
        medical_maternity=medical_maternity,
        serious_illness=quantize(person.unit[Scheme.SERIOUS_ILLNESS]),
        injury=injury,
        unemployment=unemployment,
        subtotal=quantize(pension + medical_maternity + injury + unemployment),
        is_adjustment=is_adjustment,
    )


def aggregate(
    records: Sequence[RawRecord],
    roster: Mapping[str, RosterMatch],
    period_id: int,
    *,
    is_adjustment: bool = False,
) -> AggregateResult:
    ordered = canonical_order(records)
    people = fold_people(ordered, roster)

    personal: list[PersonalCharge] = []
    unit: list[UnitCharge] = []
    for id_number in sorted(people):
        person = people[id_number]
        personal.append(personal_charge(person, period_id, is_adjustment=is_adjustment))
        unit.append(unit_charge(person, period_id, is_adjustment=is_adjustment))

    return AggregateResult(
        summaries=build_summaries(ordered, period_id, is_adjustment=is_adjustment),
        personal=personal,
        unit=unit,
    )


def aggregate_period(
    records: Sequence[RawRecord],
    roster: Mapping[str, RosterMatch],
    period_id: int,
) -> AggregateResult:
    """Aggregate the normal records of a period after the completeness gate."""

    normal = [record for record in records if record.file_type is FileType.NORMAL]
    validate_required(normal)
    return aggregate(normal, roster, period_id)


def aggregate_adjustments(
    records: Sequence[RawRecord],
    roster: Mapping[str, RosterMatch],
    period_id: int,
) -> AggregateResult:
    """Aggregate adjustment records; any subset of schemes is accepted."""

    adjustments = [record for record in records if record.file_type is FileType.ADJUSTMENT]
    return aggregate(adjustments, roster, period_id, is_adjustment=True)
