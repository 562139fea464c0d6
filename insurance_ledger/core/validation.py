from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from insurance_ledger.core.errors import MissingSchemeError
from insurance_ledger.core.schema import Part, RawRecord, Scheme

REQUIRED_UPLOADS: Mapping[Part, tuple[Scheme, ...]] = MappingProxyType(
    {
        Part.PERSONAL: (
            Scheme.PENSION,
            Scheme.MEDICAL,
            Scheme.SERIOUS_ILLNESS,
            Scheme.UNEMPLOYMENT,
        ),
        Part.UNIT: (
            Scheme.PENSION,
            Scheme.MEDICAL,
            Scheme.SERIOUS_ILLNESS,
            Scheme.UNEMPLOYMENT,
            Scheme.INJURY,
        ),
    }
)


def missing_uploads(records: Iterable[RawRecord]) -> list[tuple[Part, Scheme]]:
    found = {(record.part, record.scheme) for record in records}
    return [
        (part, scheme)
        for part, schemes in REQUIRED_UPLOADS.items()
        for scheme in schemes
        if (part, scheme) not in found
    ]


def validate_required(records: Iterable[RawRecord]) -> None:
    """Raise for the first required (part, scheme) pair with no records."""

    missing = missing_uploads(records)
    if missing:
        part, scheme = missing[0]
        raise MissingSchemeError(part.value, scheme.value)
