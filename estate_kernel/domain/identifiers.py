"""
Human-readable document numbers: ``PREFIX-YYYY-MM-NNNNN``.

Each (prefix, month) pair owns its own counter, so numbering restarts at
00001 every month.  Allocation is done by SequenceService; this module
only names counters and formats/parses numbers.
"""

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum

from estate_kernel.exceptions import ValidationError


class DocumentKind(str, Enum):
    SALE = "SAL"
    RECEIPT = "RCP"
    REFUND = "RFD"
    EXPENSE = "EXP"


_SEQUENCE_WIDTH = 5
_NUMBER_RE = re.compile(r"^(SAL|RCP|RFD|EXP)-(\d{4})-(\d{2})-(\d{5,})$")


@dataclass(frozen=True)
class DocumentNumber:
    kind: DocumentKind
    year: int
    month: int
    sequence: int

    def __str__(self) -> str:
        return (
            f"{self.kind.value}-{self.year:04d}-{self.month:02d}-"
            f"{self.sequence:0{_SEQUENCE_WIDTH}d}"
        )


def counter_name(kind: DocumentKind, on: date) -> str:
    """Counter row name for ``kind`` in the month containing ``on``."""
    return f"{kind.value}-{on.year:04d}-{on.month:02d}"


def format_document_number(kind: DocumentKind, on: date, sequence: int) -> str:
    if sequence < 1:
        raise ValueError(f"Sequence must be positive, got {sequence}")
    return str(DocumentNumber(kind, on.year, on.month, sequence))


def parse_document_number(value: str) -> DocumentNumber:
    match = _NUMBER_RE.match(value)
    if match is None:
        raise ValidationError(f"Not a document number: {value!r}", field="document_number")
    prefix, year, month, seq = match.groups()
    return DocumentNumber(DocumentKind(prefix), int(year), int(month), int(seq))
