# Overview: Service-layer operations for receipt numbering; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflict
from ..extensions import db
from ..models import ReceiptSequence

RECEIPT_PAD = 4


def format_receipt_no(day: date, number: int) -> str:
    return f"{day:%Y%m%d}-{number:0{RECEIPT_PAD}d}"


def next_receipt_number(day: date) -> str:
    """
    Allocate the next receipt number for a store-local calendar day.

    Atomic UPDATE of the (sequence_date) counter row, inside the caller's
    transaction, so the number is released only if the sale commits. The
    first sale of a day inserts the row; losing that insert race raises
    ConcurrencyConflict and the caller's unit of work is retried, at which
    point the UPDATE path applies.
    """
    stmt = (
        update(ReceiptSequence)
        .where(ReceiptSequence.sequence_date == day)
        .values(last_number=ReceiptSequence.last_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        number = (
            db.session.query(ReceiptSequence.last_number)
            .filter_by(sequence_date=day)
            .scalar()
        )
    else:
        db.session.add(ReceiptSequence(sequence_date=day, last_number=1))
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflict(f"receipt sequence for {day} created concurrently") from exc
        number = 1

    return format_receipt_no(day, number)
