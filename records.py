import csv
from typing import Iterable, Iterator, Optional, TextIO, Tuple
from pydantic import ValidationError
import structlog

from exceptions import MalformedRecordError
from models import Account, AccountSnapshot, Event, parse_event

logger = structlog.get_logger()

OUTPUT_FIELDS = ["client", "available", "held", "total", "locked"]


class RecordSource:
    """Lazy CSV reader producing ledger events.

    Rows are pulled from the stream one at a time, so the input may be a
    pipe that is still being written. Iterating consumes the stream; a
    source cannot be restarted.
    """

    def __init__(self, stream: TextIO, strict: bool = False, name: str = "<stream>"):
        self.stream = stream
        self.strict = strict
        self.name = name
        self.malformed = 0

    def __iter__(self) -> Iterator[Tuple[int, Event]]:
        reader = csv.reader(self.stream)
        header = next(reader, None)
        if header is None:
            return
        fieldnames = [name.strip().lower() for name in header]

        for row in reader:
            # header is line 1
            line = reader.line_num
            if not any(value.strip() for value in row):
                continue
            event = self._parse(line, fieldnames, row)
            if event is not None:
                yield line, event

    def _parse(self, line: int, fieldnames, row) -> Optional[Event]:
        raw = {}
        for name, value in zip(fieldnames, row):
            value = value.strip()
            # an empty column is the same as an absent one
            if value:
                raw[name] = value
        if "type" in raw:
            raw["type"] = raw["type"].lower()

        try:
            return parse_event(raw)
        except ValidationError as e:
            error = MalformedRecordError(line, _describe(e))

        if self.strict:
            raise error

        self.malformed += 1
        logger.warning(
            "Malformed record skipped",
            source=self.name,
            line=line,
            detail=error.detail,
            row=repr(row)
        )
        return None


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)


def write_accounts(accounts: Iterable[Account], stream: TextIO) -> None:
    """Write the account snapshot as CSV, one row per client."""
    writer = csv.DictWriter(stream, fieldnames=OUTPUT_FIELDS, lineterminator="\n")
    writer.writeheader()
    for account in accounts:
        writer.writerow(AccountSnapshot.from_account(account).model_dump())
