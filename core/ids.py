"""
core/ids.py -- Table-tagged record identifiers.

Every persisted entity is addressed by a (table, id) pair serialised as
"table:id". Parsing a client-supplied string always names the table the
caller expects: RecordId.parse("schematic:abc", "account") fails rather
than returning an id that could address the wrong table.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass

from core.errors import BadRequest

ALPHANUMERIC = string.ascii_letters + string.digits


def random_id(length: int) -> str:
    """Return a cryptographically random alphanumeric string of the given length."""
    return "".join(secrets.choice(ALPHANUMERIC) for _ in range(length))


@dataclass(frozen=True)
class RecordId:
    table: str
    id: str

    @classmethod
    def parse(cls, value: str, table: str) -> RecordId:
        """Parse "table:id", requiring the table to equal `table`.

        Only the first ":" separates the table from the local id. Raises
        BadRequest when the value is malformed or names a different table.
        """
        found, sep, local = value.partition(":")
        if not sep or not found or not local:
            raise BadRequest("invalid id")
        if found != table:
            raise BadRequest("invalid id")
        return cls(table=found, id=local)

    def __str__(self) -> str:
        return f"{self.table}:{self.id}"
