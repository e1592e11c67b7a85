import re
from typing import Dict, Optional
from pydantic import BaseModel, Field
from errors import InvalidArgument

DEFAULT_LIMIT = 25
MAX_LIMIT = 25
DEFAULT_OFFSET = 1

# Optional sign followed by ASCII digits, nothing else
_INTEGER = re.compile(r"[+-]?[0-9]+")


def parse_int(token: Optional[str]) -> Optional[int]:
    if token is None or not _INTEGER.fullmatch(token):
        return None
    try:
        return int(token)
    except ValueError:
        # longer than the interpreter's int conversion limit
        return None


def parse_user_id(raw: str) -> int:
    """Parse the {user_id} path segment, echoing the raw token on failure."""
    user_id = parse_int(raw)
    if user_id is None:
        raise InvalidArgument(f"{raw}(Index) is not Integer.")
    return user_id


def check_limit(limit: int) -> None:
    if not 0 < limit <= MAX_LIMIT:
        raise InvalidArgument(f"Limit Query value range is from 1 to {MAX_LIMIT}.")


class UserCreate(BaseModel):
    """Body of POST and PUT. Absent and empty fields are both treated as empty."""
    nickname: Optional[str] = None
    email: Optional[str] = None
    etc: Optional[str] = Field(None, alias="Etc")

    class Config:
        populate_by_name = True


class UserUpdate(UserCreate):
    """Body of PATCH: only non-empty fields are applied."""

    def changes(self) -> Dict[str, str]:
        fields = {"email": self.email, "nickname": self.nickname, "etc": self.etc}
        return {name: value for name, value in fields.items() if value}


class UserResponse(BaseModel):
    nickname: str
    email: str
    etc: str = Field("", alias="Etc")

    class Config:
        from_attributes = True
        populate_by_name = True


class ErrorResponse(BaseModel):
    errorCode: int
    message: str


class ListQuery(BaseModel):
    """Pagination parameters of GET /users; None means "use the default"."""
    limit: Optional[int] = None
    offset: Optional[int] = None

    @classmethod
    def from_params(cls, limit: Optional[str] = None, offset: Optional[str] = None) -> "ListQuery":
        parsed_limit = parsed_offset = None
        if limit is not None:
            parsed_limit = parse_int(limit)
            if parsed_limit is None:
                raise InvalidArgument("Limit Query is not Integer.")
            check_limit(parsed_limit)
        if offset is not None:
            parsed_offset = parse_int(offset)
            if parsed_offset is None:
                raise InvalidArgument("Offset Query is not Integer.")
        return cls(limit=parsed_limit, offset=parsed_offset)

    def scan_range(self, next_id: int) -> range:
        """
        Ids to look up for this page given the store's next id.
        The scan never reaches next_id, since no record can live there.
        """
        limit = DEFAULT_LIMIT if self.limit is None else self.limit
        offset = DEFAULT_OFFSET if self.offset is None else self.offset

        check_limit(limit)
        if self.offset is not None and not 0 < offset < next_id:
            raise InvalidArgument(f"Offset Query value range is from 1 to {next_id - 1}.")

        limit = min(limit, max(next_id - offset, 0))
        return range(offset, offset + limit)
