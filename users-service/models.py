import threading
from typing import Dict, Optional, Tuple
from pydantic import BaseModel, Field
from errors import MissingField, NotFound, InvalidArgument
from schemas import ListQuery, UserCreate, UserUpdate


class User(BaseModel):
    nickname: str
    email: str
    etc: str = Field("", alias="Etc")

    class Config:
        populate_by_name = True


def _require_fields(body: UserCreate) -> None:
    # email is reported before nickname
    if not body.email:
        raise MissingField("Required element(Email) is null.")
    if not body.nickname:
        raise MissingField("Required element(NickName) is null.")


class UserStore:
    """
    In-memory users keyed by an auto-incrementing id.

    Ids start at 1 and are never reused, even after a delete. Every operation
    runs under one lock so concurrent requests see a consistent store.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[int, User] = {}
        self._next_id = 1

    @property
    def next_id(self) -> int:
        with self._lock:
            return self._next_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def _lookup(self, user_id: int, raw_id: Optional[str] = None) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFound(f"{user_id if raw_id is None else raw_id}(Index) is not Found.")
        return user

    def list(self, query: Optional[ListQuery] = None) -> Dict[int, User]:
        query = query or ListQuery()
        with self._lock:
            ids = query.scan_range(self._next_id)
            return {i: self._users[i] for i in ids if i in self._users}

    def create(self, body: UserCreate) -> Tuple[User, int]:
        _require_fields(body)
        user = User(nickname=body.nickname, email=body.email, etc=body.etc or "")
        with self._lock:
            user_id = self._next_id
            self._users[user_id] = user
            self._next_id += 1
        return user, user_id

    def get(self, user_id: int, raw_id: Optional[str] = None) -> User:
        with self._lock:
            return self._lookup(user_id, raw_id)

    def replace(self, user_id: int, body: UserCreate, raw_id: Optional[str] = None) -> User:
        with self._lock:
            self._lookup(user_id, raw_id)
            _require_fields(body)
            user = User(nickname=body.nickname, email=body.email, etc=body.etc or "")
            self._users[user_id] = user
            return user

    def delete(self, user_id: int, raw_id: Optional[str] = None) -> User:
        with self._lock:
            self._lookup(user_id, raw_id)
            return self._users.pop(user_id)

    def patch(self, user_id: int, body: UserUpdate, raw_id: Optional[str] = None) -> User:
        with self._lock:
            user = self._lookup(user_id, raw_id)
            changes = body.changes()
            if not changes:
                raise InvalidArgument("All element is null.")
            for name, value in changes.items():
                setattr(user, name, value)
            return user
