from __future__ import annotations

from typing import Protocol

from lms.models.user import User


class UserRepo(Protocol):
    async def get_by_id(self, user_id: int) -> User | None: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[int, User] = {}

    def add(self, user: User) -> None:
        if user.id in self._by_id:
            raise ValueError("user already exists")
        self._by_id[user.id] = user

    def clear(self) -> None:
        self._by_id.clear()

    async def get_by_id(self, user_id: int) -> User | None:
        return self._by_id.get(user_id)
