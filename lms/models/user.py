from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class User:
    id: int
    email: str
    name: str = ""
    roles: tuple[str, ...] = ("student",)
    is_active: bool = True
