from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    kind: str
    message: str

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        raise ValueError(f"{self.kind}: {self.message}")


Result = Union[Ok[T], Err]
