"""Types shared by the defaulting and validation stages."""

from dataclasses import dataclass
from enum import Enum


class Operation(str, Enum):
    """Admission operations as named by admission.k8s.io."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"


@dataclass(frozen=True)
class Decision:
    """Outcome of the validation stage."""

    allowed: bool
    message: str = ""
    code: int = 200

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, message: str, code: int = 403) -> "Decision":
        return cls(False, message, code)
