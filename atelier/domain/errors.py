from dataclasses import dataclass
from typing import ClassVar, List


@dataclass
class DomainError(Exception):
    detail: str
    title: str = "Domain Error"
    type: str = "https://example.com/problems/domain-error"
    errors: List[dict] | None = None

    kind: ClassVar[str] = "domain"
    status_code: ClassVar[int] = 400

    def __str__(self) -> str:
        return self.detail


@dataclass
class ValidationError(DomainError):
    title: str = "Validation Error"
    type: str = "https://example.com/problems/validation-error"

    kind: ClassVar[str] = "validation"
    status_code: ClassVar[int] = 400


@dataclass
class AuthorizationError(DomainError):
    title: str = "Forbidden"
    type: str = "https://example.com/problems/forbidden"

    kind: ClassVar[str] = "forbidden"
    status_code: ClassVar[int] = 403


@dataclass
class NotFoundError(DomainError):
    title: str = "Not Found"
    type: str = "https://example.com/problems/not-found"

    kind: ClassVar[str] = "not_found"
    status_code: ClassVar[int] = 404


@dataclass
class ConflictError(DomainError):
    title: str = "Conflict"
    type: str = "https://example.com/problems/conflict"

    kind: ClassVar[str] = "conflict"
    status_code: ClassVar[int] = 409
