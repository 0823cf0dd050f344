"""Provider views used by routing — derived from the provider directory, never stored here."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProviderCandidate:
    provider_user_id: str
    provider_id: str
    specializations: frozenset[str] = field(default_factory=frozenset)
    is_certified: bool = False
    experience_years: int = 0
    rating: float | None = None
    active_request_count: int = 0
    completed_today_count: int = 0
    is_active: bool = True
    can_accept_requests: bool = True
    region: str | None = None

    def has_specialization(self, name: str) -> bool:
        wanted = name.strip().lower()
        return any(s.strip().lower() == wanted for s in self.specializations)

    def is_available(self) -> bool:
        return self.is_active and self.can_accept_requests


@dataclass(frozen=True)
class ProviderWorkload:
    provider_id: str
    active_request_count: int
    completed_today_count: int


@dataclass(frozen=True)
class ProviderValidation:
    """Answer of the provider validator for a manual assignment target."""

    valid: bool
    provider: ProviderCandidate | None = None
    error: str | None = None
