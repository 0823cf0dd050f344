"""Domain enums — pure Python, no external dependencies."""

from enum import Enum


class RequestType(str, Enum):
    CONSULTATION = "consultation"
    LEGAL_OPINION = "legal_opinion"
    LITIGATION = "litigation"
    CALL = "call"
    SERVICE = "service"


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RequestStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    QUOTE_SENT = "quote_sent"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    CLOSED = "closed"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


class SLAStatus(str, Enum):
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"


class SelectionStrategy(str, Enum):
    LOAD_BALANCED = "load_balanced"
    ROUND_ROBIN = "round_robin"
    MANUAL = "manual"


class AssignmentFailure(str, Enum):
    NO_RULE_MATCHED = "no_rule_matched"
    NO_PROVIDER_AVAILABLE = "no_provider_available"
    MANUAL_ASSIGNMENT_REQUIRED = "manual_assignment_required"
    REQUEST_NOT_PENDING = "request_not_pending"
    TIMEOUT = "timeout"


class NotificationKind(str, Enum):
    REQUEST_ASSIGNED = "request_assigned"
    REQUEST_REASSIGNED = "request_reassigned"
    SLA_AT_RISK = "sla_at_risk"
    SLA_BREACHED = "sla_breached"
