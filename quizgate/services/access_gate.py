"""
Admission gate for taking a quiz.

The checks run in a fixed order and stop at the first failure:

1. publication
2. scheduling window
3. visibility (public / anonymous / authorization)
4. access code
5. IP allow-list
6. attempt quota

An unpublished or closed quiz therefore never reveals whether a submitted
access code was right. Every check is a pure function of its inputs.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional, Union

from quizgate.models.domain import AccessConfig, Identity, SchedulingConfig
from quizgate.services.access_codes import BcryptComparator, SecretComparator
from quizgate.services.cidr import is_in_allowed_list

logger = logging.getLogger(__name__)


# ========== Deny reasons ==========

@dataclass(frozen=True)
class NotPublished:
    pass


@dataclass(frozen=True)
class NotAvailable:
    position: Literal["before", "after"]
    bound: datetime


@dataclass(frozen=True)
class AccessDenied:
    pass


@dataclass(frozen=True)
class InvalidAccessCode:
    pass


@dataclass(frozen=True)
class IpNotAllowed:
    ip: Optional[str]


@dataclass(frozen=True)
class AttemptLimitExceeded:
    max_attempts: int


DenyReason = Union[NotPublished, NotAvailable, AccessDenied, InvalidAccessCode, IpNotAllowed, AttemptLimitExceeded]


@dataclass(frozen=True)
class Allow:
    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Deny:
    reason: DenyReason

    @property
    def allowed(self) -> bool:
        return False


Decision = Union[Allow, Deny]

ALLOW = Allow()


@dataclass(frozen=True)
class AdmissionContext:
    """Everything about the caller the gate needs, fetched by the caller."""
    now: datetime
    identity: Identity
    submitted_code: Optional[str] = None
    submitted_ip: Optional[str] = None
    prior_attempt_count: int = 0
    # explicit grant for private quizzes (owner, invitee, ...)
    authorized: bool = False


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ========== Individual checks ==========

def check_published(is_published: bool) -> Optional[DenyReason]:
    return None if is_published else NotPublished()


def check_schedule(scheduling: SchedulingConfig, now: datetime) -> Optional[DenyReason]:
    now = as_utc(now)
    if scheduling.available_from is not None and now < as_utc(scheduling.available_from):
        return NotAvailable("before", scheduling.available_from)
    if scheduling.available_until is not None and now > as_utc(scheduling.available_until):
        return NotAvailable("after", scheduling.available_until)
    return None


def check_visibility(access: AccessConfig, ctx: AdmissionContext) -> Optional[DenyReason]:
    # a public quiz is open to everyone, anonymous callers included
    if access.is_public:
        return None
    if ctx.identity.is_anonymous and not access.allow_anonymous:
        return AccessDenied()
    if not ctx.authorized:
        return AccessDenied()
    return None


def check_access_code(access: AccessConfig, submitted: Optional[str], comparator: SecretComparator) -> Optional[DenyReason]:
    if not access.require_access_code:
        return None
    if not comparator.matches(submitted, access.access_code_hash):
        return InvalidAccessCode()
    return None


def check_ip(access: AccessConfig, ip: Optional[str]) -> Optional[DenyReason]:
    if not access.filter_ip_addresses:
        return None
    if not is_in_allowed_list(ip, access.allowed_ip_addresses):
        return IpNotAllowed(ip)
    return None


def check_quota(prior_attempt_count: int, max_attempts: Optional[int]) -> Optional[DenyReason]:
    if max_attempts is None:
        return None
    if prior_attempt_count >= max_attempts:
        return AttemptLimitExceeded(max_attempts)
    return None


class AccessGate:
    def __init__(self, comparator: Optional[SecretComparator] = None):
        self.comparator = comparator or BcryptComparator()

    def evaluate(
        self,
        access: AccessConfig,
        scheduling: SchedulingConfig,
        is_published: bool,
        context: AdmissionContext,
        max_attempts: Optional[int] = None,
    ) -> Decision:
        checks: List[Callable[[], Optional[DenyReason]]] = [
            lambda: check_published(is_published),
            lambda: check_schedule(scheduling, context.now),
            lambda: check_visibility(access, context),
            lambda: check_access_code(access, context.submitted_code, self.comparator),
            lambda: check_ip(access, context.submitted_ip),
            lambda: check_quota(context.prior_attempt_count, max_attempts),
        ]
        for check in checks:
            reason = check()
            if reason is not None:
                logger.info(f"Admission denied for {context.identity.key}: {type(reason).__name__}")
                return Deny(reason)
        return ALLOW
