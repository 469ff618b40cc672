"""Read-only reports over a document: credential health, activity and quick filters.

Nothing here writes. Every function takes the document (or a site list) plus
the current time, so results are deterministic under an injected clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from checkin_tracker.clock import date_key, today_key
from checkin_tracker.crypto import password_strength
from checkin_tracker.models import Category, Credential, Document, Site

WEAK_SCORE = 3
EXPIRY_WINDOW_DAYS = 30
UNCATEGORIZED = "Uncategorized"

QUICK_FILTERS: frozenset[str] = frozenset(
    {"pending", "completed", "partial", "priority", "work", "personal", "multiple"}
)
_PRIORITY_WORDS = ("priority", "urgent", "important")


def parse_timestamp(value: Any, now: datetime) -> Optional[datetime]:
    """ISO date or datetime in ``now``'s zone when it carries none; None if unparseable."""
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=now.tzinfo)
    return parsed


def days_since(value: Any, now: datetime) -> Optional[int]:
    when = parse_timestamp(value, now)
    if when is None:
        return None
    return (now - when) // timedelta(days=1)


def _percent(part: int, total: int) -> int:
    return int(part * 100 / total + 0.5) if total else 0


@dataclass(frozen=True)
class CredentialRef:
    """A credential together with the site it belongs to."""

    site_id: str
    site_name: str
    site_url: str
    credential_id: str
    label: str
    email: str

    @classmethod
    def of(cls, site: Site, cred: Credential) -> "CredentialRef":
        return cls(
            site_id=site.id,
            site_name=site.name,
            site_url=site.url,
            credential_id=cred.id,
            label=cred.label,
            email=cred.email if isinstance(cred.email, str) else "[encrypted]",
        )

    def to_dict(self) -> dict:
        return {
            "siteId": self.site_id,
            "siteName": self.site_name,
            "siteUrl": self.site_url,
            "credentialId": self.credential_id,
            "label": self.label,
            "email": self.email,
        }


@dataclass(frozen=True)
class DuplicateGroup:
    count: int
    credentials: tuple[CredentialRef, ...]

    def to_dict(self) -> dict:
        return {"count": self.count, "credentials": [c.to_dict() for c in self.credentials]}


@dataclass(frozen=True)
class CredentialHealth:
    score: int
    issues: tuple[str, ...]
    level: str

    def to_dict(self) -> dict:
        return {"score": self.score, "issues": list(self.issues), "level": self.level}


@dataclass(frozen=True)
class Completion:
    total: int
    checked: int

    @property
    def pending(self) -> int:
        return self.total - self.checked

    @property
    def rate(self) -> int:
        return _percent(self.checked, self.total)

    def to_dict(self) -> dict:
        return {"total": self.total, "checked": self.checked, "pending": self.pending, "rate": self.rate}


@dataclass(frozen=True)
class DayActivity:
    date: str
    check_ins: int
    total: int

    def to_dict(self) -> dict:
        return {"date": self.date, "checkIns": self.check_ins, "total": self.total,
                "rate": _percent(self.check_ins, self.total)}


@dataclass(frozen=True)
class CategoryShare:
    name: str
    id: Optional[str]
    count: int
    color: str
    icon: str

    def to_dict(self) -> dict:
        return {"name": self.name, "id": self.id, "count": self.count, "color": self.color, "icon": self.icon}


@dataclass(frozen=True)
class NeglectedSite:
    id: str
    name: str
    last_check_in: Optional[str]
    days_since: Optional[int]

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "lastCheckIn": self.last_check_in, "daysSince": self.days_since}


@dataclass(frozen=True)
class PasswordHealthOverview:
    total: int
    strong: int
    moderate: int
    weak: int

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "strong": self.strong,
            "moderate": self.moderate,
            "weak": self.weak,
            "strongPercent": _percent(self.strong, self.total),
            "moderatePercent": _percent(self.moderate, self.total),
            "weakPercent": _percent(self.weak, self.total),
        }


# ── credential audits ──


def _plain_password(cred: Credential) -> Optional[str]:
    # encrypted or empty passwords cannot be judged
    return cred.password if isinstance(cred.password, str) and cred.password else None


def find_weak_passwords(document: Document) -> list[CredentialRef]:
    return [
        CredentialRef.of(site, cred)
        for site, cred in document.iter_credentials()
        if _plain_password(cred) is not None and password_strength(cred.password)[0] <= WEAK_SCORE
    ]


def find_duplicate_passwords(document: Document) -> list[DuplicateGroup]:
    """Groups of credentials sharing one password, in order of first use."""
    groups: dict[str, list[CredentialRef]] = {}
    for site, cred in document.iter_credentials():
        password = _plain_password(cred)
        if password is not None:
            groups.setdefault(password, []).append(CredentialRef.of(site, cred))
    return [DuplicateGroup(len(refs), tuple(refs)) for refs in groups.values() if len(refs) > 1]


def find_expired_passwords(document: Document, now: datetime) -> list[CredentialRef]:
    found = []
    for site, cred in document.iter_credentials():
        expiry = parse_timestamp(cred.password_expiry, now)
        if expiry is not None and expiry < now:
            found.append(CredentialRef.of(site, cred))
    return found


def find_expiring_soon_passwords(
    document: Document, now: datetime, days: int = EXPIRY_WINDOW_DAYS
) -> list[CredentialRef]:
    horizon = now + timedelta(days=days)
    found = []
    for site, cred in document.iter_credentials():
        expiry = parse_timestamp(cred.password_expiry, now)
        if expiry is not None and now < expiry <= horizon:
            found.append(CredentialRef.of(site, cred))
    return found


def credential_health(cred: Credential, now: datetime) -> CredentialHealth:
    """Score out of 100, penalised for strength, age, breach and expiry."""
    score = 100
    issues = []

    password = _plain_password(cred)
    if password is not None:
        strength = password_strength(password)[0]
        if strength <= 2:
            score -= 30
            issues.append("Weak password")
        elif strength <= 4:
            score -= 15
            issues.append("Moderate password strength")

    age = days_since(cred.last_password_change, now)
    if age is not None and age > 365:
        score -= 20
        issues.append("Password not changed in over a year")
    elif age is not None and age > 180:
        score -= 10
        issues.append("Password not changed in 6+ months")

    if cred.breached:
        score -= 40
        issues.append("Password found in data breach")

    expiry = parse_timestamp(cred.password_expiry, now)
    if expiry is not None and expiry < now:
        score -= 25
        issues.append("Password expired")

    score = max(0, score)
    level = "good" if score >= 80 else "fair" if score >= 50 else "poor"
    return CredentialHealth(score, tuple(issues), level)


def credential_status(cred: Credential, now: datetime) -> str:
    """never, today, yesterday, this-week, this-month or stale."""
    if not cred.checked_in_on:
        return "never"
    if cred.is_checked_in_on(today_key(now)):
        return "today"
    when = parse_timestamp(cred.checked_in_on, now)
    if when is None:
        return "never"
    age = (now.date() - when.date()).days
    if age <= 1:
        return "yesterday"
    if age <= 7:
        return "this-week"
    if age <= 30:
        return "this-month"
    return "stale"


# ── activity ──


def completion(document: Document, day: str) -> Completion:
    total = checked = 0
    for _, cred in document.iter_credentials():
        total += 1
        if cred.is_checked_in_on(day):
            checked += 1
    return Completion(total, checked)


def _checked_in_on_day(cred: Credential, day: str) -> bool:
    if cred.check_in_history:
        return any(date_key(entry.timestamp) == day for entry in cred.check_in_history)
    return cred.is_checked_in_on(day)


def check_in_history(document: Document, now: datetime, days: int = 30) -> list[DayActivity]:
    """One entry per day for the last ``days`` days, oldest first, ending today."""
    credentials = [cred for _, cred in document.iter_credentials()]
    history = []
    for offset in range(days - 1, -1, -1):
        day = (now.date() - timedelta(days=offset)).isoformat()
        hits = sum(1 for cred in credentials if _checked_in_on_day(cred, day))
        history.append(DayActivity(day, hits, len(credentials)))
    return history


def _category_of(site: Site, categories: list[Category]) -> Optional[Category]:
    # sites reference a category by id or, from the command line, by name
    return next((c for c in categories if site.category in (c.id, c.name)), None) if site.category else None


def category_distribution(document: Document) -> list[CategoryShare]:
    """Site count per category in display order, with Uncategorized last."""
    categories = sorted(document.categories, key=lambda c: c.order)
    counts = {c.id: 0 for c in categories}
    uncategorized = 0
    for site in document.sites:
        category = _category_of(site, categories)
        if category is None:
            uncategorized += 1
        else:
            counts[category.id] += 1
    shares = [CategoryShare(c.name, c.id, counts[c.id], c.color, c.icon) for c in categories]
    shares.append(CategoryShare(UNCATEGORIZED, None, uncategorized, "#9ca3af", "📦"))
    return shares


def last_check_in(site: Site, now: datetime) -> Optional[str]:
    """Newest check-in timestamp across the site's credentials and their history."""
    newest: Optional[tuple[datetime, str]] = None
    for cred in site.credentials:
        stamps = [cred.checked_in_on, *(entry.timestamp for entry in cred.check_in_history)]
        for stamp in stamps:
            when = parse_timestamp(stamp, now)
            if when is not None and (newest is None or when > newest[0]):
                newest = (when, stamp)
    return newest[1] if newest else None


def neglected_sites(document: Document, now: datetime, days: int) -> list[NeglectedSite]:
    """Sites with credentials but no check-in in the last ``days`` days."""
    cutoff = now - timedelta(days=days)
    found = []
    for site in document.sites:
        if not site.credentials:
            continue
        stamp = last_check_in(site, now)
        when = parse_timestamp(stamp, now)
        if when is None or when < cutoff:
            found.append(NeglectedSite(site.id, site.name, stamp, days_since(stamp, now)))
    return found


def password_health_overview(document: Document) -> PasswordHealthOverview:
    total = strong = moderate = 0
    for _, cred in document.iter_credentials():
        total += 1
        label = cred.strength.lower()
        if "strong" in label:
            strong += 1
        elif "moderate" in label or "good" in label:
            moderate += 1
    return PasswordHealthOverview(total, strong, moderate, total - strong - moderate)


# ── quick filters ──


def _tag_or_category_mentions(site: Site, word: str) -> bool:
    return any(word in tag.lower() for tag in site.tags) or word in (site.category or "").lower()


def apply_quick_filter(sites: Iterable[Site], kind: str, day: str) -> list[Site]:
    sites = list(sites)
    if kind == "pending":
        return [s for s in sites if any(not c.is_checked_in_on(day) for c in s.credentials)]
    if kind == "completed":
        return [s for s in sites if s.credentials and all(c.is_checked_in_on(day) for c in s.credentials)]
    if kind == "partial":
        return [s for s in sites if 0 < sum(c.is_checked_in_on(day) for c in s.credentials) < len(s.credentials)]
    if kind == "priority":
        return [s for s in sites if any(w in tag.lower() for tag in s.tags for w in _PRIORITY_WORDS)]
    if kind in ("work", "personal"):
        return [s for s in sites if _tag_or_category_mentions(s, kind)]
    if kind == "multiple":
        return [s for s in sites if len(s.credentials) > 1]
    raise ValueError(f"Unknown quick filter: {kind!r}")
