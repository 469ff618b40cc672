"""Session-scoped facade over the persistence store.

Holds the cached document, the view/filter state, and the event bus. Every
mutator delegates to the store, re-reads the stored document, then emits the
specific event followed by STATE_CHANGED.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Optional

from checkin_tracker import insights
from checkin_tracker.clock import today_key
from checkin_tracker.config import VIEW_MODES
from checkin_tracker.errors import ValidationError
from checkin_tracker.events import Event, EventBus, Listener
from checkin_tracker.insights import (
    QUICK_FILTERS,
    CategoryShare,
    Completion,
    CredentialHealth,
    CredentialRef,
    DayActivity,
    DuplicateGroup,
    NeglectedSite,
    PasswordHealthOverview,
)
from checkin_tracker.models import Analytics, Category, Credential, CustomField, Document, Settings, Site
from checkin_tracker.store import PersistenceStore

STATUSES: frozenset[str] = frozenset({"all", "done", "pending"})
_FILTER_KEYS = ("search", "status", "category", "tags", "quick")


@dataclass(frozen=True)
class Filters:
    search: str = ""
    status: str = "all"
    category: Optional[str] = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    quick: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "search": self.search,
            "status": self.status,
            "category": self.category,
            "tags": list(self.tags),
            "quick": list(self.quick),
        }


def site_matches_query(site: Site, query: str) -> bool:
    """Case-insensitive substring match on name, URL, tags, credential email/label."""
    needle = query.lower()
    haystack = [site.name, site.url, *site.tags]
    for cred in site.credentials:
        if isinstance(cred.email, str):
            haystack.append(cred.email)
        haystack.append(cred.label)
    return any(needle in value.lower() for value in haystack if value)


def is_site_done(site: Site, day: str) -> bool:
    """Every credential checked in on ``day``. A site with no credentials is pending."""
    return bool(site.credentials) and all(c.is_checked_in_on(day) for c in site.credentials)


class StateFacade:
    def __init__(self, store: PersistenceStore, bus: Optional[EventBus] = None):
        self.store = store
        self.bus = bus or EventBus()
        self.document: Optional[Document] = None
        self.filters = Filters()
        self.view_mode = "grid"

    # ── events ──

    def on(self, event: Event, callback: Listener) -> Callable[[], None]:
        return self.bus.subscribe(event, callback)

    def off(self, event: Event, callback: Listener) -> None:
        self.bus.unsubscribe(event, callback)

    def _refresh(self) -> None:
        self.document = self.store.get_document()

    def _changed(self, event: Optional[Event] = None, data: Any = None) -> None:
        self._refresh()
        if event is not None:
            self.bus.emit(event, data)
        self.bus.emit(Event.STATE_CHANGED, self.document)

    # ── lifecycle ──

    def init(self) -> bool:
        ok = self.store.init()
        self._refresh()
        if self.document is None:
            self.store.initialize_default_state()
            self._refresh()
        if self.document is not None:
            self.view_mode = self.document.settings.view_mode
        self.bus.emit(Event.STATE_CHANGED, self.document)
        return ok and self.document is not None

    def clear_all_data(self) -> bool:
        ok = self.store.clear_all_data()
        self.document = None
        return self.init() and ok

    # ── reads ──

    def now(self) -> datetime:
        return self.store.clock()

    def today(self) -> str:
        return today_key(self.now())

    def get_sites(self) -> list[Site]:
        return self.document.sites if self.document else []

    def get_site(self, site_id: str) -> Optional[Site]:
        return self.document.find_site(site_id) if self.document else None

    def get_categories(self) -> list[Category]:
        return sorted(self.document.categories, key=lambda c: c.order) if self.document else []

    def get_analytics(self) -> Analytics:
        return self.document.analytics if self.document else Analytics()

    def get_settings(self) -> Settings:
        return self.document.settings if self.document else Settings()

    def get_all_tags(self) -> list[str]:
        return sorted({tag for site in self.get_sites() for tag in site.tags})

    def get_filtered_sites(self) -> list[Site]:
        """search -> status -> category -> tags -> quick filters, in that order."""
        sites = self.get_sites()
        f = self.filters
        if f.search:
            sites = [s for s in sites if site_matches_query(s, f.search)]
        if f.status != "all":
            day = self.today()
            want_done = f.status == "done"
            sites = [s for s in sites if is_site_done(s, day) == want_done]
        if f.category:
            sites = [s for s in sites if s.category == f.category]
        if f.tags:
            wanted = set(f.tags)
            sites = [s for s in sites if wanted.intersection(s.tags)]
        if f.quick:
            day = self.today()
            for kind in f.quick:
                sites = insights.apply_quick_filter(sites, kind, day)
        return sites

    def get_progress_stats(self) -> dict:
        stats = self.get_daily_completion_rate()
        return {"total": stats.total, "checked": stats.checked, "percentage": stats.rate}

    # ── reports ──

    def _report_document(self) -> Document:
        return self.document or Document(version="", last_reset="")

    def get_daily_completion_rate(self) -> Completion:
        return insights.completion(self._report_document(), self.today())

    # same figures the credentials view shows as check-in stats
    get_check_in_stats = get_daily_completion_rate

    def get_check_in_history(self, days: int = 30) -> list[DayActivity]:
        return insights.check_in_history(self._report_document(), self.now(), days)

    def get_category_distribution(self) -> list[CategoryShare]:
        return insights.category_distribution(self._report_document())

    def get_neglected_sites(self, days: Optional[int] = None) -> list[NeglectedSite]:
        """Sites not checked in for ``days`` (default: the staleDays notification setting)."""
        if days is None:
            days = self.get_settings().notifications.stale_days
        return insights.neglected_sites(self._report_document(), self.now(), days)

    def get_password_health_overview(self) -> PasswordHealthOverview:
        return insights.password_health_overview(self._report_document())

    def find_weak_passwords(self) -> list[CredentialRef]:
        return insights.find_weak_passwords(self._report_document())

    def find_duplicate_passwords(self) -> list[DuplicateGroup]:
        return insights.find_duplicate_passwords(self._report_document())

    def find_expired_passwords(self) -> list[CredentialRef]:
        return insights.find_expired_passwords(self._report_document(), self.now())

    def find_expiring_soon_passwords(self, days: int = insights.EXPIRY_WINDOW_DAYS) -> list[CredentialRef]:
        return insights.find_expiring_soon_passwords(self._report_document(), self.now(), days)

    def get_credential_health(self, site_id: str, credential_id: str) -> Optional[CredentialHealth]:
        site = self.get_site(site_id)
        cred = site.find_credential(credential_id) if site else None
        return insights.credential_health(cred, self.now()) if cred else None

    def get_credential_status(self, site_id: str, credential_id: str) -> Optional[str]:
        site = self.get_site(site_id)
        cred = site.find_credential(credential_id) if site else None
        return insights.credential_status(cred, self.now()) if cred else None

    # ── filters & view ──

    def set_filters(self, **changes: Any) -> Filters:
        unknown = set(changes) - set(_FILTER_KEYS)
        if unknown:
            raise ValidationError(f"Unknown filter(s): {sorted(unknown)}")
        if "status" in changes and changes["status"] not in STATUSES:
            raise ValidationError(f"Status filter must be one of {sorted(STATUSES)}")
        if "tags" in changes:
            changes["tags"] = tuple(changes["tags"] or ())
        if "quick" in changes:
            changes["quick"] = tuple(dict.fromkeys(changes["quick"] or ()))
            bad = set(changes["quick"]) - QUICK_FILTERS
            if bad:
                raise ValidationError(f"Unknown quick filter(s) {sorted(bad)}; choose from {sorted(QUICK_FILTERS)}")
        if "search" in changes:
            changes["search"] = changes["search"] or ""
        self.filters = replace(self.filters, **changes)
        self.bus.emit(Event.FILTER_CHANGED, self.filters)
        return self.filters

    def toggle_quick_filter(self, kind: str) -> Filters:
        active = self.filters.quick
        quick = tuple(k for k in active if k != kind) if kind in active else active + (kind,)
        return self.set_filters(quick=quick)

    def clear_filters(self) -> Filters:
        self.filters = Filters()
        self.bus.emit(Event.FILTER_CHANGED, self.filters)
        return self.filters

    def search_sites(self, query: str) -> list[Site]:
        self.set_filters(search=query)
        self.bus.emit(Event.SEARCH_PERFORMED, query)
        return self.get_filtered_sites()

    def set_view_mode(self, mode: str) -> None:
        if mode not in VIEW_MODES:
            raise ValidationError(f"View mode must be one of {sorted(VIEW_MODES)}")
        self.view_mode = mode
        self.bus.emit(Event.VIEW_CHANGED, mode)

    def get_view_mode(self) -> str:
        return self.view_mode

    def set_theme(self, theme: str) -> bool:
        ok = self.store.set_theme(theme)
        if ok:
            self.bus.emit(Event.THEME_CHANGED, theme)
        return ok

    # ── mutations ──

    def add_site(self, data: dict) -> Optional[Site]:
        site = self.store.add_site(data)
        if site is not None:
            self._changed(Event.SITE_ADDED, site)
        return site

    def update_site(self, site_id: str, updates: dict) -> bool:
        ok = self.store.update_site(site_id, updates)
        if ok:
            self._changed(Event.SITE_UPDATED, {"id": site_id, "updates": updates})
        return ok

    def delete_site(self, site_id: str) -> bool:
        ok = self.store.delete_site(site_id)
        if ok:
            self._changed(Event.SITE_DELETED, site_id)
        return ok

    def add_credential(self, site_id: str, data: dict) -> Optional[Credential]:
        cred = self.store.add_credential(site_id, data)
        if cred is not None:
            self._changed(Event.SITE_UPDATED, {"id": site_id, "credential": cred.id})
        return cred

    def update_credential(self, site_id: str, credential_id: str, updates: dict) -> bool:
        ok = self.store.update_credential(site_id, credential_id, updates)
        if ok:
            self._changed(Event.SITE_UPDATED, {"id": site_id, "credential": credential_id})
        return ok

    def delete_credential(self, site_id: str, credential_id: str) -> bool:
        ok = self.store.delete_credential(site_id, credential_id)
        if ok:
            self._changed(Event.SITE_UPDATED, {"id": site_id, "credential": credential_id})
        return ok

    def add_custom_field(self, site_id: str, credential_id: str, data: dict) -> Optional[CustomField]:
        custom = self.store.add_custom_field(site_id, credential_id, data)
        if custom is not None:
            self._changed(Event.SITE_UPDATED, {"id": site_id, "credential": credential_id})
        return custom

    def remove_custom_field(self, site_id: str, credential_id: str, field_id: str) -> bool:
        ok = self.store.remove_custom_field(site_id, credential_id, field_id)
        if ok:
            self._changed(Event.SITE_UPDATED, {"id": site_id, "credential": credential_id})
        return ok

    def check_in_credential(self, site_id: str, credential_id: str) -> bool:
        ok = self.store.check_in_credential(site_id, credential_id)
        if ok:
            self._changed(Event.CREDENTIAL_CHECKED, {"siteId": site_id, "credentialId": credential_id})
        return ok

    def reset_credential(self, site_id: str, credential_id: str) -> bool:
        ok = self.store.reset_credential(site_id, credential_id)
        if ok:
            self._changed()
        return ok

    def reset_all_credentials(self) -> bool:
        ok = self.store.reset_all_credentials()
        if ok:
            self._changed()
        return ok

    def toggle_check_in(self, site_id: str, credential_id: str) -> bool:
        site = self.get_site(site_id)
        cred = site.find_credential(credential_id) if site else None
        if cred is None:
            return False
        if cred.is_checked_in_on(self.today()):
            return self.reset_credential(site_id, credential_id)
        return self.check_in_credential(site_id, credential_id)

    def mark_all_done(self) -> int:
        """Check in every credential not yet checked in today. Returns how many."""
        day = self.today()
        pending = [
            (site.id, cred.id)
            for site in self.get_sites()
            for cred in site.credentials
            if not cred.is_checked_in_on(day)
        ]
        return sum(1 for site_id, cred_id in pending if self.check_in_credential(site_id, cred_id))

    def add_category(self, data: dict) -> Optional[Category]:
        category = self.store.add_category(data)
        if category is not None:
            self._changed()
        return category

    def update_settings(self, updates: dict) -> bool:
        ok = self.store.update_settings(updates)
        if ok:
            self._changed()
        return ok

    # ── import / export ──

    async def export_data(
        self,
        format: str = "json",
        include_history: bool = True,
        encrypt: bool = False,
        password: Optional[str] = None,
    ) -> Optional[str]:
        data = await self.store.export_data(format, include_history, encrypt, password)
        if data is not None:
            self.bus.emit(Event.EXPORT_COMPLETED, {"format": format, "data": data})
        return data

    async def import_data(self, data_string: str, password: Optional[str] = None) -> bool:
        ok = await self.store.import_data(data_string, password)
        if ok:
            self._refresh()
            self.bus.emit(Event.IMPORT_COMPLETED, None)
            self.bus.emit(Event.STATE_CHANGED, self.document)
        return ok
