import copy
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date

import pytest

from statdesk.auth.verify import admin_dependency, auth_dependency
from statdesk.db.helpers import DatabaseError
from statdesk.features.analytics.buckets import bucket_start
from statdesk.features.taxonomy.domain import OptionDefinition, OptionDraft, PublishState
from statdesk.features.taxonomy.service import TaxonomyService


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "42", "role": "staff"}

    return _override


@pytest.fixture
def admin_override():
    def _override():
        return {"sub": "7", "role": "admin"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override, admin_override):
    def _apply(app, admin: bool = False):
        app.dependency_overrides[auth_dependency] = admin_override if admin else auth_override
        if admin:
            app.dependency_overrides[admin_dependency] = admin_override

    return _apply


class FakeTaxonomyRepository:
    """In-memory stand-in for TaxonomyRepository with the same call signatures."""

    def __init__(self):
        self.options: dict[int, OptionDefinition] = {}
        self.drafts: dict[int, OptionDraft] = {}
        self.state = PublishState()
        self._next_option_id = 1
        self._next_draft_id = 1
        self.fail_on: str | None = None
        self.locked = 0

    def add_option(self, section, label, sort_order=0, is_active=True, keywords=None):
        option = OptionDefinition(
            id=self._next_option_id,
            section=section,
            label=label,
            sort_order=sort_order,
            is_active=is_active,
            keywords=list(keywords or []),
        )
        self.options[option.id] = option
        self._next_option_id += 1
        return option

    def snapshot(self):
        return copy.deepcopy(
            (self.options, self.drafts, self.state, self._next_option_id, self._next_draft_id)
        )

    def restore(self, snapshot):
        (
            self.options,
            self.drafts,
            self.state,
            self._next_option_id,
            self._next_draft_id,
        ) = snapshot

    def _maybe_fail(self, operation):
        if self.fail_on == operation:
            raise DatabaseError(f"{operation} failed", operation=operation)

    async def list_published(self, section=None, active_only=False, *, connection=None):
        options = [
            replace(o)
            for o in self.options.values()
            if (section is None or o.section == section) and (o.is_active or not active_only)
        ]
        return sorted(options, key=lambda o: (o.section, o.sort_order, o.label))

    async def get_published(self, option_id, *, connection=None, lock=False):
        option = self.options.get(option_id)
        return replace(option) if option else None

    async def published_label_exists(self, section, label, *, exclude_id=None, connection=None):
        return any(
            o.section == section and o.label == label and o.id != exclude_id
            for o in self.options.values()
        )

    async def insert_option(self, section, label, sort_order, is_active, keywords, *, connection=None):
        self._maybe_fail("insert_option")
        return self.add_option(section, label, sort_order, is_active, keywords).id

    async def update_option(
        self, option_id, label, sort_order, is_active, keywords, *, connection=None
    ):
        self._maybe_fail("update_option")
        if option_id not in self.options:
            return 0
        self.options[option_id] = replace(
            self.options[option_id],
            label=label,
            sort_order=sort_order,
            is_active=is_active,
            keywords=list(keywords),
        )
        return 1

    async def soft_delete_option(self, option_id, *, connection=None):
        self._maybe_fail("soft_delete_option")
        self.options[option_id].is_active = False
        return 1

    async def list_drafts(self, section=None, *, connection=None):
        return [
            replace(d)
            for d in sorted(self.drafts.values(), key=lambda d: d.id)
            if section is None or d.section == section
        ]

    async def get_draft(self, draft_id, *, connection=None):
        draft = self.drafts.get(draft_id)
        return replace(draft) if draft else None

    async def get_draft_for_option(self, original_id, *, connection=None):
        for draft in self.drafts.values():
            if draft.original_id == original_id:
                return replace(draft)
        return None

    async def create_draft_label_exists(
        self, section, label, *, exclude_draft_id=None, connection=None
    ):
        return any(
            d.action == "create" and d.section == section and d.label == label
            and d.id != exclude_draft_id
            for d in self.drafts.values()
        )

    async def insert_draft(
        self,
        original_id,
        section,
        label,
        sort_order,
        is_active,
        keywords,
        action,
        *,
        connection=None,
    ):
        self._maybe_fail("insert_draft")
        if original_id is not None and any(
            d.original_id == original_id for d in self.drafts.values()
        ):
            raise DatabaseError("duplicate original_id", operation="insert_draft")
        draft = OptionDraft(
            id=self._next_draft_id,
            original_id=original_id,
            section=section,
            label=label,
            sort_order=sort_order,
            is_active=is_active,
            keywords=list(keywords),
            action=action,
        )
        self.drafts[draft.id] = draft
        self._next_draft_id += 1
        return replace(draft)

    async def update_draft(self, draft_id, fields, *, connection=None):
        if draft_id not in self.drafts:
            return None
        self.drafts[draft_id] = replace(self.drafts[draft_id], **fields)
        return replace(self.drafts[draft_id])

    async def delete_draft(self, draft_id, *, connection=None):
        return 1 if self.drafts.pop(draft_id, None) else 0

    async def clear_drafts(self, *, connection=None):
        self._maybe_fail("clear_drafts")
        removed = len(self.drafts)
        self.drafts.clear()
        return removed

    async def get_publish_state(self, *, connection=None, lock=False):
        if lock:
            self.locked += 1
        return replace(self.state)

    async def sync_pending_flag(self, *, connection=None):
        self.state.has_pending_changes = bool(self.drafts)

    async def mark_published(self, user, *, connection=None):
        self.state.has_pending_changes = False
        self.state.last_published_at = "now"
        self.state.last_published_by = user


class FakePool:
    """Runs transaction bodies against a fake store, restoring it if the body raises."""

    def __init__(self, store=None):
        self.store = store
        self.transactions = 0
        self.conn = object()

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        snapshot = self.store.snapshot() if self.store is not None else None
        try:
            yield self.conn
        except BaseException:
            if snapshot is not None:
                self.store.restore(snapshot)
            raise

    @asynccontextmanager
    async def connection(self):
        yield self.conn


@pytest.fixture
def taxonomy_repo():
    return FakeTaxonomyRepository()


@pytest.fixture
def taxonomy(monkeypatch, taxonomy_repo):
    pool = FakePool(taxonomy_repo)
    monkeypatch.setattr("statdesk.features.taxonomy.service.db_pool", pool)
    return TaxonomyService(repository=taxonomy_repo)


@pytest.fixture
def fake_pool(monkeypatch):
    pool = FakePool()
    monkeypatch.setattr("statdesk.features.entries.service.db_pool", pool)
    return pool


def fragment_matches(fragment, pairs: set[tuple[str, str]]) -> bool:
    """
    Evaluate a compiled FilterFragment against one entry's (section, value) pairs.

    Each clause is a single EXISTS over the entry's value rows whose condition
    is an OR of (section, value-or-value-list) placeholder pairs, so the
    placeholders of a clause can be consumed two at a time.
    """
    params = list(fragment.params)
    for clause in fragment.clauses:
        width = clause.count("%s")
        clause_params, params = params[:width], params[width:]
        accepted = set()
        for section, values in zip(clause_params[::2], clause_params[1::2]):
            for value in values if isinstance(values, list) else [values]:
                accepted.add((section, value))
        if not pairs & accepted:
            return False
    return True


class FakeAnalyticsRepository:
    """In-memory stand-in for AnalyticsRepository that runs the real compiled filters."""

    def __init__(self):
        self.entries: list[tuple[int, date, set[tuple[str, str]]]] = []

    def add_entry(self, created: date, **values):
        pairs = set()
        for section, section_values in values.items():
            if isinstance(section_values, str):
                section_values = [section_values]
            pairs.update((section, value) for value in section_values)
        self.entries.append((len(self.entries) + 1, created, pairs))

    def _matching(self, fragment, date_range):
        return [
            (entry_id, created, pairs)
            for entry_id, created, pairs in self.entries
            if (date_range.start is None or created >= date_range.start)
            and (date_range.end is None or created <= date_range.end)
            and fragment_matches(fragment, pairs)
        ]

    def _value_counts(self, section, fragment, date_range, values=None):
        counts: dict[str, int] = {}
        for _, _, pairs in self._matching(fragment, date_range):
            for pair_section, value in pairs:
                if pair_section == section and (values is None or value in values):
                    counts[value] = counts.get(value, 0) + 1
        return counts

    async def count_values(self, section, fragment, date_range):
        counts = self._value_counts(section, fragment, date_range)
        return [{"label": label, "count": count} for label, count in counts.items()]

    async def count_entries(self, fragment, date_range):
        return len(self._matching(fragment, date_range))

    async def count_values_by_bucket(self, section, values, fragment, date_range, granularity):
        counts: dict[tuple[str, date], int] = {}
        for _, created, pairs in self._matching(fragment, date_range):
            for pair_section, value in pairs:
                if pair_section == section and value in values:
                    key = (value, bucket_start(created, granularity))
                    counts[key] = counts.get(key, 0) + 1
        return [
            {"value": value, "bucket": bucket, "count": count}
            for (value, bucket), count in counts.items()
        ]

    async def count_entries_by_bucket(self, fragment, date_range, granularity):
        counts: dict[date, int] = {}
        for _, created, _ in self._matching(fragment, date_range):
            bucket = bucket_start(created, granularity)
            counts[bucket] = counts.get(bucket, 0) + 1
        return [{"bucket": bucket, "count": count} for bucket, count in counts.items()]

    async def count_values_in_period(self, section, values, fragment, date_range):
        return self._value_counts(section, fragment, date_range, values)


@pytest.fixture
def analytics_repo(monkeypatch):
    repo = FakeAnalyticsRepository()
    monkeypatch.setattr("statdesk.features.analytics.service.AnalyticsRepository", repo)
    return repo
