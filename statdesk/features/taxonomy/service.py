"""
Draft store and publish coordinator for the option taxonomy.

Editors never touch option_definitions directly. Every edit lands in
option_definitions_draft and becomes visible to entry forms and filters
only when an admin publishes. Each mutating operation runs in a single
transaction and recomputes publish_state.has_pending_changes before it
commits.
"""

import json
from collections.abc import Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import psycopg

from .domain import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_UPDATE,
    DefaultOption,
    DraftId,
    MergedOption,
    MergedView,
    OptionChanges,
    OptionDefinition,
    OptionDraft,
    OptionId,
    PublishedId,
    PublishResult,
    ResetResult,
    clean_keywords,
    merge_options,
    merged_from_draft,
)
from .repository import TaxonomyRepository
from statdesk.config import settings
from statdesk.db.helpers import DatabaseError
from statdesk.db.pool import db_pool
from statdesk.errors import (
    ConflictError,
    NotFoundError,
    PublishError,
    StatDeskError,
    ValidationError,
)
from statdesk.infrastructure.observability.logging import get_logger
from statdesk.models.domain import KEYWORD_SECTIONS, VALID_SECTIONS, require_section

logger = get_logger(__name__)


def _clean_label(label: str | None) -> str:
    cleaned = (label or "").strip()
    if not cleaned:
        raise ValidationError("Label must not be empty", error_code="invalid_label")
    return cleaned


def _check_keywords_allowed(section: str, keywords: list[str] | None) -> None:
    if keywords and section not in KEYWORD_SECTIONS:
        raise ValidationError(
            f"Keywords are only supported for {', '.join(sorted(KEYWORD_SECTIONS))}",
            error_code="keywords_not_supported",
        )


def load_default_options(path: str | Path | None = None) -> list[DefaultOption]:
    """
    Read the default taxonomy file.

    Format: ``{"sections": {"thema": [{"label": "...", "sort_order": 10,
    "keywords": [...]}, ...], ...}}``. A missing sort_order falls back to the
    position in the list.
    """
    path = Path(path) if path else settings.default_options_path()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error("Default taxonomy could not be read", path=str(path), error=str(e))
        raise StatDeskError(
            "Default taxonomy is unavailable", error_code="defaults_unavailable"
        ) from e

    sections = data.get("sections") if isinstance(data, dict) else None
    if not isinstance(sections, dict):
        raise ValidationError(
            "Default taxonomy must contain a 'sections' object", error_code="invalid_defaults"
        )

    defaults: list[DefaultOption] = []
    for section, items in sections.items():
        require_section(section)
        if not isinstance(items, list):
            raise ValidationError(
                f"Defaults for {section} must be a list", error_code="invalid_defaults"
            )
        for index, item in enumerate(items):
            if isinstance(item, str):
                item = {"label": item}
            if not isinstance(item, dict):
                raise ValidationError(
                    f"Invalid default option in {section}", error_code="invalid_defaults"
                )
            defaults.append(
                DefaultOption(
                    section=section,
                    label=_clean_label(item.get("label")),
                    sort_order=int(item.get("sort_order", index)),
                    keywords=tuple(clean_keywords(item.get("keywords"))),
                )
            )
    return defaults


class TaxonomyService:
    """Draft mutations, publish, discard, reset and the merged editor view."""

    def __init__(self, repository: type[TaxonomyRepository] = TaxonomyRepository):
        self.repository = repository

    @asynccontextmanager
    async def _unit_of_work(self, operation: str, **context):
        """
        One transaction per operation.

        Domain errors pass through untouched (the transaction has already
        rolled back); database failures surface as a generic PublishError.
        """
        try:
            async with db_pool.transaction() as conn:
                yield conn
        except StatDeskError:
            raise
        except (DatabaseError, psycopg.Error) as e:
            logger.error(
                "Taxonomy transaction rolled back",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                **context,
            )
            raise PublishError(
                "Taxonomy change failed and was rolled back", error_code="transaction_failed"
            ) from e

    async def _ensure_label_free(
        self,
        conn,
        section: str,
        label: str,
        *,
        exclude_id: int | None = None,
        exclude_draft_id: int | None = None,
    ) -> None:
        if await self.repository.published_label_exists(
            section, label, exclude_id=exclude_id, connection=conn
        ) or await self.repository.create_draft_label_exists(
            section, label, exclude_draft_id=exclude_draft_id, connection=conn
        ):
            raise ConflictError(
                f"Option '{label}' already exists in {section}", error_code="duplicate_label"
            )

    async def _get_create_draft(self, conn, draft_id: DraftId) -> OptionDraft:
        draft = await self.repository.get_draft(draft_id.value, connection=conn)
        # A DraftId only ever addresses a never-published option
        if draft is None or draft.original_id is not None:
            raise NotFoundError(f"Draft option {draft_id.value} not found", error_code="not_found")
        return draft

    async def _get_published(self, conn, option_id: PublishedId) -> OptionDefinition:
        option = await self.repository.get_published(option_id.value, connection=conn, lock=True)
        if option is None:
            raise NotFoundError(f"Option {option_id.value} not found", error_code="not_found")
        return option

    # -----------------------------------------------------------------
    # Draft mutations
    # -----------------------------------------------------------------

    async def create_option(
        self,
        section: str,
        label: str,
        sort_order: int = 0,
        keywords: Sequence[str] | None = None,
    ) -> MergedOption:
        section = require_section(section)
        label = _clean_label(label)
        keywords = clean_keywords(list(keywords) if keywords is not None else [])
        _check_keywords_allowed(section, keywords)

        async with self._unit_of_work("create_option", section=section) as conn:
            await self._ensure_label_free(conn, section, label)
            draft = await self.repository.insert_draft(
                None, section, label, sort_order, True, keywords, ACTION_CREATE, connection=conn
            )
            await self.repository.sync_pending_flag(connection=conn)

        logger.info("Option create drafted", section=section, label=label, draft_id=draft.id)
        return merged_from_draft(draft)

    async def update_option(self, option_id: OptionId, changes: OptionChanges) -> MergedOption:
        """
        Stage field changes for a published option or edit a create-draft in place.

        A published option's existing draft is edited in place and keeps its
        action; otherwise an update draft is created with the unchanged
        fields copied forward from the published row.
        """
        if changes.is_empty():
            raise ValidationError("No fields to update", error_code="no_changes")

        fields: dict[str, Any] = {}
        if changes.label is not None:
            fields["label"] = _clean_label(changes.label)
        if changes.sort_order is not None:
            fields["sort_order"] = changes.sort_order
        if changes.is_active is not None:
            fields["is_active"] = changes.is_active
        if changes.keywords is not None:
            fields["keywords"] = clean_keywords(changes.keywords)

        async with self._unit_of_work("update_option", option_id=str(option_id)) as conn:
            if isinstance(option_id, DraftId):
                draft = await self._get_create_draft(conn, option_id)
                _check_keywords_allowed(draft.section, fields.get("keywords"))
                if "label" in fields and fields["label"] != draft.label:
                    await self._ensure_label_free(
                        conn, draft.section, fields["label"], exclude_draft_id=draft.id
                    )
                draft = await self.repository.update_draft(draft.id, fields, connection=conn)
                await self.repository.sync_pending_flag(connection=conn)
                merged = merged_from_draft(draft)
            else:
                option = await self._get_published(conn, option_id)
                _check_keywords_allowed(option.section, fields.get("keywords"))
                draft = await self.repository.get_draft_for_option(option.id, connection=conn)
                current_label = draft.label if draft else option.label
                if "label" in fields and fields["label"] != current_label:
                    await self._ensure_label_free(
                        conn, option.section, fields["label"], exclude_id=option.id
                    )

                if draft is not None:
                    draft = await self.repository.update_draft(draft.id, fields, connection=conn)
                else:
                    draft = await self.repository.insert_draft(
                        option.id,
                        option.section,
                        fields.get("label", option.label),
                        fields.get("sort_order", option.sort_order),
                        fields.get("is_active", option.is_active),
                        fields.get("keywords", option.keywords),
                        ACTION_UPDATE,
                        connection=conn,
                    )
                await self.repository.sync_pending_flag(connection=conn)
                merged = merge_options([option], [draft])[0]

        logger.info(
            "Option update drafted", option_id=str(option_id), fields=sorted(fields.keys())
        )
        return merged

    async def update_keywords(self, option_id: OptionId, keywords: Sequence[str]) -> MergedOption:
        """Replace the search keywords of a topic option."""
        if not isinstance(keywords, (list, tuple)):
            raise ValidationError("Keywords must be a list", error_code="invalid_keywords")
        return await self.update_option(option_id, OptionChanges(keywords=list(keywords)))

    async def delete_option(self, option_id: OptionId) -> MergedOption | None:
        """
        Remove a create-draft outright, or stage a delete for a published option.

        Returns the option as it now appears in the merged view, or None when a
        draft-only option vanished entirely.
        """
        async with self._unit_of_work("delete_option", option_id=str(option_id)) as conn:
            if isinstance(option_id, DraftId):
                draft = await self._get_create_draft(conn, option_id)
                await self.repository.delete_draft(draft.id, connection=conn)
                await self.repository.sync_pending_flag(connection=conn)
                merged = None
            else:
                option = await self._get_published(conn, option_id)
                draft = await self.repository.get_draft_for_option(option.id, connection=conn)
                if draft is not None:
                    draft = await self.repository.update_draft(
                        draft.id, {"action": ACTION_DELETE}, connection=conn
                    )
                else:
                    draft = await self.repository.insert_draft(
                        option.id,
                        option.section,
                        option.label,
                        option.sort_order,
                        option.is_active,
                        option.keywords,
                        ACTION_DELETE,
                        connection=conn,
                    )
                await self.repository.sync_pending_flag(connection=conn)
                merged = merge_options([option], [draft])[0]

        logger.info("Option delete drafted", option_id=str(option_id), removed=merged is None)
        return merged

    async def reorder_options(
        self, section: str, items: Sequence[tuple[OptionId, int]]
    ) -> int:
        """
        Stage new sort orders for options of one section.

        Items addressing another section or an unknown id are skipped.
        Returns the number of options whose order changed.
        """
        section = require_section(section)
        if not items:
            raise ValidationError("Reorder items must not be empty", error_code="invalid_items")

        changed = 0
        async with self._unit_of_work("reorder_options", section=section) as conn:
            published = {
                o.id: o
                for o in await self.repository.list_published(section, connection=conn)
            }
            drafts = await self.repository.list_drafts(section, connection=conn)
            drafts_by_original = {d.original_id: d for d in drafts if d.original_id is not None}
            create_drafts = {d.id: d for d in drafts if d.original_id is None}

            for option_id, sort_order in items:
                if isinstance(option_id, DraftId):
                    draft = create_drafts.get(option_id.value)
                    if draft is None:
                        logger.debug("Reorder item skipped", option_id=str(option_id))
                        continue
                    if draft.sort_order != sort_order:
                        await self.repository.update_draft(
                            draft.id, {"sort_order": sort_order}, connection=conn
                        )
                        changed += 1
                    continue

                option = published.get(option_id.value)
                if option is None:
                    logger.debug("Reorder item skipped", option_id=str(option_id))
                    continue
                draft = drafts_by_original.get(option.id)
                if draft is not None:
                    if draft.sort_order != sort_order:
                        await self.repository.update_draft(
                            draft.id, {"sort_order": sort_order}, connection=conn
                        )
                        changed += 1
                elif option.sort_order != sort_order:
                    await self.repository.insert_draft(
                        option.id,
                        option.section,
                        option.label,
                        sort_order,
                        option.is_active,
                        option.keywords,
                        ACTION_UPDATE,
                        connection=conn,
                    )
                    changed += 1

            await self.repository.sync_pending_flag(connection=conn)

        logger.info("Options reordered", section=section, changed=changed, items=len(items))
        return changed

    # -----------------------------------------------------------------
    # Publish coordinator
    # -----------------------------------------------------------------

    async def publish(self, user_id: str | None = None) -> PublishResult:
        """
        Apply every pending draft in one transaction.

        Deletes are soft (is_active = FALSE). With nothing pending this is a
        no-op and publish_state is left untouched.
        """
        result = PublishResult()
        async with self._unit_of_work("publish", user_id=user_id) as conn:
            await self.repository.get_publish_state(connection=conn, lock=True)
            drafts = await self.repository.list_drafts(connection=conn)
            if not drafts:
                await self.repository.sync_pending_flag(connection=conn)
                logger.info("Publish skipped, nothing pending", user_id=user_id)
                return result

            for draft in drafts:
                if draft.action == ACTION_CREATE:
                    await self.repository.insert_option(
                        draft.section,
                        draft.label,
                        draft.sort_order,
                        draft.is_active,
                        draft.keywords,
                        connection=conn,
                    )
                    result.created += 1
                elif draft.action == ACTION_UPDATE:
                    affected = await self.repository.update_option(
                        draft.original_id,
                        draft.label,
                        draft.sort_order,
                        draft.is_active,
                        draft.keywords,
                        connection=conn,
                    )
                    if not affected:
                        raise PublishError(
                            f"Draft {draft.id} references a missing option",
                            error_code="publish_failed",
                        )
                    result.updated += 1
                elif draft.action == ACTION_DELETE:
                    await self.repository.soft_delete_option(draft.original_id, connection=conn)
                    result.deleted += 1
                else:
                    raise PublishError(
                        f"Draft {draft.id} has unknown action {draft.action!r}",
                        error_code="publish_failed",
                    )

            await self.repository.clear_drafts(connection=conn)
            await self.repository.mark_published(user_id, connection=conn)

        logger.info(
            "Taxonomy published",
            user_id=user_id,
            created=result.created,
            updated=result.updated,
            deleted=result.deleted,
        )
        return result

    async def discard(self) -> int:
        """Drop every pending draft. Published options are not touched."""
        async with self._unit_of_work("discard") as conn:
            await self.repository.get_publish_state(connection=conn, lock=True)
            removed = await self.repository.clear_drafts(connection=conn)
            await self.repository.sync_pending_flag(connection=conn)

        logger.info("Taxonomy drafts discarded", removed=removed)
        return removed

    async def reset_to_defaults(
        self, defaults: Sequence[DefaultOption] | None = None
    ) -> ResetResult:
        """
        Replace the draft table with the diff between defaults and published options.

        Options are matched by (section, label). Unmatched defaults become create
        drafts, changed matches become update drafts and active published options
        missing from the defaults become delete drafts.
        """
        if defaults is None:
            defaults = load_default_options()

        result = ResetResult()
        async with self._unit_of_work("reset_to_defaults") as conn:
            await self.repository.get_publish_state(connection=conn, lock=True)
            await self.repository.clear_drafts(connection=conn)

            published = await self.repository.list_published(connection=conn)
            by_key = {(o.section, o.label): o for o in published}
            seen: set[tuple[str, str]] = set()

            for default in defaults:
                key = (default.section, default.label)
                if key in seen:
                    logger.warning("Duplicate default option ignored", section=key[0], label=key[1])
                    continue
                seen.add(key)
                keywords = list(default.keywords)

                match = by_key.get(key)
                if match is None:
                    await self.repository.insert_draft(
                        None,
                        default.section,
                        default.label,
                        default.sort_order,
                        True,
                        keywords,
                        ACTION_CREATE,
                        connection=conn,
                    )
                    result.to_create += 1
                elif (
                    match.sort_order != default.sort_order
                    or list(match.keywords) != keywords
                    or not match.is_active
                ):
                    await self.repository.insert_draft(
                        match.id,
                        match.section,
                        match.label,
                        default.sort_order,
                        True,
                        keywords,
                        ACTION_UPDATE,
                        connection=conn,
                    )
                    result.to_update += 1

            for option in published:
                if (option.section, option.label) in seen or not option.is_active:
                    continue
                await self.repository.insert_draft(
                    option.id,
                    option.section,
                    option.label,
                    option.sort_order,
                    option.is_active,
                    option.keywords,
                    ACTION_DELETE,
                    connection=conn,
                )
                result.to_delete += 1

            await self.repository.sync_pending_flag(connection=conn)

        logger.info(
            "Taxonomy reset to defaults drafted",
            to_create=result.to_create,
            to_update=result.to_update,
            to_delete=result.to_delete,
        )
        return result

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    async def get_merged_view(self, section: str | None = None) -> MergedView:
        if section is not None:
            require_section(section)

        async with db_pool.connection() as conn:
            published = await self.repository.list_published(section, connection=conn)
            drafts = await self.repository.list_drafts(section, connection=conn)
            state = await self.repository.get_publish_state(connection=conn)

        return MergedView(options=merge_options(published, drafts), publish_state=state)

    async def list_options(
        self, section: str | None = None, active_only: bool = True
    ) -> list[OptionDefinition]:
        if section is not None:
            require_section(section)
        return await self.repository.list_published(section, active_only)

    async def filter_catalogue(self) -> dict[str, list[str]]:
        """Active published labels per section, in display order."""
        catalogue: dict[str, list[str]] = {section: [] for section in VALID_SECTIONS}
        for option in await self.repository.list_published(active_only=True):
            catalogue.setdefault(option.section, []).append(option.label)
        return catalogue


taxonomy_service = TaxonomyService()
