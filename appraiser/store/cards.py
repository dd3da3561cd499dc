"""
TCG Appraiser — Card Store

Durable, owner-scoped storage of Card records.

Every write is a single conditional UPDATE/INSERT so concurrent writers
cannot resurrect a soft-deleted card. Workflow results also insert a
workflow_requests row in the same transaction, so a request id is applied
to a card at most once.

Ownership rules:
    - card_id unknown                        -> NotFoundError
    - card owned by someone else             -> ForbiddenError (even if soft-deleted)
    - card soft-deleted (deleted_at not null) -> NotFoundError
"""

from __future__ import annotations

import base64
import binascii
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog
from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appraiser.config import settings
from appraiser.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from appraiser.models.card import CardRecord
from appraiser.models.workflow_request import STATUS_COMPLETED, STATUS_PARTIAL, WorkflowRequest
from appraiser.schemas import Card, CardCreate, CardPage, CardUpdate

logger = structlog.get_logger(__name__)

# Fields a user may edit through update().
USER_EDITABLE_FIELDS = frozenset(CardUpdate.model_fields)

# Fields the workflow aggregate / partial-persist step may write.
WORKFLOW_RESULT_FIELDS = frozenset(
    {
        "authenticity_score",
        "authenticity_signals",
        "value_low",
        "value_median",
        "value_high",
        "comps_count",
        "sources",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Cursor encoding
# ---------------------------------------------------------------------------


def encode_cursor(created_at: datetime, card_id: str) -> str:
    """Opaque pagination cursor pointing at the last item of a page."""
    raw = json.dumps({"createdAt": _as_utc(created_at).isoformat(), "cardId": card_id})
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        return _as_utc(datetime.fromisoformat(payload["createdAt"])), str(payload["cardId"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as e:
        raise ValidationError("Malformed pagination cursor", cursor=cursor) from e


def _to_card(row: CardRecord) -> Card:
    data = {name: getattr(row, name) for name in Card.model_fields}
    for name in ("created_at", "updated_at", "deleted_at"):
        if data[name] is not None:
            data[name] = _as_utc(data[name])
    return Card(**data)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class CardStore:
    """
    Owner-scoped CRUD over the cards table.

    Args:
        session_factory: async_sessionmaker bound to the application engine.
        clock: Returns the current UTC time. Injected in tests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or _utcnow

    async def _load_for_owner(
        self,
        session: AsyncSession,
        owner_id: str,
        card_id: str,
        include_deleted: bool = False,
    ) -> CardRecord:
        row = (
            await session.execute(select(CardRecord).where(CardRecord.card_id == card_id))
        ).scalar_one_or_none()

        if row is None:
            raise NotFoundError(f"Card {card_id} not found", card_id=card_id)
        if row.owner_id != owner_id:
            logger.warning("card_access_forbidden", card_id=card_id, owner_id=owner_id)
            raise ForbiddenError(f"Card {card_id} is not owned by caller", card_id=card_id)
        if row.deleted_at is not None and not include_deleted:
            raise NotFoundError(f"Card {card_id} has been deleted", card_id=card_id)
        return row

    # -----------------------------------------------------------------------
    # Create / read
    # -----------------------------------------------------------------------

    async def create(
        self,
        owner_id: str,
        payload: CardCreate,
        card_id: Optional[str] = None,
    ) -> Card:
        """
        Insert a new card. Exactly one of two concurrent creates with the
        same card_id succeeds; the other raises ConflictError.
        """
        if not owner_id:
            raise ValidationError("owner_id is required")

        now = self._clock()
        row = CardRecord(
            owner_id=owner_id,
            card_id=card_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )

        card = _to_card(row)
        async with self._session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning("card_create_conflict", card_id=row.card_id, owner_id=owner_id)
                raise ConflictError(f"Card {row.card_id} already exists", card_id=row.card_id) from e

        logger.info("card_created", card_id=card.card_id, owner_id=owner_id)
        return card

    async def get(self, owner_id: str, card_id: str) -> Card:
        async with self._session_factory() as session:
            row = await self._load_for_owner(session, owner_id, card_id)
            return _to_card(row)

    async def list(
        self,
        owner_id: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> CardPage:
        """
        Page through the owner's live cards, newest first.

        Ties on created_at are broken by card_id (descending) so pages are
        stable. next_cursor is None on the last page.
        """
        if limit is None:
            limit = settings.CARD_LIST_DEFAULT_LIMIT
        if limit < 1:
            raise ValidationError(f"limit must be positive, got {limit}")
        limit = min(limit, settings.CARD_LIST_MAX_LIMIT)

        stmt = (
            select(CardRecord)
            .where(CardRecord.owner_id == owner_id, CardRecord.deleted_at.is_(None))
            .order_by(CardRecord.created_at.desc(), CardRecord.card_id.desc())
            .limit(limit + 1)
        )
        if cursor:
            after_created, after_id = decode_cursor(cursor)
            stmt = stmt.where(
                or_(
                    CardRecord.created_at < after_created,
                    and_(CardRecord.created_at == after_created, CardRecord.card_id < after_id),
                )
            )

        async with self._session_factory() as session:
            rows = list((await session.execute(stmt)).scalars().all())

        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = encode_cursor(rows[-1].created_at, rows[-1].card_id) if has_more else None

        logger.debug("card_list", owner_id=owner_id, count=len(rows), has_more=has_more)
        return CardPage(items=[_to_card(r) for r in rows], next_cursor=next_cursor)

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    async def update(
        self,
        owner_id: str,
        card_id: str,
        changes: CardUpdate | dict[str, Any],
    ) -> Card:
        """
        Apply a field-level update. Only explicitly supplied fields are
        written, and updated_at is refreshed.
        """
        if isinstance(changes, CardUpdate):
            values = changes.model_dump(exclude_unset=True)
        else:
            values = dict(changes)
        unknown = set(values) - USER_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields not editable: {sorted(unknown)}", fields=sorted(unknown))

        async with self._session_factory() as session:
            row = await self._load_for_owner(session, owner_id, card_id)
            if not values:
                return _to_card(row)

            result = await session.execute(
                update(CardRecord)
                .where(
                    CardRecord.owner_id == owner_id,
                    CardRecord.card_id == card_id,
                    CardRecord.deleted_at.is_(None),
                )
                .values(**values, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise NotFoundError(f"Card {card_id} was deleted concurrently", card_id=card_id)
            await session.commit()
            await session.refresh(row)

            logger.info("card_updated", card_id=card_id, fields=sorted(values))
            return _to_card(row)

    def _log_replay(self, card_id: str, request_id: str, complete: bool) -> bool:
        logger.info(
            "card_workflow_write_skipped",
            card_id=card_id,
            request_id=request_id,
            complete=complete,
            reason="request already applied",
        )
        return False

    async def apply_workflow_result(
        self,
        owner_id: str,
        card_id: str,
        fields: dict[str, Any],
        request_id: str,
        complete: bool = True,
    ) -> bool:
        """
        Write valuation / authenticity fields for one workflow request.

        The card write and the workflow_requests ledger row commit in one
        transaction, so a request id is applied to a card at most once even
        when other requests wrote in between. complete=False marks a partial
        write from the error handler; the same request may later complete,
        but a partial write never follows another write of the same request.

        Returns False when the request was already applied (a logged no-op).
        """
        unknown = set(fields) - WORKFLOW_RESULT_FIELDS
        if unknown:
            raise ValidationError(f"Fields not writable by workflow: {sorted(unknown)}")

        status = STATUS_COMPLETED if complete else STATUS_PARTIAL

        async with self._session_factory() as session:
            await self._load_for_owner(session, owner_id, card_id)
            now = self._clock()

            ledger = (
                await session.execute(
                    select(WorkflowRequest).where(
                        WorkflowRequest.card_id == card_id,
                        WorkflowRequest.request_id == request_id,
                    )
                )
            ).scalar_one_or_none()

            if ledger is not None and (ledger.status == STATUS_COMPLETED or not complete):
                await session.rollback()
                return self._log_replay(card_id, request_id, complete)

            try:
                if ledger is None:
                    session.add(
                        WorkflowRequest(
                            card_id=card_id,
                            request_id=request_id,
                            owner_id=owner_id,
                            status=status,
                            applied_at=now,
                        )
                    )
                    await session.flush()
                else:
                    promoted = await session.execute(
                        update(WorkflowRequest)
                        .where(
                            WorkflowRequest.card_id == card_id,
                            WorkflowRequest.request_id == request_id,
                            WorkflowRequest.status == STATUS_PARTIAL,
                        )
                        .values(status=STATUS_COMPLETED, applied_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    if promoted.rowcount == 0:
                        await session.rollback()
                        return self._log_replay(card_id, request_id, complete)

                result = await session.execute(
                    update(CardRecord)
                    .where(
                        CardRecord.owner_id == owner_id,
                        CardRecord.card_id == card_id,
                        CardRecord.deleted_at.is_(None),
                    )
                    .values(**fields, last_request_id=request_id, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    raise NotFoundError(f"Card {card_id} was deleted concurrently", card_id=card_id)
                await session.commit()
            except IntegrityError:
                # A concurrent run of the same request inserted the ledger row first.
                await session.rollback()
                return self._log_replay(card_id, request_id, complete)

        logger.info(
            "card_workflow_result_applied",
            card_id=card_id,
            request_id=request_id,
            status=status,
            fields=sorted(fields),
        )
        return True

    async def delete(self, owner_id: str, card_id: str, hard: bool = False) -> None:
        """
        Soft-delete by default (sets deleted_at). hard=True removes the row
        and is reserved for maintenance; it also purges soft-deleted rows.
        """
        async with self._session_factory() as session:
            await self._load_for_owner(session, owner_id, card_id, include_deleted=hard)

            if hard:
                await session.execute(
                    delete(CardRecord).where(
                        CardRecord.owner_id == owner_id, CardRecord.card_id == card_id
                    )
                )
                await session.execute(
                    delete(WorkflowRequest).where(WorkflowRequest.card_id == card_id)
                )
                await session.commit()
                logger.info("card_hard_deleted", card_id=card_id, owner_id=owner_id)
                return

            now = self._clock()
            result = await session.execute(
                update(CardRecord)
                .where(
                    CardRecord.owner_id == owner_id,
                    CardRecord.card_id == card_id,
                    CardRecord.deleted_at.is_(None),
                )
                .values(deleted_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise NotFoundError(f"Card {card_id} has been deleted", card_id=card_id)
            await session.commit()

        logger.info("card_soft_deleted", card_id=card_id, owner_id=owner_id)
