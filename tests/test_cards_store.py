"""Tests for the owner-scoped card store (appraiser.store.cards)."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from appraiser.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from appraiser.schemas import CardCreate, CardUpdate
from appraiser.store.cards import decode_cursor, encode_cursor
from helpers import NOW


def _payload(name: str = "Pikachu") -> CardCreate:
    return CardCreate(front_image_key=f"uploads/{name}.png", name=name)


# ---------------------------------------------------------------------------
# Create / get
# ---------------------------------------------------------------------------


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_and_get(self, card_store):
        """A created card is readable by its owner with timestamps set."""
        created = await card_store.create("user-1", _payload(), card_id="c-1")
        fetched = await card_store.get("user-1", "c-1")

        assert fetched.card_id == "c-1"
        assert fetched.owner_id == "user-1"
        assert fetched.name == "Pikachu"
        assert fetched.created_at == created.created_at
        assert fetched.deleted_at is None
        assert fetched.authenticity_score is None

    @pytest.mark.asyncio
    async def test_generates_card_id(self, card_store):
        created = await card_store.create("user-1", _payload())
        assert created.card_id

    @pytest.mark.asyncio
    async def test_duplicate_card_id_conflicts(self, card_store):
        await card_store.create("user-1", _payload(), card_id="c-1")
        with pytest.raises(ConflictError):
            await card_store.create("user-1", _payload("Eevee"), card_id="c-1")

    @pytest.mark.asyncio
    async def test_duplicate_card_id_conflicts_across_owners(self, card_store):
        """card_id is globally unique, not just per owner."""
        await card_store.create("user-1", _payload(), card_id="c-1")
        with pytest.raises(ConflictError):
            await card_store.create("user-2", _payload(), card_id="c-1")

    @pytest.mark.asyncio
    async def test_concurrent_creates_exactly_one_wins(self, card_store):
        outcomes = await asyncio.gather(
            card_store.create("user-1", _payload("A"), card_id="c-1"),
            card_store.create("user-1", _payload("B"), card_id="c-1"),
            return_exceptions=True,
        )
        successes = [o for o in outcomes if not isinstance(o, BaseException)]
        conflicts = [o for o in outcomes if isinstance(o, ConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 1

    @pytest.mark.asyncio
    async def test_empty_owner_rejected(self, card_store):
        with pytest.raises(ValidationError):
            await card_store.create("", _payload())


class TestOwnership:
    @pytest.mark.asyncio
    async def test_other_owner_forbidden(self, card_store, card):
        with pytest.raises(ForbiddenError):
            await card_store.get("user-2", card.card_id)

    @pytest.mark.asyncio
    async def test_unknown_card_not_found(self, card_store):
        with pytest.raises(NotFoundError):
            await card_store.get("user-1", "missing")

    @pytest.mark.asyncio
    async def test_soft_deleted_card_of_other_owner_is_forbidden(self, card_store, card):
        """Ownership is checked before deletion state."""
        await card_store.delete("user-1", card.card_id)
        with pytest.raises(ForbiddenError):
            await card_store.get("user-2", card.card_id)

    @pytest.mark.asyncio
    async def test_update_by_other_owner_forbidden(self, card_store, card):
        with pytest.raises(ForbiddenError):
            await card_store.update("user-2", card.card_id, CardUpdate(name="Stolen"))

    @pytest.mark.asyncio
    async def test_delete_by_other_owner_forbidden(self, card_store, card):
        with pytest.raises(ForbiddenError):
            await card_store.delete("user-2", card.card_id)
        assert (await card_store.get("user-1", card.card_id)).deleted_at is None


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------


class TestList:
    @pytest.mark.asyncio
    async def test_newest_first_with_cursor(self, card_store):
        """Pages walk the owner's cards newest first without gaps or repeats."""
        for i in range(5):
            await card_store.create("user-1", _payload(f"card{i}"), card_id=f"c-{i}")
        await card_store.create("user-2", _payload("other"), card_id="other-1")

        first = await card_store.list("user-1", limit=2)
        second = await card_store.list("user-1", cursor=first.next_cursor, limit=2)
        third = await card_store.list("user-1", cursor=second.next_cursor, limit=2)

        ids = [c.card_id for page in (first, second, third) for c in page.items]
        assert ids == ["c-4", "c-3", "c-2", "c-1", "c-0"]
        assert first.next_cursor is not None
        assert third.next_cursor is None

    @pytest.mark.asyncio
    async def test_excludes_soft_deleted(self, card_store):
        await card_store.create("user-1", _payload(), card_id="c-1")
        await card_store.create("user-1", _payload(), card_id="c-2")
        await card_store.delete("user-1", "c-1")

        page = await card_store.list("user-1")
        assert [c.card_id for c in page.items] == ["c-2"]

    @pytest.mark.asyncio
    async def test_exact_page_has_no_cursor(self, card_store):
        for i in range(2):
            await card_store.create("user-1", _payload(), card_id=f"c-{i}")
        page = await card_store.list("user-1", limit=2)
        assert len(page.items) == 2
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_invalid_limit(self, card_store):
        with pytest.raises(ValidationError):
            await card_store.list("user-1", limit=0)

    @pytest.mark.asyncio
    async def test_malformed_cursor(self, card_store):
        with pytest.raises(ValidationError):
            await card_store.list("user-1", cursor="not-a-cursor!!")

    def test_cursor_roundtrip(self):
        created_at, card_id = decode_cursor(encode_cursor(NOW, "c-9"))
        assert created_at == NOW
        assert card_id == "c-9"


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------


class TestUpdate:
    @pytest.mark.asyncio
    async def test_only_supplied_fields_written(self, card_store, card):
        updated = await card_store.update("user-1", card.card_id, CardUpdate(condition_estimate="Lightly Played"))

        assert updated.condition_estimate == "Lightly Played"
        assert updated.name == "Charizard"
        assert updated.updated_at > card.updated_at

    @pytest.mark.asyncio
    async def test_rejects_non_editable_fields(self, card_store, card):
        with pytest.raises(ValidationError):
            await card_store.update("user-1", card.card_id, {"value_median": Decimal("1")})

    @pytest.mark.asyncio
    async def test_update_deleted_card_not_found(self, card_store, card):
        await card_store.delete("user-1", card.card_id)
        with pytest.raises(NotFoundError):
            await card_store.update("user-1", card.card_id, {"name": "Back again"})


class TestDelete:
    @pytest.mark.asyncio
    async def test_soft_delete_hides_card(self, card_store, card):
        await card_store.delete("user-1", card.card_id)
        with pytest.raises(NotFoundError):
            await card_store.get("user-1", card.card_id)

    @pytest.mark.asyncio
    async def test_soft_delete_twice_not_found(self, card_store, card):
        await card_store.delete("user-1", card.card_id)
        with pytest.raises(NotFoundError):
            await card_store.delete("user-1", card.card_id)

    @pytest.mark.asyncio
    async def test_hard_delete_purges_soft_deleted(self, card_store, card):
        """A hard delete removes the row, freeing the card_id for reuse."""
        await card_store.delete("user-1", card.card_id)
        await card_store.delete("user-1", card.card_id, hard=True)

        recreated = await card_store.create("user-1", _payload(), card_id=card.card_id)
        assert recreated.deleted_at is None


# ---------------------------------------------------------------------------
# Workflow writes
# ---------------------------------------------------------------------------


class TestApplyWorkflowResult:
    FIELDS = {
        "value_low": Decimal("120.00"),
        "value_median": Decimal("150.00"),
        "value_high": Decimal("180.00"),
        "comps_count": 25,
        "sources": ["ebay", "justtcg"],
    }

    @pytest.mark.asyncio
    async def test_applies_fields(self, card_store, card):
        applied = await card_store.apply_workflow_result("user-1", card.card_id, self.FIELDS, "req-1")
        stored = await card_store.get("user-1", card.card_id)

        assert applied is True
        assert stored.value_median == Decimal("150.00")
        assert stored.comps_count == 25
        assert stored.sources == ["ebay", "justtcg"]

    @pytest.mark.asyncio
    async def test_same_request_is_a_no_op(self, card_store, card):
        """Replaying a request id leaves the card as the first write left it."""
        await card_store.apply_workflow_result("user-1", card.card_id, self.FIELDS, "req-1")
        first = await card_store.get("user-1", card.card_id)

        replay = await card_store.apply_workflow_result(
            "user-1", card.card_id, {**self.FIELDS, "comps_count": 99}, "req-1"
        )
        second = await card_store.get("user-1", card.card_id)

        assert replay is False
        assert second == first

    @pytest.mark.asyncio
    async def test_new_request_overwrites(self, card_store, card):
        await card_store.apply_workflow_result("user-1", card.card_id, self.FIELDS, "req-1")
        applied = await card_store.apply_workflow_result("user-1", card.card_id, {"comps_count": 3}, "req-2")

        assert applied is True
        assert (await card_store.get("user-1", card.card_id)).comps_count == 3

    @pytest.mark.asyncio
    async def test_replay_after_another_request_is_a_no_op(self, card_store, card):
        """A redelivered request does not overwrite a newer request's result."""
        first = await card_store.apply_workflow_result(
            "user-1", card.card_id, {"value_median": Decimal("2.00")}, "req-a"
        )
        second = await card_store.apply_workflow_result(
            "user-1", card.card_id, {"value_median": Decimal("3.00")}, "req-b"
        )
        replay = await card_store.apply_workflow_result(
            "user-1", card.card_id, {"value_median": Decimal("2.00")}, "req-a"
        )
        stored = await card_store.get("user-1", card.card_id)

        assert (first, second, replay) == (True, True, False)
        assert stored.value_median == Decimal("3.00")

    @pytest.mark.asyncio
    async def test_partial_write_can_complete_once(self, card_store, card):
        partial = await card_store.apply_workflow_result(
            "user-1", card.card_id, {"comps_count": 3}, "req-1", complete=False
        )
        completed = await card_store.apply_workflow_result(
            "user-1", card.card_id, self.FIELDS, "req-1"
        )
        again = await card_store.apply_workflow_result(
            "user-1", card.card_id, {**self.FIELDS, "comps_count": 99}, "req-1"
        )

        assert (partial, completed, again) == (True, True, False)
        assert (await card_store.get("user-1", card.card_id)).comps_count == 25

    @pytest.mark.asyncio
    async def test_partial_write_never_follows_same_request(self, card_store, card):
        await card_store.apply_workflow_result("user-1", card.card_id, self.FIELDS, "req-1")
        after_complete = await card_store.apply_workflow_result(
            "user-1", card.card_id, {"comps_count": 1}, "req-1", complete=False
        )
        await card_store.apply_workflow_result(
            "user-1", card.card_id, {"comps_count": 2}, "req-2", complete=False
        )
        repeated_partial = await card_store.apply_workflow_result(
            "user-1", card.card_id, {"comps_count": 5}, "req-2", complete=False
        )

        assert after_complete is False
        assert repeated_partial is False
        assert (await card_store.get("user-1", card.card_id)).comps_count == 2

    @pytest.mark.asyncio
    async def test_rejects_user_fields(self, card_store, card):
        with pytest.raises(ValidationError):
            await card_store.apply_workflow_result("user-1", card.card_id, {"name": "x"}, "req-1")

    @pytest.mark.asyncio
    async def test_deleted_card_not_written(self, card_store, card):
        await card_store.delete("user-1", card.card_id)
        with pytest.raises(NotFoundError):
            await card_store.apply_workflow_result("user-1", card.card_id, self.FIELDS, "req-1")
