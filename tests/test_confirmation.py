"""Tests for the enquiry state machine: confirm, reject, cancel, complete, cascade."""

from datetime import time

import pytest
from sqlalchemy.exc import OperationalError

from artistry.core.errors import (
    InvalidTransition,
    NotFound,
    SlotAlreadyReserved,
    SlotInUse,
    StoreUnavailable,
)
from artistry.models.enquiry import Enquiry, EnquiryStatus
from artistry.models.slot import TimeSlot
from artistry.services import confirmation

PENDING = EnquiryStatus.PENDING
CONFIRMED = EnquiryStatus.CONFIRMED
CANCELLED = EnquiryStatus.CANCELLED
COMPLETED = EnquiryStatus.COMPLETED


def status_of(db, enquiry) -> EnquiryStatus:
    return confirmation.get_enquiry(db, enquiry.id).status


def slot_open(db, slot) -> bool:
    return confirmation.get_slot(db, slot.id).is_available


def confirmed_count(db, slot) -> int:
    return (
        db.query(Enquiry)
        .filter(Enquiry.time_slot_id == slot.id, Enquiry.status == CONFIRMED)
        .count()
    )


class TestTransitionTable:
    def test_pending_can_be_confirmed_or_cancelled(self):
        assert confirmation.can_transition(PENDING, CONFIRMED)
        assert confirmation.can_transition(PENDING, CANCELLED)
        assert not confirmation.can_transition(PENDING, COMPLETED)

    def test_confirmed_can_be_cancelled_or_completed(self):
        assert confirmation.can_transition(CONFIRMED, CANCELLED)
        assert confirmation.can_transition(CONFIRMED, COMPLETED)
        assert not confirmation.can_transition(CONFIRMED, PENDING)

    @pytest.mark.parametrize("terminal", [CANCELLED, COMPLETED])
    def test_terminal_states_have_no_exit(self, terminal):
        assert all(not confirmation.can_transition(terminal, s) for s in EnquiryStatus)


class TestConfirm:
    def test_confirm_reserves_slot_and_cancels_rivals(self, db, make_slot, make_enquiry):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        b = make_enquiry(slot, "Bea")
        c = make_enquiry(slot, "Cleo")

        res = confirmation.confirm(db, a.id)

        assert res.enquiry.id == a.id
        assert res.enquiry.status == CONFIRMED
        assert res.auto_cancelled == 2
        assert status_of(db, b) == CANCELLED
        assert status_of(db, c) == CANCELLED
        assert slot_open(db, slot) is False

    def test_cascade_leaves_other_slots_alone(self, db, make_slot, make_enquiry):
        s1 = make_slot()
        s2 = make_slot(start=time(11, 0), end=time(12, 30))
        a = make_enquiry(s1, "Ada")
        other = make_enquiry(s2, "Olu")

        confirmation.confirm(db, a.id)

        assert status_of(db, other) == PENDING
        assert slot_open(db, s2) is True

    def test_confirm_unknown_enquiry(self, db):
        with pytest.raises(NotFound):
            confirmation.confirm(db, 999)

    def test_confirm_without_slot(self, db, make_enquiry):
        e = make_enquiry(None)
        with pytest.raises(NotFound):
            confirmation.confirm(db, e.id)

    def test_confirm_on_withdrawn_slot(self, db, make_slot, make_enquiry):
        slot = make_slot(available=False)
        e = make_enquiry(slot)
        with pytest.raises(SlotAlreadyReserved):
            confirmation.confirm(db, e.id)
        assert status_of(db, e) == PENDING

    def test_confirm_cancelled_enquiry_is_invalid(self, db, make_slot, make_enquiry):
        slot = make_slot()
        e = make_enquiry(slot, status=CANCELLED)
        with pytest.raises(InvalidTransition):
            confirmation.confirm(db, e.id)
        assert slot_open(db, slot) is True

    def test_notifies_confirmed_and_auto_cancelled_clients(self, db, make_slot, make_enquiry, notifier):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        make_enquiry(slot, "Bea")

        confirmation.confirm(db, a.id, notify=notifier)

        assert notifier.recipients() == ["ada@example.com", "bea@example.com"]
        assert "confirmed" in notifier.subjects_for("ada@example.com")[0]

    def test_notification_failure_does_not_undo_confirmation(self, db, make_slot, make_enquiry, failing_notifier):
        slot = make_slot()
        a = make_enquiry(slot)
        res = confirmation.confirm(db, a.id, notify=failing_notifier)
        assert res.enquiry.status == CONFIRMED
        assert slot_open(db, slot) is False


class TestConfirmRaces:
    def test_lost_compare_and_set_raises_slot_already_reserved(self, db, make_slot, make_enquiry, monkeypatch):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        real_claim = confirmation._claim_slot

        def rival_wins_first(db_, slot_id):
            # another confirmation lands between our check and our write
            db_.query(TimeSlot).filter(TimeSlot.id == slot_id).update({"is_available": False})
            db_.commit()
            return real_claim(db_, slot_id)

        monkeypatch.setattr(confirmation, "_claim_slot", rival_wins_first)

        with pytest.raises(SlotAlreadyReserved):
            confirmation.confirm(db, a.id)
        assert status_of(db, a) == PENDING

    def test_claim_is_single_winner(self, db, make_slot):
        slot = make_slot()
        assert confirmation._claim_slot(db, slot.id) is True
        assert confirmation._claim_slot(db, slot.id) is False

    def test_enquiry_changed_after_claim_releases_slot(self, db, make_slot, make_enquiry, monkeypatch):
        slot = make_slot()
        a = make_enquiry(slot)
        monkeypatch.setattr(confirmation, "_move", lambda *args: False)

        with pytest.raises(InvalidTransition):
            confirmation.confirm(db, a.id)
        assert slot_open(db, slot) is True

    def test_store_failure_after_claim_releases_slot(self, db, make_slot, make_enquiry, monkeypatch):
        slot = make_slot()
        a = make_enquiry(slot)

        def down(*args):
            raise OperationalError("UPDATE enquiries", {}, Exception("connection lost"))

        monkeypatch.setattr(confirmation, "_move", down)

        with pytest.raises(StoreUnavailable):
            confirmation.confirm(db, a.id)
        assert slot_open(db, slot) is True
        assert status_of(db, a) == PENDING


class TestOtherTransitions:
    def test_reject_pending_keeps_slot_open(self, db, make_slot, make_enquiry):
        slot = make_slot()
        e = make_enquiry(slot)
        assert confirmation.reject(db, e.id).status == CANCELLED
        assert slot_open(db, slot) is True

    def test_reject_confirmed_is_invalid(self, db, make_slot, make_enquiry):
        slot = make_slot()
        e = make_enquiry(slot)
        confirmation.confirm(db, e.id)
        with pytest.raises(InvalidTransition):
            confirmation.reject(db, e.id)

    def test_cancel_confirmed_reopens_slot(self, db, make_slot, make_enquiry):
        slot = make_slot()
        e = make_enquiry(slot)
        confirmation.confirm(db, e.id)

        assert confirmation.cancel_confirmed(db, e.id).status == CANCELLED
        assert slot_open(db, slot) is True

    def test_cancel_pending_is_invalid(self, db, make_slot, make_enquiry):
        e = make_enquiry(make_slot())
        with pytest.raises(InvalidTransition):
            confirmation.cancel_confirmed(db, e.id)

    def test_complete_keeps_slot_consumed(self, db, make_slot, make_enquiry):
        slot = make_slot()
        e = make_enquiry(slot)
        confirmation.confirm(db, e.id)

        assert confirmation.complete(db, e.id).status == COMPLETED
        assert slot_open(db, slot) is False
        with pytest.raises(InvalidTransition):
            confirmation.cancel_confirmed(db, e.id)

    def test_complete_pending_is_invalid(self, db, make_slot, make_enquiry):
        e = make_enquiry(make_slot())
        with pytest.raises(InvalidTransition):
            confirmation.complete(db, e.id)

    def test_reopened_slot_can_be_confirmed_again(self, db, make_slot, make_enquiry):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        confirmation.confirm(db, a.id)
        confirmation.cancel_confirmed(db, a.id)

        late = make_enquiry(slot, "Dami")
        res = confirmation.confirm(db, late.id)
        assert res.enquiry.status == CONFIRMED
        assert slot_open(db, slot) is False


class TestCascadeRecovery:
    def test_cascade_heals_half_finished_confirmation(self, db, make_slot, make_enquiry):
        slot = make_slot(available=False)
        make_enquiry(slot, "Ada", status=CONFIRMED)
        b = make_enquiry(slot, "Bea")
        c = make_enquiry(slot, "Cleo")

        assert confirmation.cascade_cancel(db, slot.id) == 2
        assert status_of(db, b) == CANCELLED
        assert status_of(db, c) == CANCELLED

    def test_cascade_is_idempotent(self, db, make_slot, make_enquiry):
        slot = make_slot(available=False)
        a = make_enquiry(slot, "Ada", status=CONFIRMED)
        b = make_enquiry(slot, "Bea")

        confirmation.cascade_cancel(db, slot.id)
        first = [(e.id, e.status) for e in db.query(Enquiry).order_by(Enquiry.id).all()]
        assert confirmation.cascade_cancel(db, slot.id) == 0
        second = [(e.id, e.status) for e in db.query(Enquiry).order_by(Enquiry.id).all()]

        assert first == second == [(a.id, CONFIRMED), (b.id, CANCELLED)]
        assert slot_open(db, slot) is False

    def test_cascade_on_open_slot_is_noop(self, db, make_slot, make_enquiry):
        slot = make_slot()
        e = make_enquiry(slot)
        assert confirmation.cascade_cancel(db, slot.id) == 0
        assert status_of(db, e) == PENDING

    def test_cascade_unknown_slot(self, db):
        with pytest.raises(NotFound):
            confirmation.cascade_cancel(db, 42)


class TestSlotRelease:
    def test_release_refused_while_confirmed(self, db, make_slot, make_enquiry):
        slot = make_slot()
        e = make_enquiry(slot)
        confirmation.confirm(db, e.id)
        with pytest.raises(SlotInUse):
            confirmation.release_slot_enquiries(db, slot.id)

    def test_release_cancels_pending_and_detaches(self, db, make_slot, make_enquiry):
        slot = make_slot()
        p = make_enquiry(slot, "Ada")
        old = make_enquiry(slot, "Bea", status=CANCELLED)

        assert confirmation.release_slot_enquiries(db, slot.id) == 1
        p = confirmation.get_enquiry(db, p.id)
        old = confirmation.get_enquiry(db, old.id)
        assert p.status == CANCELLED
        assert p.time_slot_id is None
        assert old.time_slot_id is None


class TestManualOverride:
    def test_reopen_refused_while_confirmed(self, db, make_slot, make_enquiry):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        confirmation.confirm(db, a.id)

        with pytest.raises(SlotInUse):
            confirmation.set_slot_availability(db, slot.id, True)
        assert slot_open(db, slot) is False

        late = make_enquiry(slot, "Late")
        with pytest.raises(SlotAlreadyReserved):
            confirmation.confirm(db, late.id)
        assert confirmed_count(db, slot) == 1

    def test_confirm_refused_when_flag_reopened_behind_holder(self, db, make_slot, make_enquiry):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        confirmation.confirm(db, a.id)
        # flag flipped without going through the service
        db.query(TimeSlot).filter(TimeSlot.id == slot.id).update({"is_available": True})
        db.commit()

        late = make_enquiry(slot, "Late")
        with pytest.raises(SlotAlreadyReserved):
            confirmation.confirm(db, late.id)
        assert confirmed_count(db, slot) == 1
        assert status_of(db, late) == PENDING

    def test_withdraw_held_slot_then_cancel_reopens(self, db, make_slot, make_enquiry):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        confirmation.confirm(db, a.id)

        assert confirmation.set_slot_availability(db, slot.id, False).is_available is False
        confirmation.cancel_confirmed(db, a.id)

        assert slot_open(db, slot) is True
        assert confirmed_count(db, slot) == 0
        late = make_enquiry(slot, "Late")
        assert confirmation.confirm(db, late.id).enquiry.status == CONFIRMED
        assert confirmed_count(db, slot) == 1

    def test_reopen_after_completion_allows_one_new_confirmation(self, db, make_slot, make_enquiry):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        confirmation.confirm(db, a.id)
        confirmation.complete(db, a.id)

        assert confirmation.set_slot_availability(db, slot.id, True).is_available is True
        b = make_enquiry(slot, "Bea")
        c = make_enquiry(slot, "Cleo")
        confirmation.confirm(db, b.id)

        assert status_of(db, c) == CANCELLED
        assert confirmed_count(db, slot) == 1
        with pytest.raises(SlotInUse):
            confirmation.set_slot_availability(db, slot.id, True)


class TestCascadeAccounting:
    def test_rival_rejected_concurrently_is_not_reported(self, db, make_slot, make_enquiry, notifier, monkeypatch):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        b = make_enquiry(slot, "Bea")
        c = make_enquiry(slot, "Cleo")
        real_move = confirmation._move

        def staff_rejects_bea_first(db_, enquiry_id, expected, target):
            if enquiry_id == b.id:
                db_.query(Enquiry).filter(Enquiry.id == b.id).update({"status": CANCELLED})
                db_.commit()
            return real_move(db_, enquiry_id, expected, target)

        monkeypatch.setattr(confirmation, "_move", staff_rejects_bea_first)

        res = confirmation.confirm(db, a.id, notify=notifier)

        assert res.auto_cancelled == 1
        assert status_of(db, b) == CANCELLED
        assert status_of(db, c) == CANCELLED
        assert notifier.recipients() == ["ada@example.com", "cleo@example.com"]


class TestExampleScenario:
    def test_three_way_contention(self, db, make_slot, make_enquiry):
        slot = make_slot()
        a = make_enquiry(slot, "Ada")
        b = make_enquiry(slot, "Bea")
        c = make_enquiry(slot, "Cleo")

        confirmation.confirm(db, a.id)
        assert [status_of(db, e) for e in (a, b, c)] == [CONFIRMED, CANCELLED, CANCELLED]
        assert slot_open(db, slot) is False

        with pytest.raises(SlotAlreadyReserved):
            confirmation.confirm(db, b.id)
        assert [status_of(db, e) for e in (a, b, c)] == [CONFIRMED, CANCELLED, CANCELLED]

        confirmation.cancel_confirmed(db, a.id)
        assert status_of(db, a) == CANCELLED
        assert slot_open(db, slot) is True

        with pytest.raises(InvalidTransition):
            confirmation.confirm(db, c.id)
        assert status_of(db, c) == CANCELLED
        assert slot_open(db, slot) is True

    def test_at_most_one_confirmed_and_availability_mirrors_it(self, db, make_slot, make_enquiry):
        slot = make_slot()
        rivals = [make_enquiry(slot, name) for name in ("Ada", "Bea", "Cleo", "Dami")]

        for e in rivals:
            try:
                confirmation.confirm(db, e.id)
            except (SlotAlreadyReserved, InvalidTransition):
                pass
            held = confirmed_count(db, slot)
            assert held <= 1
            assert slot_open(db, slot) is (held == 0)

        assert confirmed_count(db, slot) == 1
