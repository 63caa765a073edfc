# Overview: Pytest coverage for the equipment registry and its state machine.

import pytest

from washrent.domain import EquipmentState
from washrent.errors import ConflictError, InvalidStateTransition, NotFound, ValidationError
from washrent.services import equipment_service, order_service


def assert_triple_consistent(equipment):
    """assigned_order_id iff rented, active_maintenance_id iff in_maintenance."""
    assert (equipment.assigned_order_id is not None) == (equipment.state == "rented")
    assert (equipment.active_maintenance_id is not None) == (equipment.state == "in_maintenance")


class TestRegistry:
    def test_register_starts_available_in_warehouse(self, db_session, actor):
        equipment = equipment_service.register_equipment("G-07", actor=actor, brand="LG")

        assert equipment.state == "available"
        assert equipment.location == "warehouse"
        assert equipment.created_by == actor
        assert_triple_consistent(equipment)

    def test_duplicate_code_conflicts(self, db_session, actor):
        equipment_service.register_equipment("G-07", actor=actor)
        with pytest.raises(ConflictError):
            equipment_service.register_equipment("G-07", actor=actor)

    def test_blank_code_rejected(self, db_session, actor):
        with pytest.raises(ValidationError):
            equipment_service.register_equipment("   ", actor=actor)

    def test_unknown_equipment(self, db_session):
        with pytest.raises(NotFound):
            equipment_service.get_equipment(12345)

    def test_list_by_state(self, db_session, make_equipment):
        make_equipment("A1")
        make_equipment("A2", state="out_of_service")

        assert [e.code for e in equipment_service.list_equipment("out_of_service")] == ["A2"]
        assert len(equipment_service.list_equipment()) == 2

    def test_list_rejects_unknown_state(self, db_session):
        with pytest.raises(ValidationError):
            equipment_service.list_equipment("broken")


class TestTransitions:
    @pytest.mark.parametrize("from_state,to_state,allowed", [
        ("available", "rented", True),
        ("rented", "available", True),
        ("available", "in_maintenance", True),
        ("in_maintenance", "available", True),
        ("available", "out_of_service", True),
        ("out_of_service", "available", True),
        ("rented", "retired", True),
        ("rented", "in_maintenance", False),
        ("in_maintenance", "rented", False),
        ("out_of_service", "rented", False),
        ("retired", "available", False),
        ("retired", "retired", False),
    ])
    def test_can_transition(self, from_state, to_state, allowed):
        assert equipment_service.can_transition(from_state, to_state) is allowed

    def test_out_of_service_round_trip(self, db_session, make_equipment, actor):
        equipment = make_equipment()

        equipment_service.mark_out_of_service(equipment.id, actor=actor, notes="door latch")
        assert equipment_service.get_equipment(equipment.id).state == "out_of_service"

        equipment_service.return_to_service(equipment.id, actor=actor)
        refreshed = equipment_service.get_equipment(equipment.id)
        assert refreshed.state == "available"
        assert refreshed.notes == "door latch"
        assert_triple_consistent(refreshed)

    def test_back_in_service_does_not_bypass_maintenance_close(self, db_session, make_equipment, actor):
        equipment = make_equipment(state="in_maintenance", active_maintenance_id=7)

        with pytest.raises(InvalidStateTransition):
            equipment_service.return_to_service(equipment.id, actor=actor)
        assert equipment_service.get_equipment(equipment.id).state == "in_maintenance"

    def test_rented_unit_cannot_go_out_of_service(self, db_session, make_equipment, actor):
        equipment = make_equipment(state="rented", assigned_order_id=3)
        with pytest.raises(InvalidStateTransition) as exc:
            equipment_service.mark_out_of_service(equipment.id, actor=actor)
        assert exc.value.current_state == "rented"

    def test_retired_is_terminal(self, db_session, make_equipment, actor):
        equipment = make_equipment()
        equipment_service.retire(equipment.id, actor=actor)

        with pytest.raises(InvalidStateTransition):
            equipment_service.retire(equipment.id, actor=actor)
        with pytest.raises(InvalidStateTransition):
            equipment_service.force_available(equipment_service.get_equipment(equipment.id), actor=actor)

    def test_version_increments_on_each_write(self, db_session, make_equipment, actor):
        equipment = make_equipment()
        before = equipment.version_id

        equipment_service.mark_out_of_service(equipment.id, actor=actor)
        assert equipment_service.get_equipment(equipment.id).version_id == before + 1


class TestSummary:
    def test_counts_and_orphans(self, db_session, make_equipment, make_order, actor):
        make_equipment("A1")
        rented = make_equipment("A2")
        make_equipment("A3", state="out_of_service")

        order = make_order()
        order_service.deliver_order(order.id, rented.id, actor=actor)

        orphan = make_equipment("A4", state="rented", assigned_order_id=9999)

        summary = equipment_service.state_summary()
        assert summary["total"] == 4
        assert summary["by_state"]["available"] == 1
        assert summary["by_state"]["rented"] == 2
        assert summary["by_state"]["out_of_service"] == 1
        assert summary["by_state"]["retired"] == 0
        assert summary["orphaned"] == 1
        assert orphan.state == EquipmentState.RENTED.value
