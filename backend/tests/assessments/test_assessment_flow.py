import json

import pytest

from dental_chart.models.assessment import AssessmentDomain
from dental_chart.services.assessment_flow import AssessmentService
from dental_chart.services.codec.common import PayloadShape
from dental_chart.services.codec.dentition import DentitionState
from dental_chart.services.codec.hygiene import HygieneState
from dental_chart.services.drafts import DraftKey
from dental_chart.services.snapshot_store import SnapshotStore, SqlAlchemyDocumentStore, StorageError

KEY = DraftKey("p1", AssessmentDomain.dentition)


class BrokenStore:
    def append_snapshot(self, patient_id, domain, encoded_payload):
        raise StorageError("store offline")


@pytest.fixture()
def service(session, clock, drafts, autosaver):
    return AssessmentService(SnapshotStore(SqlAlchemyDocumentStore(session), clock), drafts, autosaver)


def _missing_24() -> DentitionState:
    state = DentitionState()
    state.teeth["24"] = "fully-missing"
    return state


def test_save_appends_and_clears_draft(service, drafts):
    drafts.save_draft(KEY, _missing_24())
    snapshot_id = service.save("p1", "dentition", _missing_24())

    assert not drafts.has_draft(KEY)
    latest = service.store.latest_snapshot("p1", "dentition")
    assert latest.id == snapshot_id
    assert json.loads(latest.encoded_payload) == {
        "v": 2,
        "default": "present",
        "exceptions": {"24": "fully-missing"},
    }


def test_failed_save_keeps_draft(drafts, autosaver):
    drafts.save_draft(KEY, _missing_24())
    service = AssessmentService(BrokenStore(), drafts, autosaver)
    with pytest.raises(StorageError):
        service.save("p1", "dentition", _missing_24())
    assert drafts.load_draft(KEY) == _missing_24()


def test_save_drops_pending_autosave(service, drafts, autosaver, timers):
    autosaver.schedule(KEY, _missing_24())
    service.save("p1", "dentition", _missing_24())
    timers.timers[0].cancelled = False
    timers.timers[0].fire()
    assert not drafts.has_draft(KEY)


def test_partial_state_is_completed_on_save(service):
    service.save("p1", "dentition", {"teeth": {"24": "fully-missing"}})
    payload = json.loads(service.store.latest_snapshot("p1", "dentition").encoded_payload)
    assert payload["exceptions"] == {"24": "fully-missing"}


def test_two_saves_are_two_history_entries(service, clock):
    first = service.save("p1", "dentition", DentitionState())
    clock.advance(60_000)
    second = service.save("p1", "dentition", _missing_24())

    history = service.history("p1", "dentition")
    assert [entry.snapshot_id for entry in history] == [second, first]
    assert history[0].summary == "31 present, 1 missing"
    assert history[1].summary == "32 present, 0 missing"
    assert service.latest_report("p1", "dentition").snapshot_id == second


def test_load_for_editing_prefers_draft(service, drafts):
    service.save("p1", "dentition", DentitionState())
    drafts.save_draft(KEY, _missing_24())
    editing = service.load_for_editing("p1", "dentition")
    assert editing.source == "draft"
    assert editing.state.teeth["24"] == "fully-missing"


def test_load_for_editing_falls_back_to_latest_snapshot(service):
    snapshot_id = service.save("p1", "dentition", _missing_24())
    editing = service.load_for_editing("p1", "dentition")
    assert editing.source == "snapshot"
    assert editing.snapshot_id == snapshot_id
    assert editing.state == _missing_24()


def test_load_for_editing_defaults(service):
    editing = service.load_for_editing("p1", "hygiene")
    assert editing.source == "default"
    assert editing.state == HygieneState()


def test_load_for_editing_ignores_unreadable_snapshot(service):
    service.store.append_snapshot("p1", "hygiene", "{not json")
    editing = service.load_for_editing("p1", "hygiene")
    assert editing.source == "default"


def test_corrupt_record_does_not_block_history(service, clock):
    service.save("p1", "hygiene", HygieneState())
    clock.advance(10)
    service.store.append_snapshot("p1", "hygiene", "{not json")
    history = service.history("p1", "hygiene")
    assert len(history) == 2
    assert history[0].degraded
    assert history[0].shape is PayloadShape.unknown
    assert history[0].details == ["Unable to parse details"]
    assert history[1].summary == "Calculus: none, Plaque: none"


def test_latest_report_none_without_snapshots(service):
    assert service.latest_report("p1", "implant") is None
