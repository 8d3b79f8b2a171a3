import threading

from dental_chart.models.assessment import AssessmentDomain
from dental_chart.services.codec.dentition import DentitionState
from dental_chart.services.drafts import DraftAutosaver, DraftCache, DraftKey

KEY = DraftKey("patient-1", AssessmentDomain.dentition)


def test_draft_survives_until_cleared(drafts):
    assert not drafts.has_draft(KEY)
    assert drafts.load_draft(KEY) is None

    state = DentitionState()
    state.teeth["24"] = "fully-missing"
    drafts.save_draft(KEY, state)

    assert drafts.has_draft(KEY)
    assert drafts.load_draft(KEY) == state

    drafts.clear_draft(KEY)
    drafts.clear_draft(KEY)
    assert not drafts.has_draft(KEY)


def test_saved_draft_is_a_copy(drafts):
    state = DentitionState()
    drafts.save_draft(KEY, state)
    state.teeth["11"] = "roots-only"
    state.primary_teeth.append("12")

    loaded = drafts.load_draft(KEY)
    assert loaded.teeth["11"] == "present"
    assert loaded.primary_teeth == []


def test_loaded_draft_is_a_copy(drafts):
    drafts.save_draft(KEY, {"teeth": {"11": "present"}, "notes": ["a"]})
    loaded = drafts.load_draft(KEY)
    loaded["teeth"]["11"] = "fully-missing"
    loaded["notes"].append("b")
    assert drafts.load_draft(KEY) == {"teeth": {"11": "present"}, "notes": ["a"]}


def test_save_overwrites_and_records_time(drafts, clock):
    drafts.save_draft(KEY, {"v": 1})
    clock.advance(250)
    drafts.save_draft(KEY, {"v": 2})
    entry = drafts.entry(KEY)
    assert entry.state == {"v": 2}
    assert entry.saved_at_ms == clock.now_ms()


def test_keys_are_independent(drafts):
    other = DraftKey("patient-1", AssessmentDomain.hygiene)
    drafts.save_draft(KEY, {"a": 1})
    drafts.save_draft(other, {"b": 2})
    drafts.save_draft(DraftKey("patient-2", AssessmentDomain.dentition), {"c": 3})
    drafts.clear_draft(KEY)
    assert drafts.load_draft(other) == {"b": 2}
    assert drafts.draft_keys("patient-1") == [other]


def test_draft_keys_follow_domain_order(drafts):
    implant = DraftKey("patient-1", AssessmentDomain.implant)
    hygiene = DraftKey("patient-1", AssessmentDomain.hygiene)
    drafts.save_draft(implant, {})
    drafts.save_draft(hygiene, {})
    drafts.save_draft(KEY, {})
    assert drafts.draft_keys("patient-1") == [KEY, hygiene, implant]


def test_clear_all(drafts):
    drafts.save_draft(KEY, {})
    drafts.save_draft(DraftKey("patient-2", AssessmentDomain.denture), {})
    drafts.clear_all()
    assert drafts.draft_keys("patient-1") == []
    assert drafts.draft_keys("patient-2") == []


def test_autosave_scheduled_before_clear_all_is_dropped(drafts, autosaver, timers):
    autosaver.schedule(KEY, {"edit": 1})
    drafts.clear_all()
    timers.timers[0].fire()
    assert not drafts.has_draft(KEY)
    assert not autosaver.pending(KEY)


def test_autosave_scheduled_after_clear_all_writes(drafts, autosaver, timers):
    drafts.clear_all()
    autosaver.schedule(KEY, {"edit": 1})
    timers.timers[0].fire()
    assert drafts.load_draft(KEY) == {"edit": 1}


def test_stale_generation_write_is_refused(drafts):
    generation = drafts.generation
    drafts.clear_all()
    assert drafts.save_draft(KEY, {"edit": 1}, generation=generation) is False
    assert not drafts.has_draft(KEY)
    assert drafts.save_draft(KEY, {"edit": 2}, generation=drafts.generation) is True


def test_one_lock_per_key_reused_after_clear(drafts):
    lock = drafts.lock_for(KEY)
    drafts.save_draft(KEY, {})
    drafts.clear_draft(KEY)
    drafts.clear_all()
    assert drafts.lock_for(KEY) is lock
    assert drafts.lock_for(DraftKey("patient-2", AssessmentDomain.dentition)) is not lock


def test_autosave_replaces_pending_timer(drafts, autosaver, timers):
    autosaver.schedule(KEY, {"edit": 1})
    autosaver.schedule(KEY, {"edit": 2})
    first, second = timers.timers
    assert first.cancelled
    assert second.started and second.interval == 0.5
    assert not drafts.has_draft(KEY)

    second.fire()
    assert drafts.load_draft(KEY) == {"edit": 2}
    assert not autosaver.pending(KEY)


def test_superseded_timer_does_not_write(drafts, autosaver, timers):
    autosaver.schedule(KEY, {"edit": 1})
    autosaver.schedule(KEY, {"edit": 2})
    # Simulate the first timer having already been dispatched before cancel.
    timers.timers[0].cancelled = False
    timers.timers[0].fire()
    assert not drafts.has_draft(KEY)


def test_cancel_prevents_late_write(drafts, autosaver, timers):
    autosaver.schedule(KEY, {"edit": 1})
    autosaver.cancel(KEY)
    timers.timers[0].cancelled = False
    timers.timers[0].fire()
    assert not drafts.has_draft(KEY)


def test_flush_writes_immediately(drafts, autosaver, timers):
    assert autosaver.flush(KEY) is False
    state = {"edit": 3}
    autosaver.schedule(KEY, state)
    state["edit"] = 4
    assert autosaver.flush(KEY) is True
    assert timers.timers[0].cancelled
    assert drafts.load_draft(KEY) == {"edit": 3}


def test_cancel_all(drafts, autosaver, timers):
    autosaver.schedule(KEY, {})
    autosaver.schedule(DraftKey("patient-2", AssessmentDomain.hygiene), {})
    autosaver.cancel_all()
    assert all(timer.cancelled for timer in timers.timers)


def test_real_timer_writes_after_delay(clock):
    cache = DraftCache(clock)
    saver = DraftAutosaver(cache, delay_seconds=0.01)
    written = threading.Event()
    original = cache.save_draft

    def _save(key, state, **kwargs):
        original(key, state, **kwargs)
        written.set()

    cache.save_draft = _save
    saver.schedule(KEY, {"edit": 1})
    assert written.wait(timeout=2)
    assert cache.load_draft(KEY) == {"edit": 1}
