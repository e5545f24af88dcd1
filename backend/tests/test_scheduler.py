import logging
import threading
import time

import pytest

from pingtrack.services.ping.dispatcher import Dispatcher
from pingtrack.services.ping.errors import UnsupportedEditionError
from pingtrack.services.ping.probes import ProbeSuccess
from pingtrack.services.ping.registry import load_roster
from pingtrack.services.ping.scheduler import UPDATE_EVENT, PingScheduler
from pingtrack.services.ping.settings import PingSettings
from pingtrack.services.ping.time_tracker import TimeTracker

from fakes import (
    FakeProbe, FakeResolver, HangingProbe, RecordingBroadcaster, RecordingStore, probes_by_edition, wait_for,
)


def _scheduler(roster, probes, settings=None, store=None, broadcaster=None, clock=None):
    settings = settings or PingSettings(log_to_database=True)
    dispatcher = Dispatcher(settings, resolver=FakeResolver(), probe_selector=probes_by_edition(probes))
    tracker = TimeTracker(settings.history_sample_interval_ms, settings.log_to_database,
                          clock=clock or (lambda: 1_700_000_000_500))
    return PingScheduler(
        roster, settings,
        broadcaster=broadcaster or RecordingBroadcaster(),
        store=store,
        dispatcher=dispatcher,
        time_tracker=tracker,
    )


def _wait_published(scheduler, broadcaster, count=1):
    assert wait_for(lambda: len(broadcaster.published) >= count)
    assert scheduler.tasks.drain(2.0)


def test_scenario_mixed_success_cap_and_timeout(caplog):
    roster = load_roster([
        {'name': 'S1', 'ip': 's1.example.net', 'type': 'PC'},
        {'name': 'S2', 'ip': 's2.example.net', 'type': 'PC'},
        {'name': 'S3', 'ip': 's3.example.net', 'type': 'PE'},
    ])
    java = FakeProbe({
        's1.example.net': ProbeSuccess(10, protocol_version=47),
        's2.example.net': ProbeSuccess(300000, protocol_version=47),
    })
    bedrock = FakeProbe({'s3.example.net': TimeoutError('timed out')})
    broadcaster = RecordingBroadcaster()
    scheduler = _scheduler(roster, {'PC': java, 'PE': bedrock}, broadcaster=broadcaster)

    with caplog.at_level(logging.WARNING):
        assert scheduler.trigger_cycle()
        _wait_published(scheduler, broadcaster)

    event, message = broadcaster.published[0]
    assert event == UPDATE_EVENT
    updates = message['updates']
    assert updates['0']['online'] == 10
    assert updates['1']['online'] == 250000
    assert updates['2'] == {'failed': True}
    assert 'online' not in updates['2']
    assert any('s2.example.net' in r.getMessage() and '300000' in r.getMessage() for r in caplog.records)
    assert message['timestamp'] == 1_700_000_000


def test_scenario_valid_favicon_is_kept():
    favicon = 'data:image/png;base64,iVBORw0KGgo='
    roster = load_roster([{'name': 'S1', 'ip': 's1.example.net', 'type': 'PC'}])
    broadcaster = RecordingBroadcaster()
    scheduler = _scheduler(roster, {'PC': FakeProbe({'s1.example.net': ProbeSuccess(3, favicon=favicon)})},
                           broadcaster=broadcaster)
    scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster)
    assert broadcaster.published[0][1]['updates']['0']['favicon'] == favicon


def test_scenario_non_data_uri_favicon_is_dropped():
    roster = load_roster([{'name': 'S1', 'ip': 's1.example.net', 'type': 'PC'}])
    broadcaster = RecordingBroadcaster()
    scheduler = _scheduler(roster, {'PC': FakeProbe({'s1.example.net': ProbeSuccess(3, favicon='http://evil')})},
                           broadcaster=broadcaster)
    scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster)
    assert 'favicon' not in broadcaster.published[0][1]['updates']['0']


def test_scenario_overlapping_trigger_is_dropped(caplog):
    roster = load_roster([{'name': f'S{i}', 'ip': f's{i}.example.net', 'type': 'PC'} for i in range(5)])
    gate = threading.Event()
    probe = FakeProbe(gate=gate)
    broadcaster = RecordingBroadcaster()
    scheduler = _scheduler(roster, {'PC': probe}, broadcaster=broadcaster)

    assert scheduler.trigger_cycle()
    time.sleep(0.01)
    with caplog.at_level(logging.WARNING):
        assert scheduler.trigger_cycle() is False
    assert scheduler.is_running
    assert scheduler.generation == 1
    assert any('cycle-overrun' in r.getMessage() for r in caplog.records)

    gate.set()
    _wait_published(scheduler, broadcaster)
    assert wait_for(lambda: not scheduler.is_running)
    assert len(broadcaster.published) == 1
    assert len(broadcaster.published[0][1]['updates']) == 5
    assert len(probe.calls) == 5


def test_next_cycle_is_accepted_after_completion():
    roster = load_roster([{'name': 'S1', 'ip': 's1.example.net', 'type': 'PC'}])
    broadcaster = RecordingBroadcaster()
    scheduler = _scheduler(roster, {'PC': FakeProbe()}, broadcaster=broadcaster)
    scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster)
    assert wait_for(lambda: not scheduler.is_running)
    assert scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster, count=2)
    assert scheduler.generation == 2
    assert scheduler.last_batch.generation == 2


def test_samples_persisted_per_server_with_none_for_failures():
    roster = load_roster([
        {'name': 'S1', 'ip': 's1.example.net', 'type': 'PC'},
        {'name': 'S2', 'ip': 's2.example.net', 'type': 'PC'},
    ])
    store = RecordingStore()
    broadcaster = RecordingBroadcaster()
    probe = FakeProbe({'s1.example.net': ProbeSuccess(12), 's2.example.net': OSError('unreachable')})
    scheduler = _scheduler(roster, {'PC': probe}, store=store, broadcaster=broadcaster)
    scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster)
    assert sorted(store.samples) == [
        ('s1.example.net', 1_700_000_000_500, 12),
        ('s2.example.net', 1_700_000_000_500, None),
    ]


def test_persistence_disabled_writes_nothing():
    roster = load_roster([{'name': 'S1', 'ip': 's1.example.net', 'type': 'PC'}])
    store = RecordingStore()
    broadcaster = RecordingBroadcaster()
    scheduler = _scheduler(roster, {'PC': FakeProbe()}, settings=PingSettings(log_to_database=False),
                           store=store, broadcaster=broadcaster)
    scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster)
    assert store.samples == []
    assert broadcaster.published[0][1]['updateHistoryGraph'] is False


def test_failing_store_is_logged_and_broadcast_still_happens(caplog):
    class BrokenStore:
        def insert_sample(self, ip, timestamp, player_count):
            raise RuntimeError('disk full')

    roster = load_roster([{'name': 'S1', 'ip': 's1.example.net', 'type': 'PC'}])
    broadcaster = RecordingBroadcaster()
    scheduler = _scheduler(roster, {'PC': FakeProbe()}, store=BrokenStore(), broadcaster=broadcaster)
    scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster)
    assert any('task-failed' in r.getMessage() and 'disk full' in r.getMessage() for r in caplog.records)


def test_hung_probe_is_failed_at_cycle_deadline_and_late_result_discarded(caplog):
    roster = load_roster([
        {'name': 'fast', 'ip': 'fast.example.net', 'type': 'PC'},
        {'name': 'hung', 'ip': 'hung.example.net', 'type': 'PE'},
    ])
    hanging = HangingProbe()
    broadcaster = RecordingBroadcaster()
    settings = PingSettings(connect_timeout_ms=10, cycle_deadline_ms=100)
    scheduler = _scheduler(roster, {'PC': FakeProbe(), 'PE': hanging}, settings=settings, broadcaster=broadcaster)

    scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster)
    updates = broadcaster.published[0][1]['updates']
    assert updates['0'] == {'online': 1}
    assert updates['1'] == {'failed': True}
    assert wait_for(lambda: not scheduler.is_running)

    # Next cycle starts while the old probe is still stuck
    hanging.release.clear()
    assert scheduler.trigger_cycle()
    hanging.release.set()
    _wait_published(scheduler, broadcaster, count=2)
    assert wait_for(lambda: any('stale-outcome' in r.getMessage() for r in caplog.records))
    assert len(broadcaster.published) == 2


def test_unsupported_edition_raises_without_starting_a_cycle():
    roster = load_roster([{'name': 'bad', 'ip': 'bad.example.net', 'type': 'N64'}])
    scheduler = _scheduler(roster, {'PC': FakeProbe()})
    with pytest.raises(UnsupportedEditionError):
        scheduler.trigger_cycle()
    assert not scheduler.is_running
    assert scheduler.generation == 0


def test_empty_roster_emits_empty_batch():
    broadcaster = RecordingBroadcaster()
    scheduler = _scheduler([], {}, broadcaster=broadcaster)
    assert scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster)
    assert broadcaster.published[0][1]['updates'] == {}
    assert not scheduler.is_running


def test_start_runs_immediately_then_on_interval():
    roster = load_roster([{'name': 'S1', 'ip': 's1.example.net', 'type': 'PC'}])
    broadcaster = RecordingBroadcaster()
    scheduler = _scheduler(roster, {'PC': FakeProbe()}, settings=PingSettings(interval_ms=50),
                           broadcaster=broadcaster)
    scheduler.start()
    try:
        assert scheduler.generation >= 1
        assert wait_for(lambda: len(broadcaster.published) >= 3, timeout=3.0)
    finally:
        assert scheduler.stop(2.0)
    time.sleep(0.1)
    generations = scheduler.generation
    time.sleep(0.2)
    assert scheduler.generation == generations


def test_history_sample_flag_follows_interval():
    now = [0]
    tracker = TimeTracker(history_interval_ms=1000, log_to_database=True, clock=lambda: now[0])
    assert tracker.new_cycle_point() == (0, True)
    now[0] = 500
    assert tracker.new_cycle_point() == (500, False)
    now[0] = 1000
    assert tracker.new_cycle_point() == (1000, True)
    assert TimeTracker(1000, log_to_database=False, clock=lambda: 0).new_cycle_point() == (0, False)


def test_task_that_cannot_start_fails_its_server_and_cycle_completes():
    calls = []
    lock = threading.Lock()

    def flaky_spawn(fn, *args):
        with lock:
            calls.append(fn)
            n = len(calls)
        if n == 2:
            raise RuntimeError('no free workers')
        t = threading.Thread(target=fn, args=args, daemon=True)
        t.start()
        return t

    roster = load_roster([
        {'name': 'S1', 'ip': 's1.example.net', 'type': 'PC'},
        {'name': 'S2', 'ip': 's2.example.net', 'type': 'PC'},
        {'name': 'S3', 'ip': 's3.example.net', 'type': 'PC'},
    ])
    settings = PingSettings(connect_timeout_ms=10, cycle_deadline_ms=100)
    dispatcher = Dispatcher(settings, resolver=FakeResolver(), spawn=flaky_spawn,
                            probe_selector=probes_by_edition({'PC': FakeProbe()}))
    broadcaster = RecordingBroadcaster()
    scheduler = PingScheduler(roster, settings, broadcaster=broadcaster, dispatcher=dispatcher,
                              spawn=flaky_spawn)

    assert scheduler.trigger_cycle()
    _wait_published(scheduler, broadcaster)
    assert wait_for(lambda: not scheduler.is_running)

    assert len(broadcaster.published) == 1
    updates = broadcaster.published[0][1]['updates']
    assert len(updates) == 3
    assert [sid for sid, u in updates.items() if u.get('failed')] == ['0']
    assert scheduler.trigger_cycle()


def test_start_can_be_retried_after_unsupported_edition():
    roster = load_roster([{'name': 'bad', 'ip': 'bad.example.net', 'type': 'N64'}])
    scheduler = _scheduler(roster, {'PC': FakeProbe()})
    for _ in range(2):
        with pytest.raises(UnsupportedEditionError):
            scheduler.start()
        assert not scheduler.is_running
    assert scheduler.generation == 0
