from trackservice.tracker import RETRY_DELAY_MS, Tracker, create_tracker


ENDPOINT = "http://localhost:8888/track"


def _tracker(env, min_events=3, interval=1000) -> Tracker:
    return Tracker(env, ENDPOINT, min_events_to_send=min_events, min_time_between_sends=interval)


def test_track_captures_page_context(env):
    tracker = _tracker(env)

    tracker.track("click", "nav", "home")

    (record,) = tracker.pending
    assert record.event == "click"
    assert record.tags == ("nav", "home")
    assert record.url == "https://example.com/home"
    assert record.title == "Home"
    assert record.ts == env.clock


def test_pending_count_matches_calls_before_flush(env):
    tracker = _tracker(env, min_events=5)

    for index in range(4):
        tracker.track("view", str(index))
        assert len(tracker.pending) == index + 1

    assert env.sends == []
    assert [record.tags for record in tracker.pending] == [("0",), ("1",), ("2",), ("3",)]


def test_size_threshold_flushes_one_batch_without_timer(env):
    tracker = _tracker(env, min_events=3)

    tracker.track("click", "nav", "home")
    tracker.track("click", "nav", "home")
    assert env.sends == []
    tracker.track("click", "nav", "home")

    assert len(env.sends) == 1
    assert len(env.sends[0].events) == 3
    assert env.sends[0].endpoint == ENDPOINT
    assert tracker.pending == ()
    assert tracker.sending
    assert not any(timer.fired for timer in env.timers)
    assert env.active_timers == []


def test_first_event_waits_for_timer_when_below_threshold(env):
    tracker = _tracker(env)

    tracker.track("pageview")

    assert env.sends == []
    assert len(env.active_timers) == 1
    # no previous send, so the interval has already elapsed
    assert env.active_timers[0].delay == 0

    env.advance(0)

    assert len(env.sends) == 1
    assert [record.event for record in env.sends[0].events] == ["pageview"]


def test_time_threshold_measured_from_last_send_start(env):
    tracker = _tracker(env, interval=1000)
    tracker.track("first")
    env.advance(0)
    first_send_at = tracker.last_send_time
    env.sends[0].done(True)

    env.advance(200)
    tracker.track("second")
    assert env.active_timers[0].delay == 800

    env.advance(799)
    assert len(env.sends) == 1

    env.advance(1)
    assert len(env.sends) == 2
    assert env.clock - first_send_at == 1000
    assert [record.event for record in env.sends[1].events] == ["second"]


def test_single_timer_for_several_events(env):
    tracker = _tracker(env, min_events=10)

    tracker.track("a")
    tracker.track("b")
    tracker.track("c")

    assert len(env.timers) == 1
    env.advance(0)
    assert [record.event for record in env.sends[0].events] == ["a", "b", "c"]


def test_no_second_send_while_one_is_in_flight(env):
    tracker = _tracker(env, min_events=2)
    tracker.track("a")
    tracker.track("b")
    assert len(env.sends) == 1

    for name in ("c", "d", "e"):
        tracker.track(name)
    env.advance(5000)

    assert len(env.sends) == 1
    assert [record.event for record in tracker.pending] == ["c", "d", "e"]

    env.sends[0].done(True)

    assert len(env.sends) == 2
    assert [record.event for record in env.sends[1].events] == ["c", "d", "e"]


def test_success_with_empty_buffer_schedules_nothing(env):
    tracker = _tracker(env, min_events=1)
    tracker.track("a")

    env.sends[0].done(True)

    assert not tracker.sending
    assert env.active_timers == []
    assert len(env.sends) == 1


def test_failed_batch_requeued_at_head_and_retried_after_delay(env):
    tracker = _tracker(env, min_events=2)
    tracker.track("a")
    tracker.track("b")
    tracker.track("c")

    env.sends[0].done(False)

    assert [record.event for record in tracker.pending] == ["a", "b", "c"]
    assert tracker.sending
    assert env.active_timers[-1].delay == RETRY_DELAY_MS

    env.advance(RETRY_DELAY_MS - 1)
    assert len(env.sends) == 1

    env.advance(1)
    assert len(env.sends) == 2
    assert [record.event for record in env.sends[1].events] == ["a", "b", "c"]


def test_retry_waits_even_when_threshold_reached_again(env):
    tracker = _tracker(env, min_events=1, interval=0)
    tracker.track("a")
    env.sends[0].done(False)

    for name in ("b", "c"):
        tracker.track(name)

    assert len(env.sends) == 1
    env.advance(RETRY_DELAY_MS)
    assert [record.event for record in env.sends[1].events] == ["a", "b", "c"]


def test_send_exception_counts_as_failure(env):
    env.send_error = ConnectionError("offline")
    tracker = _tracker(env, min_events=1)

    tracker.track("a")

    assert [record.event for record in tracker.pending] == ["a"]
    assert tracker.sending

    env.send_error = None
    env.advance(RETRY_DELAY_MS)

    assert len(env.sends) == 1
    assert [record.event for record in env.sends[0].events] == ["a"]


def test_buffer_keeps_growing_while_endpoint_fails(env):
    tracker = _tracker(env, min_events=1)
    tracker.track("a")

    for attempt in range(5):
        tracker.track(f"extra-{attempt}")
        env.sends[-1].done(False)
        env.advance(RETRY_DELAY_MS)

    assert len(env.sends) == 6
    assert len(env.sends[-1].events) == 6
    assert env.sends[-1].events[0].event == "a"


def test_teardown_flushes_remaining_events_once(env):
    tracker = _tracker(env)
    tracker.track("a")
    tracker.track("b")
    timer = env.active_timers[0]

    env.teardown()
    env.teardown()

    assert timer.cancelled
    assert len(env.best_effort) == 1
    assert [record.event for record in env.best_effort[0]] == ["a", "b"]
    assert env.sends == []
    assert tracker.pending == ()


def test_teardown_with_empty_buffer_sends_nothing(env):
    _tracker(env)

    env.teardown()

    assert env.best_effort == []


def test_teardown_during_in_flight_send_does_not_overlap(env):
    tracker = _tracker(env, min_events=1)
    tracker.track("a")
    tracker.track("b")

    env.teardown()

    assert env.best_effort == []
    assert len(env.sends) == 1


def test_create_tracker_uses_settings(env, settings):
    tracker = create_tracker(env, settings)

    assert tracker.endpoint == settings.tracker_endpoint
    assert tracker.min_events_to_send == settings.min_events_to_send
    assert tracker.min_time_between_sends == settings.min_time_between_sends
    assert env.teardown_listeners
