from pos_service.client.guard import GuardConfig, SubmissionGuard


def make_guard(clock, **config):
    return SubmissionGuard(GuardConfig(**config), clock=clock)


def test_reserve_refuses_a_fingerprint_in_flight(clock):
    guard = make_guard(clock)
    assert guard.reserve("fp-1")
    assert not guard.reserve("fp-1")
    assert len(guard) == 1
    assert guard.stats()["duplicatesPrevented"] == 1


def test_release_allows_reserving_again(clock):
    guard = make_guard(clock)
    guard.reserve("fp-1")
    assert guard.release("fp-1")
    assert not guard.release("fp-1")
    assert guard.reserve("fp-1")


def test_metadata_is_kept(clock):
    guard = make_guard(clock)
    guard.reserve("fp-1", {"screen": "admin"})
    assert guard.get("fp-1").metadata == {"screen": "admin"}


def test_sweep_removes_expired_reservations(clock):
    guard = make_guard(clock)
    guard.reserve("fp-1")
    clock.advance(179)
    assert guard.sweep() == 0
    assert "fp-1" in guard
    clock.advance(1)
    assert guard.sweep() == 1
    assert "fp-1" not in guard
    assert len(guard) == 0


def test_expired_reservation_can_be_taken_before_the_sweep(clock):
    guard = make_guard(clock)
    guard.reserve("fp-1")
    clock.advance(181)
    assert guard.reserve("fp-1")


def test_sweep_is_bounded_per_batch(clock):
    guard = make_guard(clock, sweep_batch_size=2)
    for i in range(5):
        guard.reserve(f"fp-{i}")
    clock.advance(200)
    assert guard.sweep() == 2
    assert len(guard) == 3
    # oldest go first
    assert guard.get("fp-0") is None and guard.get("fp-1") is None
    assert guard.sweep() == 2
    assert guard.sweep() == 1
    assert guard.sweep() == 0


def test_overflow_evicts_oldest_first(clock):
    guard = make_guard(clock, max_entries=3)
    for fp in ("a", "b", "c"):
        assert guard.reserve(fp)
        clock.advance(1)
    assert guard.reserve("d")
    assert len(guard) == 3
    assert "a" not in guard
    assert all(fp in guard for fp in ("b", "c", "d"))
    assert guard.stats()["evicted"] == 1


def test_invalid_config_falls_back_to_defaults():
    config = GuardConfig(max_entries=0, expiration_seconds=5, sweep_interval_seconds=0.1, sweep_batch_size=-1).validated()
    assert config == GuardConfig()


def test_valid_config_is_kept():
    config = GuardConfig(max_entries=10, expiration_seconds=60, sweep_interval_seconds=5, sweep_batch_size=3)
    assert config.validated() == config
