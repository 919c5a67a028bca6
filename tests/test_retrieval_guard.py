"""Tests for the brute-force Retrieval Guard."""

import threading

from codedrop.retrieval_guard import Allow, Deny, RetrievalGuard


def test_first_attempt_allowed(guard):
    decision = guard.check("1.2.3.4")
    assert decision == Allow(attempts_used=1, attempts_remaining=4)


def test_sixth_attempt_starts_cooldown(guard):
    for used in range(1, 6):
        assert guard.check("1.2.3.4") == Allow(used, 5 - used)

    decision = guard.check("1.2.3.4")
    assert isinstance(decision, Deny)
    assert decision.cooldown_remaining_seconds == 30


def test_cooldown_counts_down(guard, clock):
    for _ in range(6):
        guard.check("1.2.3.4")
    clock.advance(12.5)
    assert guard.check("1.2.3.4") == Deny(cooldown_remaining_seconds=18)


def test_attempts_during_cooldown_do_not_extend_it(guard, clock):
    for _ in range(6):
        guard.check("1.2.3.4")
    for _ in range(10):
        clock.advance(2)
        guard.check("1.2.3.4")
    clock.advance(10)
    assert isinstance(guard.check("1.2.3.4"), Allow)


def test_attempts_evaluated_normally_after_cooldown(guard, clock):
    for _ in range(6):
        guard.check("1.2.3.4")
    clock.advance(30)
    assert guard.check("1.2.3.4") == Allow(attempts_used=1, attempts_remaining=4)


def test_success_clears_history(guard):
    for _ in range(4):
        guard.check("1.2.3.4")
    guard.record_success("1.2.3.4")
    assert guard.attempts_used("1.2.3.4") == 0
    assert guard.check("1.2.3.4") == Allow(attempts_used=1, attempts_remaining=4)


def test_identities_are_independent(guard):
    for _ in range(6):
        guard.check("attacker")
    assert isinstance(guard.check("attacker"), Deny)
    assert isinstance(guard.check("bystander"), Allow)


def test_sweep_evicts_idle_records(guard, clock):
    guard.check("idle")
    clock.advance(121)
    guard.check("active")
    assert guard.sweep() == 1
    assert len(guard) == 1
    assert guard.attempts_used("active") == 1


def test_sweep_keeps_cooling_records(clock):
    guard = RetrievalGuard(max_attempts=1, cooldown_seconds=300, stale_after_seconds=10, clock=clock)
    guard.check("x")
    guard.check("x")
    clock.advance(200)
    assert guard.sweep() == 0
    assert isinstance(guard.check("x"), Deny)


def test_recreated_record_starts_from_zero(guard, clock):
    for _ in range(3):
        guard.check("1.2.3.4")
    clock.advance(500)
    guard.sweep()
    assert guard.check("1.2.3.4") == Allow(attempts_used=1, attempts_remaining=4)


def test_concurrent_checks_lose_no_increments():
    guard = RetrievalGuard(max_attempts=10_000, cooldown_seconds=30)
    barrier = threading.Barrier(8)

    def hammer():
        barrier.wait()
        for _ in range(500):
            guard.check("shared")

    threads = [threading.Thread(target=hammer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert guard.attempts_used("shared") == 4000


def test_clear_resets_everything(guard):
    guard.check("a")
    guard.check("b")
    guard.clear()
    assert len(guard) == 0
