import pytest

from askscene.config import TimingConfig
from askscene.infrastructure.errors import RequestCreationFailure
from askscene.infrastructure.retry_policy import RetryDecision, RetryRecoveryPolicy


@pytest.fixture
def policy(scheduler):
	return RetryRecoveryPolicy(scheduler, max_attempts=3, retry_delay=2.0, recovery_multiplier=3)


def test_failures_below_max_ask_for_retry(policy):
	assert policy.record_failure(RequestCreationFailure()) == RetryDecision.RETRY
	assert policy.record_failure(RequestCreationFailure()) == RetryDecision.RETRY
	assert policy.consecutive_errors == 2
	assert not policy.recovering


def test_third_failure_recovers(policy):
	for _ in range(2):
		policy.record_failure(RequestCreationFailure())
	assert policy.record_failure(RequestCreationFailure()) == RetryDecision.RECOVER


def test_success_resets_the_counter(policy, scheduler):
	policy.record_failure(RequestCreationFailure())
	policy.record_failure(RequestCreationFailure())
	assert policy.state.last_error_at == scheduler.now()
	policy.record_success()
	assert policy.consecutive_errors == 0
	assert policy.state.last_error_at is None
	assert policy.record_failure(RequestCreationFailure()) == RetryDecision.RETRY


def test_state_is_a_copy(policy):
	snapshot = policy.state
	snapshot.consecutive_errors = 99
	assert policy.consecutive_errors == 0


def test_schedule_retry_fires_after_delay(policy, scheduler):
	fired = []
	policy.schedule_retry(lambda: fired.append(scheduler.now()))
	scheduler.advance(1.9)
	assert fired == []
	scheduler.advance(0.1)
	assert fired == [pytest.approx(2.0)]


def test_rescheduling_replaces_pending_retry(policy, scheduler):
	fired = []
	policy.schedule_retry(lambda: fired.append("first"))
	scheduler.advance(1.0)
	policy.schedule_retry(lambda: fired.append("second"))
	scheduler.advance(5.0)
	assert fired == ["second"]


def test_recovery_waits_then_rechecks(policy, scheduler):
	for _ in range(3):
		policy.record_failure(RequestCreationFailure())
	finished = []
	policy.begin_recovery(lambda: True, finished.append)
	assert policy.recovering
	scheduler.advance(5.9)
	assert finished == []
	assert policy.recovering
	scheduler.advance(0.1)
	assert finished == [True]
	assert not policy.recovering
	assert policy.consecutive_errors == 0


def test_failed_recheck_keeps_the_error_count(policy, scheduler):
	for _ in range(3):
		policy.record_failure(RequestCreationFailure())
	finished = []
	policy.begin_recovery(lambda: False, finished.append)
	scheduler.advance(6.0)
	assert finished == [False]
	assert not policy.recovering
	assert policy.consecutive_errors == 3


def test_cancel_aborts_recovery(policy, scheduler):
	finished = []
	policy.begin_recovery(lambda: True, finished.append)
	policy.cancel()
	assert not policy.recovering
	scheduler.advance(10.0)
	assert finished == []


def test_reset_clears_everything(policy, scheduler):
	fired = []
	policy.record_failure(RequestCreationFailure())
	policy.schedule_retry(lambda: fired.append(1))
	policy.reset()
	scheduler.advance(10.0)
	assert fired == []
	assert policy.consecutive_errors == 0


def test_from_timing(scheduler):
	policy = RetryRecoveryPolicy.from_timing(scheduler, TimingConfig(max_retry_attempts=1, retry_delay=0.5, recovery_multiplier=4))
	assert policy.recovery_delay == pytest.approx(2.0)
	assert policy.record_failure(RequestCreationFailure()) == RetryDecision.RECOVER
