"""Tests for the execution status state machine."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from chunkwise.core.exceptions import InvalidStatusTransition
from chunkwise.models.execution import BatchStatus, ExitCode, JobExecution, StepExecution

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 1, 0, 5, tzinfo=timezone.utc)


def _execution() -> JobExecution:
    return JobExecution(execution_id=1, instance_id=1)


class TestBatchStatus:
    @pytest.mark.parametrize("status", ["COMPLETED", "FAILED", "STOPPED", "ABANDONED"])
    def test_terminal(self, status):
        assert BatchStatus(status).is_terminal

    @pytest.mark.parametrize("status", ["STARTING", "STARTED"])
    def test_not_terminal(self, status):
        assert not BatchStatus(status).is_terminal

    def test_failed_can_only_be_abandoned(self):
        assert BatchStatus.FAILED.can_transition_to(BatchStatus.ABANDONED)
        assert not BatchStatus.FAILED.can_transition_to(BatchStatus.STARTED)
        assert not BatchStatus.FAILED.can_transition_to(BatchStatus.COMPLETED)

    def test_completed_is_final(self):
        for status in BatchStatus:
            assert not BatchStatus.COMPLETED.can_transition_to(status)


class TestTransition:
    def test_new_execution_defaults(self):
        execution = _execution()
        assert execution.status is BatchStatus.STARTING
        assert execution.exit_code is ExitCode.UNKNOWN
        assert execution.start_time is None
        assert execution.end_time is None

    def test_started_stamps_start_time(self):
        execution = _execution()
        execution.transition(BatchStatus.STARTED, at=T0)
        assert execution.start_time == T0
        assert execution.end_time is None
        assert execution.exit_code is ExitCode.EXECUTING

    def test_terminal_stamps_end_time(self):
        execution = _execution()
        execution.transition(BatchStatus.STARTED, at=T0)
        execution.transition(BatchStatus.COMPLETED, at=T1)
        assert execution.end_time == T1
        assert execution.exit_code is ExitCode.COMPLETED

    def test_abandon_after_failure_keeps_end_time(self):
        execution = _execution()
        execution.transition(BatchStatus.STARTED, at=T0)
        execution.fail("boom", at=T0)
        execution.transition(BatchStatus.ABANDONED, at=T1)
        assert execution.end_time == T0
        assert execution.exit_code is ExitCode.ABANDONED
        assert execution.exit_message == "boom"

    def test_completed_cannot_restart(self):
        execution = _execution()
        execution.transition(BatchStatus.STARTED)
        execution.transition(BatchStatus.COMPLETED)
        with pytest.raises(InvalidStatusTransition):
            execution.transition(BatchStatus.STARTED)

    def test_starting_cannot_complete_directly(self):
        with pytest.raises(InvalidStatusTransition):
            _execution().transition(BatchStatus.COMPLETED)

    def test_fail_sets_message(self):
        execution = _execution()
        execution.transition(BatchStatus.STARTED)
        execution.fail("ValueError: bad row")
        assert execution.status is BatchStatus.FAILED
        assert execution.exit_message == "ValueError: bad row"
        assert execution.end_time is not None


class TestStepCounters:
    def test_record_commit_accumulates(self):
        step = StepExecution(step_execution_id=1, execution_id=1, step_name="s")
        step.record_commit(read=2, filtered=1, written=1)
        step.record_commit(read=1, filtered=0, written=1)
        assert (step.read_count, step.filter_count, step.write_count, step.commit_count) == (3, 1, 2, 2)

    def test_record_rollback(self):
        step = StepExecution(step_execution_id=1, execution_id=1, step_name="s")
        step.record_rollback()
        assert step.rollback_count == 1
        assert step.commit_count == 0
