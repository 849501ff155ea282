import math

import pytest

from common.models import OperationKind, TargetState
from hack_batcher.formulas import HackingFormulas
from hack_batcher.planner import BatchComposer, OperationPlanner

HACK, GROW, WEAKEN = OperationKind.HACK, OperationKind.GROW, OperationKind.WEAKEN


class ConstantDurationFormulas(HackingFormulas):
    def duration(self, kind, state, actor):
        return 1000


@pytest.fixture
def planner(formulas, actor):
    return OperationPlanner(formulas, actor)


@pytest.fixture
def composer(planner, messages):
    return BatchComposer(planner, settle_time=50, fudge_factor=0.05, log=messages.append)


class TestOperationPlanner:
    def test_plan_weaken(self, planner):
        state = TargetState("t", 50, 10, 0, 1_000_000, 20)
        operation = planner.plan(WEAKEN, state)
        assert operation.threads == 800
        assert operation.security_delta == pytest.approx(-40)
        assert operation.duration > 0

    def test_plan_is_pure(self, planner, prepared_target):
        planner.plan(HACK, prepared_target)
        assert prepared_target.money == prepared_target.max_money
        assert prepared_target.security == prepared_target.min_security

    def test_hack_fraction_changes_hack_threads(self, formulas, actor, prepared_target):
        greedy = OperationPlanner(formulas, actor, hack_fraction=0.99).plan(HACK, prepared_target)
        modest = OperationPlanner(formulas, actor, hack_fraction=0.5).plan(HACK, prepared_target)
        assert modest.threads < greedy.threads


class TestPrepare:
    def test_prepared_target_needs_nothing(self, composer, prepared_target):
        batch = composer.prepare(prepared_target)
        assert len(batch) == 0
        assert batch.final_state is prepared_target

    def test_far_from_baseline_needs_all_three(self, composer):
        state = TargetState("t", security=50, min_security=10, money=0, max_money=1_000_000, growth=20)
        batch = composer.prepare(state)
        assert batch.kinds == [WEAKEN, GROW, WEAKEN]
        assert batch[0].threads == math.ceil(40 / HackingFormulas.WEAKEN_PER_THREAD)
        assert batch[1].threads > 0
        assert batch[2].threads > 0

    def test_only_security_off(self, composer):
        state = TargetState("t", security=30, min_security=10, money=1000, max_money=1000, growth=20)
        assert composer.prepare(state).kinds == [WEAKEN]

    def test_only_money_off(self, composer):
        state = TargetState("t", security=10, min_security=10, money=100, max_money=1000, growth=20)
        assert composer.prepare(state).kinds == [GROW, WEAKEN]

    def test_within_tolerance_is_prepared(self, composer):
        state = TargetState("t", security=10.4, min_security=10, money=960, max_money=1000, growth=20)
        assert composer.is_prepared(state)
        assert len(composer.prepare(state)) == 0

    def test_prepare_predicts_baseline(self, composer):
        state = TargetState("t", security=50, min_security=10, money=0, max_money=1_000_000, growth=20)
        final = composer.prepare(state).final_state
        assert final.security == pytest.approx(10)
        assert final.money == pytest.approx(1_000_000)
        assert state.security == 50


class TestComposeCycle:
    def test_cycle_order(self, composer, prepared_target):
        batch = composer.compose_cycle(prepared_target)
        assert batch.kinds == [HACK, WEAKEN, GROW, WEAKEN]
        assert all(job.threads > 0 for job in batch)
        assert all(job.target == "joesguns" for job in batch)

    def test_end_times_are_settle_time_apart(self, composer, prepared_target):
        batch = composer.compose_cycle(prepared_target)
        for previous, job in zip(batch, batch[1:]):
            assert job.end_time >= previous.end_time + 50 - 1e-6
        for job in batch:
            assert job.end_time == pytest.approx(job.delay + job.duration)
            assert job.delay >= 0

    def test_equal_durations_are_staggered_by_delay(self, actor, prepared_target):
        planner = OperationPlanner(ConstantDurationFormulas(), actor)
        composer = BatchComposer(planner, settle_time=50)
        batch = composer.compose_cycle(prepared_target)
        assert [job.delay for job in batch] == [0, 50, 100, 150]
        assert [job.end_time for job in batch] == [1000, 1050, 1100, 1150]

    def test_cycle_lands_after_prior_end_time(self, actor, prepared_target):
        planner = OperationPlanner(ConstantDurationFormulas(), actor)
        composer = BatchComposer(planner, settle_time=50)
        batch = composer.compose_cycle(prepared_target, prior_end_time=5000)
        assert batch[0].delay == 4050
        assert batch[0].end_time == 5050
        assert batch.last_end_time == 5200

    def test_states_chain_through_the_cycle(self, composer, prepared_target):
        batch = composer.compose_cycle(prepared_target)
        hack, weaken, grow, _ = batch
        assert hack.state is prepared_target
        assert weaken.state.security > prepared_target.security
        assert grow.state.money < prepared_target.money
        assert grow.state.security == pytest.approx(prepared_target.min_security)
        assert composer.is_prepared(batch.final_state)

    def test_cycles_are_numbered(self, composer, prepared_target):
        first = composer.compose_cycle(prepared_target)
        second = composer.compose_cycle(first.final_state, first.last_end_time)
        assert {job.cycle for job in first} == {1}
        assert {job.cycle for job in second} == {2}
        assert second[0].end_time >= first.last_end_time + 50

    def test_zero_thread_jobs_are_skipped(self, composer, prepared_target, messages):
        empty = prepared_target.copy(money=0)
        batch = composer.compose_cycle(empty)
        assert batch.kinds == [GROW, WEAKEN]
        assert any("No work needed" in message for message in messages)
