"""
Hack batcher run loop.

Prepares a target (minimum security, maximum money), then queues hack/weaken/grow/weaken cycles against it,
spreading each job over the worker pool. The effects of hack, grow and weaken are applied when they finish,
using the target's values at that moment, so every job is timed to land in a known order. When the pool runs out
of RAM the loop sleeps, takes the elapsed time off the pending jobs, and resumes where it stopped.
"""
import math
from enum import Enum

from common.models import BatchInfo
from hack_batcher.batch_log import BatchLog
from hack_batcher.dispatch import DispatchEngine, UnsatisfiablePlanError, WorkerPool
from hack_batcher.formatting import format_money, format_num, format_time
from hack_batcher.formulas import HackingFormulas
from hack_batcher.planner import BatchComposer, OperationPlanner


class UnhackableTargetError(Exception):
    """The target can never be batched: it has no money to take, or its money can't grow back."""

    def __init__(self, state):
        self.state = state
        super().__init__(f"{state.hostname} can't be batched (max money {format_money(state.max_money)}, "
                         f"growth {format_num(state.growth)})")


class RunState(Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    CYCLING = "cycling"
    DRAINING = "draining"
    TERMINATED = "terminated"


class BatchParameters:
    """Tunables for a run. Times are in ms."""

    SNAPSHOT_MODES = ("chained", "fresh")

    def __init__(self, settle_time=50, hack_fraction=0.99, home="home", home_ram_fraction=0.25, max_batches=10,
                 max_time_to_finish=-1, infinite=True, max_rounds=0, cycle_pause=-1, back_pressure_time=1000,
                 fudge_factor=0.05, prepare_wait=False, snapshot_mode="chained", yield_every=10, yield_time=5,
                 planning_cores=1):
        if snapshot_mode not in self.SNAPSHOT_MODES:
            raise ValueError(f"Unknown snapshot mode: {snapshot_mode}")
        if back_pressure_time <= 0:
            raise ValueError("back_pressure_time must be positive")
        if not 0 < hack_fraction < 1:
            raise ValueError("hack_fraction must be between 0 and 1")

        self.settle_time = settle_time
        self.hack_fraction = hack_fraction
        self.home = home
        self.home_ram_fraction = home_ram_fraction
        self.max_batches = max_batches
        self.max_time_to_finish = max_time_to_finish
        self.infinite = infinite
        self.max_rounds = max_rounds
        self.cycle_pause = cycle_pause
        self.back_pressure_time = back_pressure_time
        self.fudge_factor = fudge_factor
        self.prepare_wait = prepare_wait
        self.snapshot_mode = snapshot_mode
        self.yield_every = yield_every
        self.yield_time = yield_time
        self.planning_cores = planning_cores

    @classmethod
    def from_config(cls, config):
        """Build parameters from a load_config() dict, ignoring keys that aren't batch parameters."""
        conversions = {
            'settle_time': float,
            'hack_fraction': float,
            'home': str,
            'home_ram_fraction': float,
            'max_batches': int,
            'max_time_to_finish': float,
            'infinite': parse_bool,
            'max_rounds': int,
            'cycle_pause': float,
            'back_pressure_time': float,
            'fudge_factor': float,
            'prepare_wait': parse_bool,
            'snapshot_mode': str,
            'yield_every': int,
            'yield_time': float,
            'planning_cores': int,
        }
        values = {}
        for key, convert in conversions.items():
            if key in config:
                try:
                    values[key] = convert(config[key])
                except ValueError as e:
                    raise ValueError(f"Bad value for '{key}' in config: {config[key]!r}") from e
        return cls(**values)


def parse_bool(value):
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("true", "yes", "1"):
        return True
    if lowered in ("false", "no", "0"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


class HackBatcher:
    def __init__(self, host, target, params=None, formulas=None, log=None):
        self.host = host
        self.target = target
        self.params = params if params else BatchParameters()
        self.formulas = formulas if formulas else HackingFormulas()
        self.log = log if log else BatchLog()

        self.pool = WorkerPool(host, self.params.home, self.params.home_ram_fraction)
        self.dispatcher = DispatchEngine(host, self.pool, self.log)
        self.planner = None
        self.composer = None

        self.state = RunState.IDLE
        self.target_state = None
        self.pending = BatchInfo()
        self.horizon = 0  # ms until the last queued job lands
        self.rounds = 0
        self.cycles_queued = 0
        self.evicted = 0
        self.error = None
        self._chain_broken = False
        self._stop_requested = False

    def stop(self):
        """Ask the loop to stop at its next check. Jobs already launched keep running."""
        self._stop_requested = True

    def run(self):
        try:
            self._load()
            self._prepare()
            self._cycle()
        except (UnsatisfiablePlanError, UnhackableTargetError) as e:
            self.error = e
            self._drain(f"ERROR: {e}")

        self.state = RunState.TERMINATED
        return self.summary()

    def summary(self):
        summary = {
            'state': self.state.value,
            'rounds': self.rounds,
            'cycles_queued': self.cycles_queued,
            'evicted': self.evicted,
            'pending_jobs': len(self.pending),
            'horizon': self.horizon,
            'error': str(self.error) if self.error else None,
        }
        summary.update(self.dispatcher.get_stats())
        return summary

    # States

    def _load(self):
        self.state = RunState.IDLE
        self.target_state = self.host.get_target_state(self.target)
        if self.target_state.max_money <= 0 or self.target_state.growth <= 0:
            raise UnhackableTargetError(self.target_state)
        self.planner = OperationPlanner(self.formulas, self.host.get_actor(), self.params.planning_cores,
                                        self.params.hack_fraction)
        self.composer = BatchComposer(self.planner, self.params.settle_time, self.params.fudge_factor, self.log)

    def _prepare(self):
        self.state = RunState.PREPARING
        batch = self.composer.prepare(self.target_state, self.horizon)
        if not len(batch):
            self.log(f"{self.target} is already prepared.")
            return

        self.target_state = batch.final_state
        self.horizon = max(self.horizon, batch.last_end_time)
        self._dispatch_until_empty(batch)

        if self.params.prepare_wait:
            self.log(f"Finished setting up prepare scripts, waiting for {format_time(self.horizon)}")
            self._pause(BatchInfo(), self.horizon)
            self.target_state = self.host.get_target_state(self.target)
            self._chain_broken = False
            self.log(f"Done.\n{self.target}: Security: {format_num(self.target_state.security)}, "
                     f"Money: ${format_money(self.target_state.money)}, "
                     f"Min Security: {format_num(self.target_state.min_security)}, "
                     f"Max Money: ${format_money(self.target_state.max_money)}")

    def _cycle(self):
        self.state = RunState.CYCLING
        while not self._stop_requested:
            self.rounds += 1
            stalled = self._queue_round()
            if self._stop_requested:
                break

            if not self.params.infinite or (self.params.max_rounds and self.rounds >= self.params.max_rounds):
                self._finish()
                return

            if stalled:
                pause = self.params.back_pressure_time
            elif self.params.cycle_pause < 0:
                pause = self.horizon
            else:
                pause = self.params.cycle_pause
            self.log(f"Wait {format_time(pause)} for batches to complete.")
            self.pending = self._pause(self.pending, pause)
            self._resync()

        self._drain("Stop requested.")

    def _queue_round(self):
        """Queue as many cycles as free RAM allows, up to max_batches. Returns True if the pool ran out part way."""
        if len(self.pending):
            outcome = self.dispatcher.execute(self.pending)
            if not outcome.complete:
                return True
            self.log(f"[RESUME] Pending jobs on {self.target} launched.")

        runs = self.params.max_batches
        for i in range(self.params.max_batches):
            if i >= runs:
                break
            if self.params.yield_every and i and i % self.params.yield_every == 0:
                self.pending = self._pause(self.pending, self.params.yield_time)

            if self.params.max_time_to_finish != -1 and self.horizon > self.params.max_time_to_finish:
                self.log(f"Exceeded max execution time of {format_time(self.params.max_time_to_finish)}, "
                         f"with {format_time(self.horizon)}. Terminating.")
                self.stop()
                return False

            cycle = self.composer.compose_cycle(self.target_state, self.horizon)
            if i == 0:
                runs = self._available_cycles(cycle)
            self.target_state = cycle.final_state
            self.horizon = max(self.horizon, cycle.last_end_time)
            self.pending.extend(cycle)
            self.cycles_queued += 1

            outcome = self.dispatcher.execute(self.pending)
            if not outcome.complete:
                self.log(f"Batch #{i + 1} on {self.target} queued, waiting for RAM to launch the rest.")
                return True
            self.log(f"Batch #{i + 1} queued on {self.target}, will complete in {format_time(self.horizon)}.")

        return False

    def _available_cycles(self, cycle):
        """How many cycles like `cycle` fit in the RAM the pool has free right now, capped at max_batches."""
        needed = cycle.ram_needed(self.host.script_ram)
        available = self.pool.available_ram()
        if needed <= 0:
            return self.params.max_batches
        # At least one cycle per round, even on a busy pool
        runs = min(self.params.max_batches, max(1, math.floor(available / needed)))
        self.log(f"Cycle RAM: {format_num(needed)} GB, available: {format_num(available)} GB, runs: {runs}")
        return runs

    def _resync(self):
        """Refresh the actor, and the target too if the speculative chain can't be trusted any more."""
        self.planner.actor = self.host.get_actor()
        if self.params.snapshot_mode != "fresh" and not self._chain_broken:
            return

        self._chain_broken = False
        self.target_state = self.host.get_target_state(self.target)
        if not self.composer.is_prepared(self.target_state):
            self.log(f"WARN: {self.target} drifted from its baseline, preparing again.")
            self._prepare()
            self.state = RunState.CYCLING

    def _finish(self):
        if len(self.pending):
            self.log(f"Launching {len(self.pending)} remaining job(s).")
            self.pending = self._dispatch_until_empty(self.pending)
        self.log(f"All batches queued on {self.target}, last one lands in {format_time(self.horizon)}.")

    def _drain(self, reason):
        self.state = RunState.DRAINING
        self.log(reason)
        if len(self.pending):
            self.log(f"Dropping {len(self.pending)} job(s) that were never launched.")

    # Back-pressure

    def _dispatch_until_empty(self, batch):
        while len(batch):
            outcome = self.dispatcher.execute(batch)
            if outcome.complete:
                break
            batch = self._pause(batch, self.params.back_pressure_time)
            if len(batch):
                job = batch[0]
                self.log(f"[RESUME] {job.kind.name} #{job.index} of cycle {job.cycle}, "
                         f"{job.threads} thread(s) left, delay now {format_time(job.delay)}")
        return batch

    def _pause(self, batch, ms):
        """
        Sleep, then take the time that actually passed off every job not launched yet: the ones in `batch` and,
        when `batch` is a different list, the ones still pending from earlier rounds.
        """
        before = self.host.now()
        self.host.sleep(ms)
        elapsed = self.host.now() - before

        self.horizon = max(0, self.horizon - elapsed)
        advanced = self._advance(batch, elapsed)
        if batch is self.pending:
            self.pending = advanced
        else:
            self.pending = self._advance(self.pending, elapsed)
        return advanced

    def _advance(self, batch, elapsed):
        advanced = batch.advance(elapsed)
        for job in advanced.evicted:
            self.evicted += 1
            self._chain_broken = True
            self.dispatcher.record(job, "evict", threads=job.threads)
            self.log(f"[EVICT] {job.kind.name} #{job.index} of cycle {job.cycle} missed its window "
                     f"with {job.threads} thread(s) unlaunched")
        return advanced
