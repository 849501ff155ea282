"""
Operation planning and batch composition.

A batch is a sequence of jobs started together, each given a delay so the jobs finish in a fixed order,
settle_time ms apart. Hack must land while security is minimal and money maximal, the first weaken cancels the
security hack added, grow refills the money while it is low, and the last weaken cancels grow's security.
"""
from common.models import BatchInfo, OperationKind, PlannedJob, approx_equals
from hack_batcher.formatting import format_money, format_num, format_time


class PlannedOperation:
    """Threads, duration and security change for one operation against one state."""

    def __init__(self, kind, threads, duration, security_delta):
        self.kind = kind
        self.threads = threads
        self.duration = duration
        self.security_delta = security_delta


class OperationPlanner:
    def __init__(self, formulas, actor, cores=1, hack_fraction=0.99):
        self.formulas = formulas
        self.actor = actor
        self.cores = cores
        self.hack_fraction = hack_fraction

    def plan(self, kind, state):
        threads = self.formulas.thread_count(kind, state, self.actor, self.cores, self.hack_fraction)
        return PlannedOperation(
            kind=kind,
            threads=threads,
            duration=self.formulas.duration(kind, state, self.actor),
            security_delta=self.formulas.security_delta(kind, threads, self.cores),
        )

    def apply(self, kind, state, threads):
        return state.apply_operation(kind, threads, self.formulas, self.actor, self.cores)


class BatchComposer:
    CYCLE = (OperationKind.HACK, OperationKind.WEAKEN, OperationKind.GROW, OperationKind.WEAKEN)

    def __init__(self, planner, settle_time=50, fudge_factor=0.05, log=None):
        self.planner = planner
        self.settle_time = settle_time
        self.fudge_factor = fudge_factor
        self.log = log if log else (lambda message: None)
        self.cycles_composed = 0

    def compose_cycle(self, state, prior_end_time=0):
        """Plan one hack/weaken/grow/weaken cycle, landing after prior_end_time."""
        self.cycles_composed += 1
        return self._compose(self.CYCLE, state, prior_end_time, self.cycles_composed)

    def prepare(self, state, prior_end_time=0):
        """
        Plan the weaken/grow/weaken steps needed to bring the target to minimum security and maximum money.
        A step is left out if its quantity is already within fudge_factor of its goal.
        """
        kinds = []
        if not approx_equals(state.security, state.min_security, self.fudge_factor):
            kinds.append(OperationKind.WEAKEN)

        # Growing raises security, so it always needs its own weaken afterwards
        if not approx_equals(state.money, state.max_money, self.fudge_factor):
            kinds.extend([OperationKind.GROW, OperationKind.WEAKEN])

        self.log(f"Starting security: {format_num(state.security)}, min: {format_num(state.min_security)}")
        self.log(f"Starting money: ${format_money(state.money)}, max money: ${format_money(state.max_money)}")
        return self._compose(kinds, state, prior_end_time, cycle=0)

    def is_prepared(self, state):
        return state.is_at_baseline(self.fudge_factor)

    def _compose(self, kinds, state, prior_end_time, cycle):
        batch = BatchInfo(final_state=state)
        previous_end = prior_end_time

        for index, kind in enumerate(kinds):
            operation = self.planner.plan(kind, state)
            if operation.threads <= 0:
                self.log(f"WARN: No work needed, skipping {kind.name} on {state.hostname}")
                continue

            floor = previous_end + self.settle_time
            delay = 0 if operation.duration >= floor else floor - operation.duration
            job = PlannedJob(kind, state.hostname, operation.threads, operation.duration, delay, state,
                             index=index, cycle=cycle)
            batch.append(job)

            self.log(f"{kind.name.capitalize():<7}threads: {job.threads}, delay: {format_time(job.delay)}, "
                     f"ends in: {format_time(job.end_time)}, security: {format_num(operation.security_delta)}")

            state = self.planner.apply(kind, state, operation.threads)
            previous_end = job.end_time

        batch.final_state = state
        return batch
