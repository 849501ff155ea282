"""
Shared data models for the hack batcher.

This module contains the core data classes used across planning, dispatch and the network simulator.
"""
import math
from enum import Enum


MAX_SECURITY = 100


class OperationKind(Enum):
    """The three remote operations a batch is built from."""

    HACK = "hack"
    GROW = "grow"
    WEAKEN = "weaken"

    @property
    def script(self):
        return f"batcher/{self.value}.js"

    @classmethod
    def from_script(cls, script):
        for kind in cls:
            if kind.script == script.lstrip("/"):
                return kind
        raise ValueError(f"Unknown workload script: {script}")


class TargetState:
    """
    Speculative snapshot of a target's security and money.

    Snapshots are treated as values: apply_operation returns a new snapshot and leaves the receiver untouched,
    so a batch plan is a chain of states that can be inspected step by step.
    """

    def __init__(self, hostname, security, min_security, money, max_money, growth, required_skill=1):
        self.hostname = hostname
        self.min_security = min_security
        self.max_money = max_money
        self.growth = growth
        self.required_skill = required_skill
        self.security = min(MAX_SECURITY, max(min_security, security))
        self.money = min(max_money, max(0, money))

    def copy(self, **changes):
        values = {
            'hostname': self.hostname,
            'security': self.security,
            'min_security': self.min_security,
            'money': self.money,
            'max_money': self.max_money,
            'growth': self.growth,
            'required_skill': self.required_skill,
        }
        values.update(changes)
        return TargetState(**values)

    def apply_operation(self, kind, threads, formulas, actor, cores=1):
        """Return the state this target is predicted to be in once `threads` threads of `kind` have landed."""
        security = self.security + formulas.security_delta(kind, threads, cores)
        money = self.money

        if kind is OperationKind.HACK:
            money -= money * (formulas.hack_percent(self, actor) * threads)
        elif kind is OperationKind.GROW:
            money = min(self.max_money, (money + threads) * formulas.grow_multiplier(self, threads, actor, cores))

        # The constructor clamps both values back into their valid ranges
        return self.copy(security=security, money=money)

    def is_at_baseline(self, fudge):
        return (approx_equals(self.security, self.min_security, fudge)
                and approx_equals(self.money, self.max_money, fudge))

    def __repr__(self):
        return (f"TargetState({self.hostname!r}, security={self.security:.3f}/{self.min_security}, "
                f"money={self.money:,.0f}/{self.max_money:,.0f})")


class PlannedJob:
    """One operation of a batch, scheduled to land at end_time ms from now."""

    def __init__(self, kind, target, threads, duration, delay, state, index=0, cycle=0):
        self.kind = kind
        self.target = target
        self.threads = threads
        self.duration = duration
        self.delay = delay
        self.end_time = delay + duration
        self.state = state
        self.index = index
        self.cycle = cycle

    @property
    def script(self):
        return self.kind.script

    def copy(self):
        job = PlannedJob(self.kind, self.target, self.threads, self.duration, self.delay, self.state,
                         index=self.index, cycle=self.cycle)
        job.end_time = self.end_time
        return job

    def advanced(self, elapsed):
        job = self.copy()
        job.delay = max(0, self.delay - elapsed)
        job.end_time = max(0, self.end_time - elapsed)
        return job

    def __repr__(self):
        return (f"PlannedJob({self.kind.name}, target={self.target!r}, threads={self.threads}, "
                f"delay={self.delay:.0f}, end_time={self.end_time:.0f})")


class WorkerNode:
    """Read-only view of a worker's RAM, taken when the pool is polled."""

    def __init__(self, name, max_ram, ram_used, cores=1, usable_fraction=1.0):
        self.name = name
        self.max_ram = max_ram
        self.ram_used = ram_used
        self.cores = cores
        self.usable_fraction = usable_fraction

    @property
    def capacity(self):
        return self.max_ram * self.usable_fraction

    @property
    def available_ram(self):
        return max(0, self.capacity - self.ram_used)

    def units_available(self, unit_cost):
        if unit_cost <= 0:
            raise ValueError(f"Per-thread RAM cost must be positive, got {unit_cost}")
        # Round before flooring so 4 * 1.75 GB free doesn't come out as 3.9999 threads
        return math.floor(round(self.available_ram / unit_cost, 9))

    def __repr__(self):
        return f"WorkerNode({self.name!r}, available={self.available_ram:.2f}/{self.capacity:.2f} GB)"


class BatchInfo:
    """Ordered list of jobs still waiting to be launched."""

    def __init__(self, jobs=None, final_state=None, evicted=None):
        self.jobs = list(jobs) if jobs else []
        self.final_state = final_state
        self.evicted = list(evicted) if evicted else []

    def __len__(self):
        return len(self.jobs)

    def __iter__(self):
        return iter(self.jobs)

    def __getitem__(self, position):
        return self.jobs[position]

    @property
    def last_end_time(self):
        return max((job.end_time for job in self.jobs), default=0)

    @property
    def kinds(self):
        return [job.kind for job in self.jobs]

    def ram_needed(self, script_ram):
        """Total RAM needed to launch every remaining thread, given a script -> GB per thread lookup."""
        return sum(job.threads * script_ram(job.script) for job in self.jobs)

    def append(self, job):
        self.jobs.append(job)

    def extend(self, other):
        self.jobs.extend(other.jobs)
        if other.final_state is not None:
            self.final_state = other.final_state
        return self

    def remove(self, job):
        self.jobs.remove(job)

    def advance(self, elapsed):
        """
        Return a copy of this batch with `elapsed` ms taken off every job's delay and end time.
        Jobs whose end time reaches 0 have missed their window and are moved to `evicted`.
        """
        remaining = []
        evicted = []
        for job in self.jobs:
            moved = job.advanced(elapsed)
            if moved.end_time <= 0:
                evicted.append(moved)
            else:
                remaining.append(moved)
        return BatchInfo(remaining, final_state=self.final_state, evicted=evicted)


class JobEvent:
    """Represents an event in a job's lifecycle (launch, stall, evict, etc.)."""

    def __init__(self, job, action, time, worker=None, threads=0):
        self.job = job
        self.action = action
        self.time = time
        self.worker = worker
        self.threads = threads

    def to_record(self):
        return {
            'time': self.time,
            'action': self.action,
            'kind': self.job.kind.value,
            'target': self.job.target,
            'cycle': self.job.cycle,
            'index': self.job.index,
            'worker': self.worker,
            'threads': self.threads,
            'delay': self.job.delay,
            'end_time': self.job.end_time,
        }


def approx_equals(value, expected, fudge):
    """True when `value` is within `fudge` (a fraction of `expected`) either side of `expected`."""
    return expected * (1 - fudge) <= value <= expected * (1 + fudge)
