from common.models import JobEvent, WorkerNode


class UnsatisfiablePlanError(Exception):
    """A job's threads can never be placed, even on an empty pool."""

    def __init__(self, job, unit_cost, largest_capacity, total_capacity):
        self.job = job
        self.unit_cost = unit_cost
        self.largest_capacity = largest_capacity
        self.total_capacity = total_capacity
        super().__init__(
            f"{job.kind.name} x{job.threads} threads on {job.target} needs {unit_cost:.2f} GB per thread, "
            f"but the largest worker only has {largest_capacity:.2f} GB usable ({total_capacity:.2f} GB in the pool)"
        )


class WorkerPool:
    """
    Live view over the host's workers. Nothing is cached: every call polls the host again.
    The home node only offers home_ram_fraction of its RAM, the rest is left for the player.
    """

    def __init__(self, host, home="home", home_ram_fraction=0.25):
        self.host = host
        self.home = home
        self.home_ram_fraction = home_ram_fraction

    def workers(self):
        workers = []
        for node in self.host.get_worker_nodes():
            fraction = self.home_ram_fraction if node.name == self.home else node.usable_fraction
            workers.append(WorkerNode(node.name, node.max_ram, node.ram_used, node.cores, fraction))
        return workers

    def ranked(self):
        """Workers by available RAM, most first; ties by name so the order is repeatable."""
        return sorted(self.workers(), key=lambda worker: (-worker.available_ram, worker.name))

    def total_capacity(self):
        return sum(worker.capacity for worker in self.workers())

    def largest_capacity(self):
        return max((worker.capacity for worker in self.workers()), default=0)

    def available_ram(self):
        return sum(worker.available_ram for worker in self.workers())


class DispatchOutcome:
    def __init__(self, launched=0, stalled_job=None):
        self.launched = launched
        self.stalled_job = stalled_job

    @property
    def complete(self):
        return self.stalled_job is None


class DispatchEngine:
    """
    Launches a batch's jobs across the worker pool, in order.

    Each job's threads are packed greedily onto the workers with the most free RAM, splitting the job across as
    many workers as it takes. When the pool can't take the rest of a job, the job stays at the head of the batch
    and execute() returns, so the caller can wait for RAM to free up and call it again.
    """

    def __init__(self, host, pool, log=None):
        self.host = host
        self.pool = pool
        self.log = log if log else (lambda message: None)
        self.events = []
        self.stats = {
            'launched': 0,
            'threads_launched': 0,
            'failed_launch': 0,
            'stalled': 0,
            'skipped': 0,
        }

    def execute(self, batch):
        launched = 0
        while len(batch):
            job = batch[0]
            if job.threads <= 0:
                self.stats['skipped'] += 1
                batch.remove(job)
                continue

            launched += self._allocate(job)
            if job.threads > 0:
                self.stats['stalled'] += 1
                self.record(job, "stall")
                self.log(f"[PAUSE] {job.kind.name} #{job.index} of cycle {job.cycle}: "
                         f"{job.threads} thread(s) still need RAM, {self.pool.available_ram():.2f} GB free")
                return DispatchOutcome(launched, stalled_job=job)

            batch.remove(job)

        return DispatchOutcome(launched)

    def _allocate(self, job):
        """Launch as much of the job as the pool can hold right now. Returns the number of launches."""
        unit_cost = self.host.script_ram(job.script)
        workers = self.pool.ranked()
        self._check_satisfiable(job, unit_cost)

        launches = 0
        for worker in workers:
            units = min(job.threads, worker.units_available(unit_cost))
            if units <= 0:
                continue

            pid = self.host.launch(job.script, worker.name, units, job.delay, job.target)
            if not pid:
                self.stats['failed_launch'] += 1
                self.record(job, "failed_launch", worker.name, units)
                self.log(f"[FAIL LAUNCH] {job.script} x{units} on {worker.name} -> {job.target}: no pid returned")
                continue

            job.threads -= units
            launches += 1
            self.stats['launched'] += 1
            self.stats['threads_launched'] += units
            self.record(job, "launch", worker.name, units)
            self.log(f"[SUCCESS LAUNCH] {job.kind.name} x{units} on {worker.name} -> {job.target}, "
                     f"delay {job.delay:.0f}ms")

            if job.threads == 0:
                break

        return launches

    def _check_satisfiable(self, job, unit_cost):
        largest = self.pool.largest_capacity()
        if unit_cost > largest:
            raise UnsatisfiablePlanError(job, unit_cost, largest, self.pool.total_capacity())

    def record(self, job, action, worker=None, threads=0):
        self.events.append(JobEvent(job, action, self.host.now(), worker=worker, threads=threads))

    def get_stats(self):
        return self.stats.copy()
