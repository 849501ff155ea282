import heapq
import itertools

from common.models import OperationKind, WorkerNode
from hack_batcher.formulas import HackingFormulas


class Server:
    def __init__(self, hostname, max_ram, cores=1, has_admin_rights=True, state=None):
        self.hostname = hostname
        self.max_ram = max_ram
        self.cores = cores
        self.has_admin_rights = has_admin_rights
        self.ram_used = 0
        self.state = state  # TargetState, or None for servers with nothing to hack

    def available_ram(self):
        return self.max_ram - self.ram_used

    def run_script(self, ram):
        self.ram_used += ram

    def release_script(self, ram):
        self.ram_used = max(0, self.ram_used - ram)


class Process:
    """A launched workload script: sleeps `delay` ms, then runs its operation against the target."""

    def __init__(self, pid, script, host, threads, delay, target, ram, launch_time):
        self.pid = pid
        self.script = script
        self.kind = OperationKind.from_script(script)
        self.host = host
        self.threads = threads
        self.delay = delay
        self.target = target
        self.ram = ram
        self.launch_time = launch_time
        self.start_time = None
        self.end_time = None


class SimulatedNetwork:
    """
    Off-line stand-in for the game: worker RAM, target servers and a virtual clock.

    Launched scripts hold their RAM from launch until they finish. Each one computes its duration when its delay
    runs out, from the target's security at that moment, and applies its effect when it finishes, from the
    target's state at that moment, the same way the game does.
    """

    SCRIPT_RAM = {
        OperationKind.HACK.script: 1.70,
        OperationKind.GROW.script: 1.75,
        OperationKind.WEAKEN.script: 1.75,
    }

    def __init__(self, servers, actor, formulas=None, log_file=None):
        self.servers = {server.hostname: server for server in servers}
        self.actor = actor
        self.formulas = formulas if formulas else HackingFormulas()
        self.log_file = log_file
        self.clock = 0
        self.processes = {}
        self.event_records = []
        self._queue = []
        self._pids = itertools.count(1)
        self._sequence = itertools.count()
        self.stats = {
            'launched': 0,
            'failed_launch': 0,
            'completed': 0,
            'money_stolen': 0,
        }

    def _log(self, message):
        """Write message to log file and print to console"""
        print(message)
        if self.log_file:
            with open(self.log_file, 'a') as f:
                f.write(message + "\n")

    # Host interface used by the batcher

    def get_worker_nodes(self):
        return [WorkerNode(s.hostname, s.max_ram, s.ram_used, s.cores)
                for s in self.servers.values() if s.has_admin_rights and s.max_ram > 0]

    def get_target_state(self, name):
        server = self.servers.get(name)
        if server is None or server.state is None:
            raise ValueError(f"Unknown target: {name}")
        return server.state.copy()

    def get_actor(self):
        return self.actor

    def script_ram(self, script):
        try:
            return self.SCRIPT_RAM[script.lstrip("/")]
        except KeyError:
            raise ValueError(f"Unknown script: {script}")

    def now(self):
        return self.clock

    def launch(self, script, host, threads, delay, target):
        """Start a script. Returns its pid, or 0 if it couldn't be started."""
        server = self.servers.get(host)
        target_server = self.servers.get(target)
        ram = self.SCRIPT_RAM.get(script.lstrip("/"), 0) * threads
        if (server is None or not server.has_admin_rights or threads <= 0 or ram <= 0
                or target_server is None or target_server.state is None
                or ram > server.available_ram() + 1e-9):
            self.stats['failed_launch'] += 1
            self._log(f"[FAIL LAUNCH] {script} x{threads} on {host} -> {target}")
            return 0

        pid = next(self._pids)
        process = Process(pid, script.lstrip("/"), host, threads, delay, target, ram, self.clock)
        server.run_script(ram)
        self.processes[pid] = process
        self.stats['launched'] += 1
        self._push(self.clock + max(0, delay), "start", process)
        self._record("launch", process)
        return pid

    def sleep(self, ms):
        """Advance the clock by ms, starting and finishing processes in time order."""
        until = self.clock + max(0, ms)
        while self._queue and self._queue[0][0] <= until:
            time, _, action, process = heapq.heappop(self._queue)
            self.clock = time
            if action == "start":
                self._start(process)
            else:
                self._finish(process)
        self.clock = until

    def next_event_time(self):
        return self._queue[0][0] if self._queue else self.clock

    # Process lifecycle

    def _push(self, time, action, process):
        heapq.heappush(self._queue, (time, next(self._sequence), action, process))

    def _start(self, process):
        target = self.servers[process.target].state
        process.start_time = self.clock
        process.end_time = self.clock + self.formulas.duration(process.kind, target, self.actor)
        self._push(process.end_time, "finish", process)
        self._record("start", process)

    def _finish(self, process):
        server = self.servers[process.target]
        before = server.state
        cores = self.servers[process.host].cores
        server.state = before.apply_operation(process.kind, process.threads, self.formulas, self.actor, cores)

        if process.kind is OperationKind.HACK:
            self.stats['money_stolen'] += before.money - server.state.money

        self.servers[process.host].release_script(process.ram)
        del self.processes[process.pid]
        self.stats['completed'] += 1
        self._record("finish", process)

    def _record(self, action, process):
        state = self.servers[process.target].state
        self.event_records.append({
            'time': self.clock,
            'action': action,
            'pid': process.pid,
            'kind': process.kind.value,
            'host': process.host,
            'target': process.target,
            'threads': process.threads,
            'security': state.security,
            'money': state.money,
            'active_processes': len(self.processes),
        })

    def get_stats(self):
        """Return simulation statistics"""
        return self.stats.copy()

    def get_current_state(self):
        """Return current network state for external logging"""
        return {
            'time': self.clock,
            'active_processes': len(self.processes),
            'nodes': [{
                'name': s.hostname,
                'ram_used': s.ram_used,
                'max_ram': s.max_ram,
            }
                for s in self.servers.values() if s.has_admin_rights and s.max_ram > 0]
        }
