import sys
from pathlib import Path

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from data_handling.network_loader import load_network, pick_target
from hack_batcher.batch_log import BatchLog
from hack_batcher.formulas import Actor
from hack_batcher.hack_batcher import BatchParameters, HackBatcher
from network_simulator.network_simulator import SimulatedNetwork


def find_config(config_file):
    """Look for the config file in the working directory, then at the repository root."""
    candidates = [Path(config_file), Path(__file__).resolve().parent.parent / config_file]
    for path in candidates:
        if path.exists():
            return path
    raise FileNotFoundError(f"Config file '{config_file}' not found in any of: {[str(p) for p in candidates]}")


def load_config(config_file="config.txt"):
    """
    Read `key = value` settings into a dict of strings.

    `#` starts a comment, on its own line or after a value. Any other line without an `=` is an error.
    """
    config_path = find_config(config_file)
    config = {}
    with open(config_path, 'r') as f:
        for number, raw in enumerate(f, start=1):
            line = raw.split('#', 1)[0].strip()
            if not line:
                continue
            key, sep, value = line.partition('=')
            if not sep or not key.strip():
                raise ValueError(f"{config_path}:{number}: expected 'key = value', got {raw.strip()!r}")
            config[key.strip()] = value.strip()
    return config


def create_actor(config):
    return Actor(
        hacking_skill=int(config.get('hacking_skill', 100)),
        hack_money_mult=float(config.get('hack_money_mult', 1.0)),
        hack_speed_mult=float(config.get('hack_speed_mult', 1.0)),
        grow_mult=float(config.get('grow_mult', 1.0)),
    )


def node_records(network):
    state = network.get_current_state()
    return [{
        'time': state['time'],
        'node_name': n['name'],
        'ram_used': n['ram_used'],
        'max_ram': n['max_ram'],
        'ram_utilisation': n['ram_used'] / n['max_ram'] if n['max_ram'] > 0 else 0,
        'active_processes': state['active_processes'],
    } for n in state['nodes']]


class RecordingNetwork:
    """Wraps a simulated network so every sleep also snapshots worker RAM."""

    def __init__(self, network):
        self.network = network
        self.records = node_records(network)

    def __getattr__(self, name):
        return getattr(self.network, name)

    def sleep(self, ms):
        self.network.sleep(ms)
        self.records.extend(node_records(self.network))


def run_batcher(config):
    """Run the batcher against a simulated network built from the configuration."""

    actor = create_actor(config)
    servers = load_network(config['network_file'])
    target = config.get('target') or pick_target(servers, actor.hacking_skill)

    output_path = Path(config.get('output_directory', 'output'))
    output_path.mkdir(parents=True, exist_ok=True)

    output_events = output_path / config.get('output_events', 'batcher_log_events.parquet')
    output_nodes = output_path / config.get('output_nodes', 'batcher_log_nodes.parquet')
    output_log = output_path / config.get('output_log', 'batcher.log')

    params = BatchParameters.from_config(config)
    if params.infinite and not params.max_rounds:
        raise ValueError("A simulated run needs max_rounds when infinite is true")

    network = RecordingNetwork(SimulatedNetwork(servers, actor))
    log = BatchLog(log_file=str(output_log), log_type=config.get('log_type', 'terminal'))
    batcher = HackBatcher(network, target, params, log=log)

    print(f"Starting batcher against {target} on {len(network.get_worker_nodes())} workers...")
    summary = batcher.run()

    # Let everything that was launched land before recording the final state
    while network.processes:
        network.sleep(network.next_event_time() - network.now())

    event_records = [dict(event.to_record(), source='batcher') for event in batcher.dispatcher.events]
    process_records = network.event_records

    events_df = pd.DataFrame(event_records + [dict(record, source='network') for record in process_records])
    nodes_df = pd.DataFrame(network.records)

    pq.write_table(pa.Table.from_pandas(events_df), output_events)
    pq.write_table(pa.Table.from_pandas(nodes_df), output_nodes)

    # Print run statistics
    summary.update({f"network_{key}": value for key, value in network.get_stats().items()})
    print("\nRun complete:")
    for key, value in summary.items():
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            print(f"{key}: {value:,.2f}" if isinstance(value, float) else f"{key}: {value:,}")
        else:
            print(f"{key}: {value}")

    return summary


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    config = load_config(argv[0] if argv else "config.txt")
    summary = run_batcher(config)
    return 1 if summary['error'] else 0


if __name__ == "__main__":
    sys.exit(main())
