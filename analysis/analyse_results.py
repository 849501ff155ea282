import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import plotly.express as px

from hack_batcher.run_batcher import load_config


def load_results(events_file, nodes_file):
    for path in (events_file, nodes_file):
        if not Path(path).exists():
            raise FileNotFoundError(f"No results found at {path}")

    events_df = pd.read_parquet(events_file)
    nodes_df = pd.read_parquet(nodes_file)
    print(f"Event data shape: {events_df.shape}")
    print(f"Node data shape: {nodes_df.shape}")
    return events_df, nodes_df


def cluster_usage(nodes_df):
    """RAM in use across all workers at each sampled time."""
    cluster = (
        nodes_df
        .groupby("time", as_index=False)
        .agg({
            "ram_used": "sum",
            "max_ram": "sum",
            "active_processes": "first",
        })
        .sort_values("time")
    )
    cluster["ram_utilisation"] = np.where(cluster["max_ram"] > 0, cluster["ram_used"] / cluster["max_ram"], 0.0)
    return cluster


def summarise_utilisation(nodes_df):
    cluster = cluster_usage(nodes_df)
    per_node = nodes_df.groupby("node_name")["ram_utilisation"].mean().sort_values(ascending=False)
    return {
        'average_utilisation': float(cluster["ram_utilisation"].mean()) if len(cluster) else 0.0,
        'peak_utilisation': float(cluster["ram_utilisation"].max()) if len(cluster) else 0.0,
        'peak_processes': int(cluster["active_processes"].max()) if len(cluster) else 0,
        'per_node': per_node.to_dict(),
    }


def target_history(events_df):
    """Target security and money after each operation finished."""
    finished = events_df[(events_df["source"] == "network") & (events_df["action"] == "finish")]
    return finished[["time", "kind", "target", "security", "money"]].sort_values("time").reset_index(drop=True)


def launches_per_kind(events_df):
    launches = events_df[(events_df["source"] == "batcher") & (events_df["action"] == "launch")]
    return launches.groupby("kind")["threads"].sum().to_dict()


def plot_results(events_df, nodes_df, output_file=None, show=True):
    cluster = cluster_usage(nodes_df)
    history = target_history(events_df)
    seconds = cluster["time"] / 1000

    fig, axes = plt.subplots(2, 2, figsize=(14, 10))

    # Plot 1: RAM usage vs capacity
    ax1 = axes[0, 0]
    ax1.plot(seconds, cluster["ram_used"], label="RAM in use (GB)", linewidth=1.5)
    ax1.plot(seconds, cluster["max_ram"], "--", label="Total RAM (GB)", linewidth=1.0, alpha=0.7)
    ax1.set_xlabel("Time (s)")
    ax1.set_ylabel("RAM (GB)")
    ax1.set_title("Worker RAM usage over time")
    ax1.grid(True, alpha=0.3)
    ax1.legend(loc="upper left")

    # Plot 2: utilisation percentage
    axes[0, 1].plot(seconds, cluster["ram_utilisation"] * 100, linewidth=1.0)
    axes[0, 1].set_xlabel("Time (s)")
    axes[0, 1].set_ylabel("Utilisation (%)")
    axes[0, 1].set_ylim(0, 105)
    axes[0, 1].set_title("Worker RAM utilisation over time")
    axes[0, 1].grid(True, alpha=0.3)

    # Plot 3: target money
    axes[1, 0].plot(history["time"] / 1000, history["money"], linewidth=1.5)
    axes[1, 0].set_xlabel("Time (s)")
    axes[1, 0].set_ylabel("Money ($)")
    axes[1, 0].set_title("Target money after each operation")
    axes[1, 0].grid(True, alpha=0.3)

    # Plot 4: target security
    axes[1, 1].step(history["time"] / 1000, history["security"], where="post", linewidth=1.0)
    axes[1, 1].set_xlabel("Time (s)")
    axes[1, 1].set_ylabel("Security")
    axes[1, 1].set_title("Target security after each operation")
    axes[1, 1].grid(True, alpha=0.3)

    plt.tight_layout()
    if output_file:
        fig.savefig(output_file)
    if show:
        plt.show()
    return fig


def plot_worker_heatmap(nodes_df):
    """Per worker RAM utilisation over time, one row per worker."""
    pivot = (
        nodes_df
        .pivot_table(index="time", columns="node_name", values="ram_utilisation", aggfunc="mean")
        .sort_index()
    )

    fig = px.imshow(
        pivot.T.values * 100.0,
        x=pivot.index / 1000,
        y=pivot.columns,
        labels=dict(x="Time (s)", y="Worker", color="RAM utilisation (%)"),
        aspect="auto",
        origin="lower",
        zmin=0,
        zmax=100,
        color_continuous_scale="Viridis",
    )
    fig.update_layout(
        title="Per worker RAM utilisation over time",
        height=max(400, 25 * len(pivot.columns)),
    )
    return fig


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    config = load_config(argv[0] if argv else "config.txt")
    output_path = Path(config.get('output_directory', 'output'))
    events_df, nodes_df = load_results(
        output_path / config.get('output_events', 'batcher_log_events.parquet'),
        output_path / config.get('output_nodes', 'batcher_log_nodes.parquet'),
    )

    summary = summarise_utilisation(nodes_df)
    print("\n" + "=" * 60)
    print("AVERAGE RAM UTILISATION")
    print("=" * 60)
    print(f"Average utilisation: {summary['average_utilisation'] * 100:.2f}%")
    print(f"Peak utilisation:    {summary['peak_utilisation'] * 100:.2f}%")
    print(f"Peak processes:      {summary['peak_processes']:,}")
    for kind, threads in launches_per_kind(events_df).items():
        print(f"{kind} threads launched: {threads:,.0f}")
    print("=" * 60 + "\n")

    plot_results(events_df, nodes_df)
    plot_worker_heatmap(nodes_df).show()
    return 0


if __name__ == "__main__":
    sys.exit(main())
