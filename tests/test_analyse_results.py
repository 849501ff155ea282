import pandas as pd
import pytest

from analysis.analyse_results import (cluster_usage, launches_per_kind, load_results, plot_results,
                                      plot_worker_heatmap, summarise_utilisation, target_history)


@pytest.fixture
def nodes_df():
    return pd.DataFrame([
        {'time': 0, 'node_name': "home", 'ram_used': 0, 'max_ram': 100, 'ram_utilisation': 0.0, 'active_processes': 0},
        {'time': 0, 'node_name': "pserv-0", 'ram_used': 0, 'max_ram': 300, 'ram_utilisation': 0.0,
         'active_processes': 0},
        {'time': 1000, 'node_name': "home", 'ram_used': 50, 'max_ram': 100, 'ram_utilisation': 0.5,
         'active_processes': 3},
        {'time': 1000, 'node_name': "pserv-0", 'ram_used': 150, 'max_ram': 300, 'ram_utilisation': 0.5,
         'active_processes': 3},
    ])


@pytest.fixture
def events_df():
    return pd.DataFrame([
        {'time': 0, 'action': "launch", 'kind': "hack", 'target': "joesguns", 'threads': 10, 'source': "batcher"},
        {'time': 0, 'action': "launch", 'kind': "weaken", 'target': "joesguns", 'threads': 2, 'source': "batcher"},
        {'time': 0, 'action': "launch", 'kind': "weaken", 'target': "joesguns", 'threads': 3, 'source': "batcher"},
        {'time': 2000, 'action': "finish", 'kind': "weaken", 'target': "joesguns", 'threads': 2, 'source': "network",
         'security': 5.0, 'money': 900.0},
        {'time': 1500, 'action': "finish", 'kind': "hack", 'target': "joesguns", 'threads': 10, 'source': "network",
         'security': 5.02, 'money': 900.0},
    ])


class TestSummaries:
    def test_cluster_usage(self, nodes_df):
        cluster = cluster_usage(nodes_df)
        assert cluster['time'].tolist() == [0, 1000]
        assert cluster['ram_used'].tolist() == [0, 200]
        assert cluster['ram_utilisation'].tolist() == pytest.approx([0.0, 0.5])

    def test_empty_cluster_has_zero_utilisation(self):
        nodes = pd.DataFrame([{'time': 0, 'node_name': "a", 'ram_used': 0, 'max_ram': 0, 'ram_utilisation': 0.0,
                               'active_processes': 0}])
        assert cluster_usage(nodes)['ram_utilisation'].tolist() == [0.0]

    def test_summarise_utilisation(self, nodes_df):
        summary = summarise_utilisation(nodes_df)
        assert summary['average_utilisation'] == pytest.approx(0.25)
        assert summary['peak_utilisation'] == pytest.approx(0.5)
        assert summary['peak_processes'] == 3
        assert summary['per_node'] == pytest.approx({"home": 0.25, "pserv-0": 0.25})

    def test_target_history_in_time_order(self, events_df):
        history = target_history(events_df)
        assert history['time'].tolist() == [1500, 2000]
        assert history['kind'].tolist() == ["hack", "weaken"]

    def test_launches_per_kind(self, events_df):
        assert launches_per_kind(events_df) == {"hack": 10, "weaken": 5}


class TestResults:
    def test_missing_results(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_results(tmp_path / "events.parquet", tmp_path / "nodes.parquet")

    def test_load_results(self, tmp_path, events_df, nodes_df):
        events_df.to_parquet(tmp_path / "events.parquet")
        nodes_df.to_parquet(tmp_path / "nodes.parquet")
        events, nodes = load_results(tmp_path / "events.parquet", tmp_path / "nodes.parquet")
        assert len(events) == 5
        assert len(nodes) == 4

    def test_plot_results_saved(self, tmp_path, events_df, nodes_df):
        output = tmp_path / "results.png"
        fig = plot_results(events_df, nodes_df, output_file=output, show=False)
        assert output.exists()
        assert len(fig.axes) == 4

    def test_worker_heatmap(self, nodes_df):
        fig = plot_worker_heatmap(nodes_df)
        assert fig.layout.title.text == "Per worker RAM utilisation over time"
