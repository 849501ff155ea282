import pytest

from data_handling.network_loader import load_network, pick_target, rank_targets, read_network_map

NETWORK_MAP = """hostname,max_ram,cores,has_admin_rights,security,min_security,money,max_money,growth,required_skill
home,64,4,true,,,,,,
n00dles,4,,true,1,1,70000,1750000,3000,1
joesguns,16,1,true,15,5,20000000,62500000,20,10
CSEC,8,1,false,20,10,0,0,1,54
ecorp,0,1,yes,99,33,1000,1000000000000,99,1200
"""


@pytest.fixture
def network_file(tmp_path):
    path = tmp_path / "network.csv"
    path.write_text(NETWORK_MAP)
    return path


class TestReadNetworkMap:
    def test_defaults_filled_in(self, network_file):
        df = read_network_map(network_file)
        assert len(df) == 5
        assert df.loc[df['hostname'] == "n00dles", 'cores'].item() == 1
        assert df['has_admin_rights'].tolist() == [True, True, True, False, True]

    def test_minimal_columns(self, tmp_path):
        path = tmp_path / "workers.csv"
        path.write_text("hostname,max_ram\nhome,32\npserv-0,128\n")
        df = read_network_map(path)
        assert df['cores'].tolist() == [1, 1]
        assert df['has_admin_rights'].all()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_network_map(tmp_path / "missing.csv")

    def test_missing_column(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("hostname,cores\nhome,4\n")
        with pytest.raises(ValueError, match="max_ram"):
            read_network_map(path)

    def test_duplicate_hostname(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("hostname,max_ram\nhome,32\nhome,64\n")
        with pytest.raises(ValueError, match="home"):
            read_network_map(path)


class TestLoadNetwork:
    def test_servers_built(self, network_file):
        servers = {server.hostname: server for server in load_network(network_file)}

        assert servers["home"].state is None
        assert servers["home"].cores == 4
        assert servers["CSEC"].has_admin_rights is False

        joesguns = servers["joesguns"].state
        assert joesguns.security == 15
        assert joesguns.min_security == 5
        assert joesguns.max_money == 62_500_000
        assert joesguns.required_skill == 10


class TestTargetRanking:
    def test_rank_order(self, network_file):
        ranks = rank_targets(load_network(network_file), hacking_skill=100)
        assert ranks['hostname'].tolist()[:2] == ["joesguns", "n00dles"]
        zero = set(ranks.loc[ranks['hack_rank'] == 0, 'hostname'])
        assert zero == {"home", "CSEC", "ecorp"}

    def test_pick_target(self, network_file):
        assert pick_target(load_network(network_file), hacking_skill=100) == "joesguns"

    def test_low_skill_keeps_easy_targets(self, network_file):
        assert pick_target(load_network(network_file), hacking_skill=5) == "n00dles"

    def test_nothing_to_hack(self, tmp_path):
        path = tmp_path / "workers.csv"
        path.write_text("hostname,max_ram\nhome,32\n")
        with pytest.raises(ValueError):
            pick_target(load_network(path), hacking_skill=100)

    def test_targets_that_cannot_regrow_are_skipped(self, tmp_path):
        path = tmp_path / "network.csv"
        path.write_text("hostname,max_ram,security,min_security,money,max_money,growth,required_skill\n"
                        "barren,8,5,5,1000,1000,0,1\n"
                        "broke,8,5,5,0,0,20,1\n"
                        "n00dles,4,1,1,70000,1750000,3000,1\n")
        ranks = rank_targets(load_network(path), hacking_skill=100)
        assert set(ranks.loc[ranks['hack_rank'] == 0, 'hostname']) == {"barren", "broke"}
        assert pick_target(load_network(path), hacking_skill=100) == "n00dles"
