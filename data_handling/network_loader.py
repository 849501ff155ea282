import pandas as pd
from pathlib import Path

from common.models import TargetState
from network_simulator.network_simulator import Server


REQUIRED_COLUMNS = ['hostname', 'max_ram']
TARGET_COLUMNS = ['security', 'min_security', 'money', 'max_money', 'growth', 'required_skill']


def parse_admin_rights(value):
    if pd.isna(value):
        return False
    return str(value).strip().lower() in ("true", "yes", "1")


def read_network_map(input_file):
    """
    Read a network map CSV into a dataframe, one row per server.

    hostname and max_ram are required. cores defaults to 1 and has_admin_rights to true.
    Rows with an empty money/security column describe servers that are only used as workers.
    """
    input_path = Path(input_file)
    if not input_path.exists():
        raise FileNotFoundError(f"Network map not found: {input_file}")

    df = pd.read_csv(input_path, skipinitialspace=True)
    df.columns = [column.strip() for column in df.columns]

    missing = [column for column in REQUIRED_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"Network map {input_file} is missing column(s): {', '.join(missing)}")

    duplicated = df['hostname'][df['hostname'].duplicated()]
    if len(duplicated) > 0:
        raise ValueError(f"Network map {input_file} lists {', '.join(duplicated)} more than once")

    if 'cores' not in df.columns:
        df['cores'] = 1
    df['cores'] = df['cores'].fillna(1).astype(int)

    if 'has_admin_rights' not in df.columns:
        df['has_admin_rights'] = True
    df['has_admin_rights'] = df['has_admin_rights'].apply(parse_admin_rights)

    for column in TARGET_COLUMNS:
        if column not in df.columns:
            df[column] = pd.NA

    return df


def load_network(input_file):
    """Build simulator servers from a network map CSV."""
    df = read_network_map(input_file)

    servers = []
    for _, row in df.iterrows():
        state = None
        if not any(pd.isna(row[column]) for column in TARGET_COLUMNS):
            state = TargetState(
                hostname=str(row['hostname']),
                security=float(row['security']),
                min_security=float(row['min_security']),
                money=float(row['money']),
                max_money=float(row['max_money']),
                growth=float(row['growth']),
                required_skill=int(row['required_skill']),
            )

        servers.append(Server(
            hostname=str(row['hostname']),
            max_ram=float(row['max_ram']),
            cores=int(row['cores']),
            has_admin_rights=bool(row['has_admin_rights']),
            state=state,
        ))

    print(f"Loaded {len(servers)} servers from {input_file}")
    return servers


def rank_server(server, hacking_skill):
    """0 means don't hack, higher is a better target."""
    state = server.state
    if state is None or not server.has_admin_rights or state.min_security <= 0:
        return 0
    if state.required_skill > hacking_skill:
        return 0
    if state.max_money <= 0 or state.growth <= 0:
        return 0
    if state.security > hacking_skill / 2:
        return 0
    return state.max_money / state.min_security


def rank_targets(servers, hacking_skill):
    ranks = pd.DataFrame([
        {
            'hostname': server.hostname,
            'hack_rank': rank_server(server, hacking_skill),
            'max_money': server.state.max_money if server.state else 0,
            'min_security': server.state.min_security if server.state else None,
        }
        for server in servers
    ], columns=['hostname', 'hack_rank', 'max_money', 'min_security'])
    return ranks.sort_values(['hack_rank', 'max_money'], ascending=False, ignore_index=True)


def pick_target(servers, hacking_skill):
    ranks = rank_targets(servers, hacking_skill)
    ranks = ranks[ranks['hack_rank'] > 0]
    if ranks.empty:
        raise ValueError(f"No server can be hacked at hacking skill {hacking_skill}")
    return ranks.iloc[0]['hostname']
