def format_time(time):
    """Format a duration in ms as e.g. 1h2m3s 45ms."""
    ms = time

    hours = int(ms // (3600 * 1000))
    ms = ms % (3600 * 1000)
    minutes = int(ms // (60 * 1000))
    ms = ms % (60 * 1000)
    seconds = int(ms // 1000)
    ms = round(ms % 1000)

    return ((f"{hours}h" if hours else "")
            + (f"{minutes}m" if minutes else "")
            + (f"{seconds}s " if seconds else "")
            + f"{ms}ms")


def format_num(num):
    if abs(num) < 0.01:
        return str(num)
    return f"{num:.2f}"


def format_money(money):
    return f"{money:,.2f}"
