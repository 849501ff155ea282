"""
Hacking formulas used to plan batches.

These mirror the game's own hack/grow/weaken formulas closely enough to plan against: how long each operation
takes, how much security it adds or removes, and how many threads it takes to reach a goal.
"""
import math

from common.models import OperationKind


class Actor:
    """The player's capability, as far as the formulas care."""

    def __init__(self, hacking_skill, hack_money_mult=1.0, hack_speed_mult=1.0, grow_mult=1.0):
        self.hacking_skill = hacking_skill
        self.hack_money_mult = hack_money_mult
        self.hack_speed_mult = hack_speed_mult
        self.grow_mult = grow_mult


class HackingFormulas:
    HACK_SECURITY_PER_THREAD = 0.002
    GROW_SECURITY_PER_THREAD = 0.004
    WEAKEN_PER_THREAD = 0.05

    BASE_GROWTH_RATE = 1.03
    MAX_GROWTH_RATE = 1.0035
    # Growth is computed as if the target held at least this much, so an empty server doesn't need infinite threads
    MIN_MONEY_FOR_GROWTH = 10

    HACK_BALANCE_FACTOR = 240
    GROW_TIME_MULT = 3.2
    WEAKEN_TIME_MULT = 4.0

    @staticmethod
    def core_bonus(cores):
        return 1 + (cores - 1) / 16

    # Durations, in ms

    def hack_time(self, state, actor):
        difficulty_mult = state.required_skill * state.security
        skill_factor = (2.5 * difficulty_mult + 500) / (actor.hacking_skill + 50)
        return 5 * skill_factor / actor.hack_speed_mult * 1000

    def grow_time(self, state, actor):
        return self.hack_time(state, actor) * self.GROW_TIME_MULT

    def weaken_time(self, state, actor):
        return self.hack_time(state, actor) * self.WEAKEN_TIME_MULT

    def duration(self, kind, state, actor):
        if kind is OperationKind.HACK:
            return self.hack_time(state, actor)
        elif kind is OperationKind.GROW:
            return self.grow_time(state, actor)
        elif kind is OperationKind.WEAKEN:
            return self.weaken_time(state, actor)
        raise ValueError(f"Unknown operation kind: {kind}")

    # Effects

    def hack_percent(self, state, actor):
        """Fraction of the target's current money a single hack thread takes."""
        difficulty_mult = (100 - state.security) / 100
        skill_mult = (actor.hacking_skill - (state.required_skill - 1)) / actor.hacking_skill
        percent = difficulty_mult * skill_mult * actor.hack_money_mult / self.HACK_BALANCE_FACTOR
        return min(1.0, max(0.0, percent))

    def growth_rate(self, state):
        if state.security <= 0:
            return self.MAX_GROWTH_RATE
        return min(self.MAX_GROWTH_RATE, 1 + (self.BASE_GROWTH_RATE - 1) / state.security)

    def grow_multiplier(self, state, threads, actor, cores=1):
        """Multiplier applied to (money + threads) by `threads` grow threads."""
        cycles = max(threads, 0) * (state.growth / 100) * self.core_bonus(cores) * actor.grow_mult
        return self.growth_rate(state) ** cycles

    def grow_threads(self, state, multiplier, actor, cores=1):
        """Fractional number of grow threads needed to multiply the target's money by `multiplier`."""
        if multiplier <= 1:
            return 0
        per_thread = math.log(self.growth_rate(state)) * (state.growth / 100) * self.core_bonus(cores) * actor.grow_mult
        if per_thread <= 0:
            raise ValueError(f"{state.hostname} cannot be grown (growth={state.growth})")
        return math.log(multiplier) / per_thread

    def weaken_amount(self, threads, cores=1):
        return self.WEAKEN_PER_THREAD * threads * self.core_bonus(cores)

    def security_delta(self, kind, threads, cores=1):
        if kind is OperationKind.HACK:
            return self.HACK_SECURITY_PER_THREAD * threads
        elif kind is OperationKind.GROW:
            return self.GROW_SECURITY_PER_THREAD * threads
        elif kind is OperationKind.WEAKEN:
            return -self.weaken_amount(threads, cores)
        raise ValueError(f"Unknown operation kind: {kind}")

    # Thread counts

    def thread_count(self, kind, state, actor, cores=1, hack_fraction=0.99):
        if kind is OperationKind.HACK:
            percent = self.hack_percent(state, actor)
            if state.money <= 0 or percent <= 0:
                return 0
            return max(0, round(hack_fraction / percent))

        elif kind is OperationKind.GROW:
            multiplier = state.max_money / max(state.money, self.MIN_MONEY_FOR_GROWTH)
            return math.ceil(max(1, self.grow_threads(state, multiplier, actor, cores)))

        elif kind is OperationKind.WEAKEN:
            distance = state.security - state.min_security
            if distance <= 0:
                return 0
            # Round first so 40 / 0.05 stays 800 rather than 800.0000000001 -> 801
            return math.ceil(round(distance / self.weaken_amount(1, cores), 9))

        raise ValueError(f"Unknown operation kind: {kind}")
