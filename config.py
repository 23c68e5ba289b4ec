"""
Simulation constants.

Times are in seconds. The round period only paces the scheduler; results do
not depend on it.
"""

ROUND_PERIOD = 0.02        # 20 ms per round
IDLE_TIMEOUT = 5.0         # max wait for a node to drain its inbox within a round
MAX_ROUNDS = 10_000        # safety stop for runs that never quiesce

DEFAULT_LOG_FILE = "log.txt"
