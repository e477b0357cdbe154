"""Default layout and timing constants for the client launcher."""

# Window layout (logical points)
WINDOW_WIDTH = 1000
WINDOW_HEIGHT = 600
GAP = 20
MENUBAR_HEIGHT = 25   # macOS menu bar at top of screen
TITLEBAR_HEIGHT = 30  # Window title bar height
COLUMNS = 2

# Scale factor assumed for high-density displays when only pixels are known
ASSUMED_SCALE_FACTOR = 2.0

# Timing heuristics (seconds)
LAUNCH_STAGGER = 0.0           # delay between consecutive spawns
ASSUMED_PROFILE_STAGGER = 0.5  # stagger used by the "assumed" launch profile
SETTLE_DELAY = 1.0             # wait after the last spawn before raising windows
POLL_INTERVAL = 0.2            # how often children are polled while waiting
MIN_POLL_INTERVAL = 0.01       # lower bound applied to POLL_INTERVAL overrides
TERMINATE_TIMEOUT = 5.0        # grace period before terminate escalates to kill
RAISE_TIMEOUT = 10.0           # max runtime of the window-raise command

# Client program
CLIENT_COMMAND = ["cargo", "run", "--bin", "client", "--"]
CLIENT_PROCESS_NAME = "client"
LAG_MS = 100
DEFAULT_INSTANCE_COUNT = 2
