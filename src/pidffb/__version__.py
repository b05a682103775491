"""pidffb version information."""

__version__ = "0.3.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - Table-driven report codec, effect pool, constant force sessions
# 0.2.0 - Periodic, ramp and condition effects, PID State polling, pyusb backend
# 0.3.0 - Force shaping streams, config file with per-device overrides
