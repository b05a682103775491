"""Shared constants for pidffb.

Defaults come from the PID usage tables (USB HID PID 1.0) and from the
MOZA R9 wheel base the protocol flow was first exercised against.
"""

# Default device: MOZA R9 wheel base
DEFAULT_VID = 0x346E
DEFAULT_PID = 0x0002

# HID usage page of the Physical Interface Device class
PID_USAGE_PAGE = 0x0F

# Effect block indices the device hands out are 1..MAX_EFFECT_BLOCKS.
# PID Pool max_effects limits simultaneous playback, not this range.
MAX_EFFECT_BLOCKS = 10
UNALLOCATED_HANDLE = 0

# Full-scale device gain (0xFF -> 100 %)
FULL_GAIN = 0xFF

# Raw value meaning "infinite" for Set Effect duration
INFINITE_DURATION_RAW = 0xFFFF

# Raw value meaning "no trigger button" for Set Effect trigger button
NULL_TRIGGER_BUTTON_RAW = 0xFF

# Loop count 0xFF is "repeat until stopped" per the PID usage tables
LOOP_INFINITE = 0xFF

# Buffer size requested for GET_REPORT (feature) transfers.  Devices may
# declare longer reports than the fields we decode; asking for less than
# the declared size fails on some platforms.
FEATURE_REPORT_BUFFER = 64

# Interrupt-in report size for PID State reads
INPUT_REPORT_BUFFER = 64

# Default I/O timeout (ms) for interrupt reads / control transfers
DEFAULT_TIMEOUT_MS = 100

# Bounded read settings for feature-report gets and interrupt-in reads
READ_MAX_ATTEMPTS = 5
READ_RETRY_DELAY_S = 0.010

# Cadence of continuous force shaping (SetConstantForce every 10 ms)
STREAM_INTERVAL_S = 0.010

# USB interface / HID class request values (HID 1.11 section 7.2)
USB_INTERFACE = 0
HID_GET_REPORT = 0x01
HID_SET_REPORT = 0x09
HID_REPORT_TYPE_INPUT = 0x01
HID_REPORT_TYPE_OUTPUT = 0x02
HID_REPORT_TYPE_FEATURE = 0x03
