"""
MicroSim: Machine Configuration

Edit these values to change the simulated machine. Every other module
imports its constants from here, so the memory map, stack window and
port assignments stay in one place.

Memory map (256 bytes):
  0x00–0xBF  Program + data + stack (cleared on every program load)
  0x80–0xBF  Stack window (grows downward from 0xBF)
  0xC0–0xFF  Display buffer, 4 rows × 16 columns of ASCII
"""

# ──────────────────────────────────────────────
# Memory
# ──────────────────────────────────────────────
MEMORY_SIZE = 256
PROGRAM_LIMIT = 0xC0          # max machine code length, first display address
DISPLAY_START = 0xC0
DISPLAY_END = 0xFF            # inclusive
DISPLAY_FILL = 0x20           # power-on display contents (space)
DISPLAY_ROWS = 4
DISPLAY_COLS = 16

# ──────────────────────────────────────────────
# Stack
# ──────────────────────────────────────────────
STACK_TOP = 0xBF              # SP after reset
STACK_LIMIT = 0x80            # lowest legal SP

# ──────────────────────────────────────────────
# I/O ports
# ──────────────────────────────────────────────
PORT_KEYBOARD = 0x01          # IN, blocks until a key is pressed
PORT_LIGHTS = 0x02            # OUT, traffic light latch
PORT_HEATER = 0x03            # IN status / OUT burner control

# ──────────────────────────────────────────────
# Devices
# ──────────────────────────────────────────────
LIGHTS_POWER_ON = 0b11111100  # every lamp lit until the program writes port 2

HEATER_TEMP_COLD = 130        # thermometer scale: larger value = colder
HEATER_TEMP_HOT = 15
HEATER_THRESHOLD_15 = 105     # scale position of the 15° mark
HEATER_THRESHOLD_20 = 81      # scale position of the 20° mark
HEATER_HYSTERESIS = 3
HEATER_TICK_SECONDS = 0.2

# ──────────────────────────────────────────────
# Execution driver
# ──────────────────────────────────────────────
DEFAULT_MAX_STEPS = 100_000
DEFAULT_STEP_DELAY = 0.0      # seconds slept between instructions
