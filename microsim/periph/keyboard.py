"""
MicroSim: Keyboard (port 0x01)

A one-key buffer. press() offers a key code; if a key is already waiting
the new one is dropped, like a full one-slot hardware latch. IN 0x01
blocks in read() until a key is available.

Blocking has no timeout here. The driver cancels a pending read with
abort(), which wakes the reader with InputAborted; the CPU treats that
as an abandoned instruction, not a fault.
"""

import logging
import queue

from ..config import PORT_KEYBOARD

log = logging.getLogger(__name__)

ENTER = 0x0D
BACKSPACE = 0x08
TAB = 0x09
ESCAPE = 0x1B

NAMED_KEYS = {
    'enter': ENTER,
    'backspace': BACKSPACE,
    'tab': TAB,
    'escape': ESCAPE,
}

_ABORT = object()


class InputAborted(Exception):
    """A blocking keyboard read was cancelled by the driver."""


def is_valid_key(code: int) -> bool:
    """Printable ASCII plus Enter, Backspace, Tab and Escape."""
    return 32 <= code <= 126 or code in (ENTER, BACKSPACE, TAB, ESCAPE)


class Keyboard:
    """Keyboard model backed by a one-slot queue."""

    def __init__(self):
        self._queue = queue.Queue(maxsize=1)
        self._waiting = False
        self.port = PORT_KEYBOARD

    def register(self, bus):
        bus.register_port(self.port, read_fn=self._read_port)

    def _read_port(self, port: int) -> int:
        return self.read()

    def press(self, key) -> bool:
        """Offer a key (int code, one character, or a NAMED_KEYS name).

        Returns False if the key was dropped because one is already
        pending. Raises ValueError for codes the keyboard cannot produce.
        """
        if isinstance(key, str):
            if key.lower() in NAMED_KEYS:
                code = NAMED_KEYS[key.lower()]
            elif len(key) == 1:
                code = ord(key)
            else:
                raise ValueError(f"Unknown key: {key!r}")
        else:
            code = int(key)
        if not is_valid_key(code):
            raise ValueError(f"Key code not supported: {code:#04x}")
        try:
            self._queue.put_nowait(code)
        except queue.Full:
            log.debug("Key %#04x dropped, buffer full", code)
            return False
        return True

    def read(self) -> int:
        """Block until a key is pressed and return its code."""
        self._waiting = True
        try:
            item = self._queue.get()
        finally:
            self._waiting = False
        if item is _ABORT:
            raise InputAborted("Keyboard read aborted")
        return item

    def abort(self):
        """Wake a blocked read() with InputAborted."""
        while True:
            self.clear()
            try:
                self._queue.put_nowait(_ABORT)
                return
            except queue.Full:
                # a key was pressed between clear() and put
                continue

    def clear(self):
        """Drop any pending key (or pending abort)."""
        try:
            self._queue.get_nowait()
        except queue.Empty:
            pass

    @property
    def waiting(self) -> bool:
        """True while read() is blocked for a key."""
        return self._waiting

    @property
    def pending(self) -> bool:
        return not self._queue.empty()

    def reset(self):
        self.clear()
