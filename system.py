"""
CHIP-8 Host System
===================
Wires one ``Chip8`` engine to a host cadence:

  - host key state is copied into the engine before every step
  - ``cycles_per_frame`` instructions run per 60 Hz frame
  - the timers tick exactly once per frame
  - redraw / beep signals are drained into listeners and cleared

Frames are counted, not timed; wall-clock pacing belongs to whoever
calls ``run_frame()`` (see display.py).
"""

from __future__ import annotations
from typing import Callable, Optional

from chip8 import (
    Chip8, Chip8Error, NUM_KEYS, VARIANT_SCHIP, MEM_SIZE, GFX_STRIDE,
)

TIMER_HZ = 60
DEFAULT_CYCLES_PER_FRAME = 10   # 600 instructions/s


class Chip8System:
    """One engine plus the host-side loop that drives it."""

    def __init__(self, variant: str = VARIANT_SCHIP,
                 cycles_per_frame: int = DEFAULT_CYCLES_PER_FRAME,
                 rand: Optional[Callable[[], int]] = None,
                 strict: bool = False):
        if cycles_per_frame < 1:
            raise ValueError("cycles_per_frame must be at least 1")
        self.cpu = Chip8(variant=variant, rand=rand, strict=strict)
        self.cycles_per_frame = cycles_per_frame

        # Host-side key state; the engine copy is overwritten each step
        self.keys = bytearray(NUM_KEYS)

        self.frame_count: int = 0
        self.step_count: int = 0
        self.beep_count: int = 0
        self.rom_size: int = 0
        self._loaded = False

        # Listeners
        self.on_frame: Optional[Callable[["Chip8System"], None]] = None
        self.on_beep: Optional[Callable[[], None]] = None

    # -----------------------------------------------------------------
    #  Loading
    # -----------------------------------------------------------------

    def load_rom(self, data: bytes | bytearray):
        """Reset the engine and load *data* at 0x200.

        Raises ``RomTooLargeError``; the system then refuses to run.
        """
        self._loaded = False
        self.cpu.initialize(data)
        self.release_all()
        self.rom_size = len(data)
        self.frame_count = 0
        self.step_count = 0
        self.beep_count = 0
        self._loaded = True

    def load_rom_file(self, path: str):
        with open(path, "rb") as f:
            data = f.read()
        self.load_rom(data)

    @property
    def loaded(self) -> bool:
        return self._loaded

    # -----------------------------------------------------------------
    #  Input
    # -----------------------------------------------------------------

    def set_key(self, key: int, pressed: bool):
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"key index out of range: {key}")
        self.keys[key] = 1 if pressed else 0

    def release_all(self):
        self.keys[:] = bytes(NUM_KEYS)

    # -----------------------------------------------------------------
    #  Execution
    # -----------------------------------------------------------------

    def _require_loaded(self):
        if not self._loaded:
            raise Chip8Error("no ROM loaded")

    def step(self):
        """One engine step with the current host key state."""
        self._require_loaded()
        self.cpu.keys[:] = self.keys
        self.cpu.step()
        self.step_count += 1

    def run_frame(self) -> bool:
        """Run one 60 Hz frame.  Returns True if the display changed."""
        self._require_loaded()
        for _ in range(self.cycles_per_frame):
            self.step()
        return self.end_frame()

    def end_frame(self) -> bool:
        """Tick the timers once and drain the redraw / beep signals."""
        self.cpu.update_timers()
        self.frame_count += 1

        if self.cpu.should_beep:
            self.cpu.should_beep = False
            self.beep_count += 1
            if self.on_beep:
                self.on_beep()

        redraw = self.cpu.draw_flag
        if redraw:
            self.cpu.draw_flag = False
            if self.on_frame:
                self.on_frame(self)
        return redraw

    def run(self, frames: int) -> int:
        """Run *frames* frames. Returns how many redraws occurred."""
        redraws = 0
        for _ in range(frames):
            if self.run_frame():
                redraws += 1
        return redraws

    # -----------------------------------------------------------------
    #  Convenience
    # -----------------------------------------------------------------

    @property
    def waiting_for_key(self) -> bool:
        return self.cpu.waiting_for_key

    def frame_bytes(self) -> bytes:
        """Active rectangle, row-major, one byte per pixel."""
        return b"".join(self.cpu.frame_rows())

    def dump_state(self) -> str:
        cpu = self.cpu
        lines = [
            "=== Registers ===",
            cpu.dump_regs(),
            "",
            "=== System ===",
            f"  Variant: {cpu.variant}  Strict: {cpu.strict}",
            f"  ROM: {self.rom_size} bytes  "
            f"(free {MEM_SIZE - 0x200 - self.rom_size})",
            f"  Display: {cpu.width}x{cpu.height} (stride {GFX_STRIDE})",
            f"  Frames: {self.frame_count}  Steps: {self.step_count}  "
            f"Beeps: {self.beep_count}",
            f"  Keys: {''.join('1' if k else '.' for k in self.keys)}",
        ]
        return "\n".join(lines)
