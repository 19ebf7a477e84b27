"""
CHIP-8 Framebuffer Display
===========================
Presents the engine's display plane in a pygame window and feeds the
host keyboard back into the system.  The window loop is the host loop:
every tick it runs one 60 Hz frame, repaints when the redraw signal
fired, and rings the terminal bell when the sound timer expires.

Keyboard layout (host -> CHIP-8 key):

    1 2 3 4        1 2 3 C
    Q W E R   ->   4 5 6 D
    A S D F        7 8 9 E
    Z X C V        A 0 B F

Usage (programmatic):
    from display import FramebufferDisplay
    disp = FramebufferDisplay(sys_emu, scale=10)
    disp.run()          # blocks until Esc / window close

Usage (CLI):
    python cli.py game.ch8
"""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Optional

from chip8 import GFX_STRIDE, GFX_HEIGHT

if TYPE_CHECKING:
    import numpy as np
    from system import Chip8System

FG_COLOR = (220, 230, 255)
BG_COLOR = (16, 16, 24)

# Host key characters in CHIP-8 key order 0x0..0xF
KEY_LAYOUT = "x123qweasdzc4rfv"


def frame_to_rgb(gfx: bytes | bytearray, width: int, height: int,
                 fg: tuple[int, int, int] = FG_COLOR,
                 bg: tuple[int, int, int] = BG_COLOR) -> np.ndarray:
    """Active rectangle of a stride-128 plane as a (width, height, 3) array.

    The axis order matches ``pygame.surfarray`` (x first).
    """
    import numpy as np

    plane = np.frombuffer(bytes(gfx), dtype=np.uint8).reshape(GFX_HEIGHT, GFX_STRIDE)
    active = plane[:height, :width].T
    lut = np.array([bg, fg], dtype=np.uint8)
    return lut[active & 1]


# ── Windowed display ─────────────────────────────────────────────────


class FramebufferDisplay:
    """pygame window that drives a ``Chip8System`` at 60 frames/s."""

    def __init__(self, sys_emu: "Chip8System", scale: int = 10,
                 title: str = "CHIP-8", fps: int = 60,
                 bell: bool = True):
        self.sys = sys_emu
        self.scale = max(1, scale)
        self.title = title
        self.fps = fps
        self.bell = bell
        self._stop_event = threading.Event()
        self._keymap: dict[int, int] = {}

    # -- public API -------------------------------------------------------

    def run(self, max_frames: Optional[int] = None):
        """Open the window and run until closed (or *max_frames* elapse)."""
        import pygame

        self._stop_event.clear()
        pygame.init()
        pygame.display.set_caption(self.title)
        self._keymap = {pygame.key.key_code(ch): k
                        for k, ch in enumerate(KEY_LAYOUT)}

        win_w = GFX_STRIDE // 2 * self.scale
        win_h = GFX_HEIGHT // 2 * self.scale
        screen = pygame.display.set_mode((win_w, win_h))
        clock = pygame.time.Clock()
        surface = pygame.Surface((self.sys.cpu.width, self.sys.cpu.height))

        old_beep = self.sys.on_beep
        self.sys.on_beep = self._ring
        frames = 0
        try:
            self._paint(pygame, screen, surface)
            while not self._stop_event.is_set():
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self._stop_event.set()
                    elif event.type in (pygame.KEYDOWN, pygame.KEYUP):
                        if event.key == pygame.K_ESCAPE:
                            self._stop_event.set()
                        elif event.key in self._keymap:
                            self.sys.set_key(self._keymap[event.key],
                                             event.type == pygame.KEYDOWN)
                if self._stop_event.is_set():
                    break

                if self.sys.run_frame():
                    cpu = self.sys.cpu
                    if surface.get_size() != (cpu.width, cpu.height):
                        surface = pygame.Surface((cpu.width, cpu.height))
                    self._paint(pygame, screen, surface)

                frames += 1
                if max_frames is not None and frames >= max_frames:
                    break
                clock.tick(self.fps)
        except Exception as e:
            print(f"\n[display] error: {e}", file=sys.stderr)
            raise
        finally:
            self.sys.on_beep = old_beep
            pygame.quit()

    def stop(self):
        """Ask the window loop to exit after the current frame."""
        self._stop_event.set()

    # -- internals --------------------------------------------------------

    def _ring(self):
        if self.bell:
            sys.stdout.write("\a")
            sys.stdout.flush()

    def _paint(self, pygame, screen, surface):
        cpu = self.sys.cpu
        pixels = frame_to_rgb(cpu.gfx, cpu.width, cpu.height)
        pygame.surfarray.blit_array(surface, pixels)
        scaled = pygame.transform.scale(surface, screen.get_size())
        screen.blit(scaled, (0, 0))
        pygame.display.flip()


# ── Headless display ─────────────────────────────────────────────────


class HeadlessDisplay:
    """Window-less display for tests and scripted runs; records frames."""

    def __init__(self, sys_emu: "Chip8System", keep: int = 0):
        self.sys = sys_emu
        self.keep = keep            # 0 = keep every snapshot
        self.snapshots: list[bytes] = []
        self._old_on_frame = None

    def start(self):
        """Record a snapshot every time the system reports a redraw."""
        self._old_on_frame = self.sys.on_frame
        self.sys.on_frame = lambda _sys: self.snapshot()

    def stop(self):
        self.sys.on_frame = self._old_on_frame
        self._old_on_frame = None

    def snapshot(self) -> bytes:
        """Capture the active rectangle as raw bytes (one per pixel)."""
        data = self.sys.frame_bytes()
        self.snapshots.append(data)
        if self.keep and len(self.snapshots) > self.keep:
            del self.snapshots[0]
        return data

    def render_text(self, on: str = "#", off: str = ".") -> str:
        """Current frame as ASCII art, one text line per pixel row."""
        return "\n".join(
            "".join(on if px else off for px in row)
            for row in self.sys.cpu.frame_rows()
        )
