"""
SUPER-CHIP Virtual Machine
===========================
An instruction-stepped interpreter for the CHIP-8 instruction set and its
SUPER-CHIP extension.

The engine owns memory, the register file, the display plane, the two
timers and the key-wait latch.  It performs no I/O and never blocks:
the host writes ``keys`` before each ``step()``, calls ``update_timers()``
at 60 Hz, and polls ``draw_flag`` / ``should_beep``.

Every instruction is fetched big-endian from memory at PC, PC advances
by 2, and the top nibble selects one of sixteen family handlers.
"""

from __future__ import annotations
import random
from typing import Callable, Optional

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEM_SIZE     = 4096
PROGRAM_BASE = 0x200
MAX_ROM_SIZE = MEM_SIZE - PROGRAM_BASE

NUM_REGS   = 16
STACK_SIZE = 16
NUM_KEYS   = 16
VF         = 0xF    # flag register
RPL_SIZE   = 8      # SUPER-CHIP persistent flag registers

# Display plane: fixed stride, runtime-selectable active rectangle
GFX_STRIDE  = 128
GFX_HEIGHT  = 64
GFX_SIZE    = GFX_STRIDE * GFX_HEIGHT
LORES_W, LORES_H = 64, 32
HIRES_W, HIRES_H = 128, 64

# Font layout (small glyphs first, big glyphs right after)
SMALL_FONT_BASE  = 0x000
SMALL_GLYPH_SIZE = 5
BIG_FONT_BASE    = SMALL_FONT_BASE + 16 * SMALL_GLYPH_SIZE   # 0x050
BIG_GLYPH_SIZE   = 10

# Instruction-set variants
VARIANT_SCHIP = "schip"
VARIANT_CHIP8 = "chip8"
VARIANTS = (VARIANT_SCHIP, VARIANT_CHIP8)

# Diagnostic kinds (strict mode only)
DIAG_UNKNOWN_OP     = "unknown-opcode"
DIAG_PC_OVERRUN     = "pc-overrun"
DIAG_STACK_OVERFLOW = "stack-overflow"
DIAG_STACK_UNDERFLOW = "stack-underflow"
DIAG_BAD_KEY        = "bad-key"
DIAG_SPRITE_OVERRUN = "sprite-overrun"

SMALL_FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

BIG_FONT = bytes([
    0x7C, 0x82, 0x82, 0x82, 0x82, 0x82, 0x82, 0x82, 0x7C, 0x00,  # 0
    0x08, 0x18, 0x38, 0x08, 0x08, 0x08, 0x08, 0x08, 0x3C, 0x00,  # 1
    0x7C, 0x82, 0x02, 0x02, 0x04, 0x18, 0x20, 0x40, 0xFE, 0x00,  # 2
    0x7C, 0x82, 0x02, 0x02, 0x3C, 0x02, 0x02, 0x82, 0x7C, 0x00,  # 3
    0x84, 0x84, 0x84, 0x84, 0xFE, 0x04, 0x04, 0x04, 0x04, 0x00,  # 4
    0xFE, 0x80, 0x80, 0x80, 0xFC, 0x02, 0x02, 0x82, 0x7C, 0x00,  # 5
    0x7C, 0x82, 0x80, 0x80, 0xFC, 0x82, 0x82, 0x82, 0x7C, 0x00,  # 6
    0xFE, 0x02, 0x04, 0x08, 0x10, 0x20, 0x20, 0x20, 0x20, 0x00,  # 7
    0x7C, 0x82, 0x82, 0x82, 0x7C, 0x82, 0x82, 0x82, 0x7C, 0x00,  # 8
    0x7C, 0x82, 0x82, 0x82, 0x7E, 0x02, 0x02, 0x82, 0x7C, 0x00,  # 9
    0x10, 0x28, 0x44, 0x82, 0x82, 0xFE, 0x82, 0x82, 0x82, 0x00,  # A
    0xFC, 0x82, 0x82, 0x82, 0xFC, 0x82, 0x82, 0x82, 0xFC, 0x00,  # B
    0x7C, 0x82, 0x80, 0x80, 0x80, 0x80, 0x80, 0x82, 0x7C, 0x00,  # C
    0xFC, 0x82, 0x82, 0x82, 0x82, 0x82, 0x82, 0x82, 0xFC, 0x00,  # D
    0xFE, 0x80, 0x80, 0x80, 0xF8, 0x80, 0x80, 0x80, 0xFE, 0x00,  # E
    0xFE, 0x80, 0x80, 0x80, 0xF8, 0x80, 0x80, 0x80, 0x80, 0x00,  # F
])

# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def u8(v: int) -> int:
    """Mask to unsigned 8 bits."""
    return v & 0xFF

def u16(v: int) -> int:
    """Mask to unsigned 16 bits."""
    return v & 0xFFFF

def default_rand() -> int:
    """Draw one byte from the process-wide generator."""
    return random.getrandbits(8)

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class Chip8Error(Exception):
    """Base for engine-reported failures."""
    pass

class RomTooLargeError(Chip8Error, ValueError):
    def __init__(self, size: int, limit: int = MAX_ROM_SIZE):
        self.size = size
        self.limit = limit
        super().__init__(f"ROM too large for memory: {size} bytes "
                         f"(limit {limit})")

# ---------------------------------------------------------------------------
#  Engine
# ---------------------------------------------------------------------------

class Chip8:
    """CHIP-8 / SUPER-CHIP engine: instruction-stepped, non-blocking."""

    def __init__(self, variant: str = VARIANT_SCHIP,
                 rand: Optional[Callable[[], int]] = None,
                 strict: bool = False):
        if variant not in VARIANTS:
            raise ValueError(f"unknown variant {variant!r} "
                             f"(expected one of {', '.join(VARIANTS)})")
        self.variant = variant
        self.rand: Callable[[], int] = rand or default_rand
        self.strict = strict

        self.mem = bytearray(MEM_SIZE)

        # Register file
        self.v: bytearray = bytearray(NUM_REGS)
        self.i: int = 0
        self.pc: int = PROGRAM_BASE
        self.stack: list[int] = [0] * STACK_SIZE
        self.sp: int = 0

        # Timers
        self.delay_timer: int = 0
        self.sound_timer: int = 0

        # Display plane
        self.gfx = bytearray(GFX_SIZE)
        self.hires: bool = False
        self.width: int = LORES_W
        self.height: int = LORES_H

        # Host-facing I/O
        self.keys = bytearray(NUM_KEYS)
        self.draw_flag: bool = False
        self.should_beep: bool = False

        # Key-wait latch
        self.waiting_for_key: bool = False
        self.key_register: int = 0

        # SUPER-CHIP RPL flags survive initialize()
        self.rpl = bytearray(RPL_SIZE)

        # Callbacks
        self.on_diagnostic: Optional[Callable[[str, int, int], None]] = None

    @property
    def schip(self) -> bool:
        return self.variant == VARIANT_SCHIP

    @property
    def graphics(self) -> bytearray:
        """The full stride-128 backing plane."""
        return self.gfx

    # -- Lifecycle --

    def initialize(self, rom: bytes | bytearray):
        """Reset all state, reload fonts and copy *rom* to 0x200."""
        if len(rom) > MAX_ROM_SIZE:
            raise RomTooLargeError(len(rom))

        self.pc = PROGRAM_BASE
        self.i = 0
        self.sp = 0
        self.delay_timer = 0
        self.sound_timer = 0
        self.waiting_for_key = False
        self.key_register = 0
        self.draw_flag = False
        self.should_beep = False

        self._set_resolution(False)

        self.stack = [0] * STACK_SIZE
        self.v = bytearray(NUM_REGS)
        self.mem = bytearray(MEM_SIZE)
        self.keys[:] = bytes(NUM_KEYS)

        self.load_bytes(SMALL_FONT_BASE, SMALL_FONT)
        self.load_bytes(BIG_FONT_BASE, BIG_FONT)
        self.load_bytes(PROGRAM_BASE, rom)

    def load_bytes(self, addr: int, data: bytes | bytearray):
        end = addr + len(data)
        if addr < 0 or end > MEM_SIZE:
            raise Chip8Error(f"load of {len(data)} bytes at {addr:#05x} "
                             f"exceeds memory")
        self.mem[addr:end] = data

    # -- Memory access --

    def mem_read8(self, addr: int) -> int:
        return self.mem[addr % MEM_SIZE]

    def mem_write8(self, addr: int, val: int):
        self.mem[addr % MEM_SIZE] = u8(val)

    def read_opcode(self, addr: int) -> int:
        """Big-endian 16-bit word at *addr* (wraps at end of memory)."""
        return (self.mem_read8(addr) << 8) | self.mem_read8(addr + 1)

    # -- Diagnostics --

    def _diag(self, kind: str, opcode: int = 0):
        if self.strict and self.on_diagnostic is not None:
            self.on_diagnostic(kind, self.pc, opcode)

    # =====================================================================
    #  Step
    # =====================================================================

    def step(self):
        """Execute at most one instruction, or resolve a pending key wait."""
        if self.waiting_for_key:
            self._resolve_key_wait()
            return

        if self.pc >= MEM_SIZE - 1:
            self._diag(DIAG_PC_OVERRUN)
            return

        op = (self.mem[self.pc] << 8) | self.mem[self.pc + 1]
        self.pc += 2

        f = (op >> 12) & 0xF
        if   f == 0x0: self._exec_sys(op)
        elif f == 0x1: self.pc = op & 0x0FFF
        elif f == 0x2: self._exec_call(op)
        elif f == 0x3: self._exec_skip_imm(op, equal=True)
        elif f == 0x4: self._exec_skip_imm(op, equal=False)
        elif f == 0x5: self._exec_skip_reg(op, equal=True)
        elif f == 0x6: self.v[(op >> 8) & 0xF] = op & 0xFF
        elif f == 0x7: self._exec_add_imm(op)
        elif f == 0x8: self._exec_alu(op)
        elif f == 0x9: self._exec_skip_reg(op, equal=False)
        elif f == 0xA: self.i = op & 0x0FFF
        elif f == 0xB: self.pc = (op & 0x0FFF) + self.v[0]
        elif f == 0xC: self._exec_rnd(op)
        elif f == 0xD: self._exec_draw(op)
        elif f == 0xE: self._exec_key(op)
        else:          self._exec_misc(op)

    def update_timers(self):
        """Advance both timers by one 60 Hz tick."""
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1
            if self.sound_timer == 0:
                self.should_beep = True

    def _resolve_key_wait(self):
        for k in range(NUM_KEYS):
            if self.keys[k]:
                self.v[self.key_register] = k
                self.waiting_for_key = False
                return

    # =====================================================================
    #  Family executors
    # =====================================================================

    # -- 0x0: SYS / display control --
    def _exec_sys(self, op: int):
        if op == 0x00E0:    # CLS
            self.gfx[:] = bytes(GFX_SIZE)
            self.draw_flag = True
        elif op == 0x00EE:  # RET
            if self.sp == 0:
                self._diag(DIAG_STACK_UNDERFLOW, op)
                return
            self.sp -= 1
            self.pc = self.stack[self.sp]
        elif not self.schip:
            self._diag(DIAG_UNKNOWN_OP, op)
        elif (op & 0xFFF0) == 0x00C0:
            self._scroll_down(op & 0xF)
        elif op == 0x00FB:
            self._scroll_right()
        elif op == 0x00FC:
            self._scroll_left()
        elif op == 0x00FD:  # EXIT: stopping the interpreter is left to the host
            pass
        elif op == 0x00FE:
            self._set_resolution(False)
        elif op == 0x00FF:
            self._set_resolution(True)
        else:
            self._diag(DIAG_UNKNOWN_OP, op)

    # -- 0x2: CALL --
    def _exec_call(self, op: int):
        if self.sp >= STACK_SIZE:
            self._diag(DIAG_STACK_OVERFLOW, op)
        else:
            self.stack[self.sp] = self.pc
            self.sp += 1
        self.pc = op & 0x0FFF

    # -- 0x3 / 0x4: skip on register vs immediate --
    def _exec_skip_imm(self, op: int, equal: bool):
        if (self.v[(op >> 8) & 0xF] == (op & 0xFF)) == equal:
            self.pc += 2

    # -- 0x5 / 0x9: skip on register vs register --
    def _exec_skip_reg(self, op: int, equal: bool):
        if self.schip and (op & 0xF) != 0:
            self._diag(DIAG_UNKNOWN_OP, op)
            return
        if (self.v[(op >> 8) & 0xF] == self.v[(op >> 4) & 0xF]) == equal:
            self.pc += 2

    # -- 0x7: ADD Vx, kk (no flag) --
    def _exec_add_imm(self, op: int):
        x = (op >> 8) & 0xF
        self.v[x] = u8(self.v[x] + (op & 0xFF))

    # -- 0x8: register ALU --
    def _exec_alu(self, op: int):
        x = (op >> 8) & 0xF
        y = (op >> 4) & 0xF
        n = op & 0xF
        v = self.v
        # VF is written before Vx, so a result in VF wins over the flag
        if   n == 0x0: v[x] = v[y]
        elif n == 0x1: v[x] |= v[y]
        elif n == 0x2: v[x] &= v[y]
        elif n == 0x3: v[x] ^= v[y]
        elif n == 0x4:  # ADD
            total = v[x] + v[y]
            v[VF] = 1 if total > 0xFF else 0
            v[x] = u8(total)
        elif n == 0x5:  # SUB
            diff = v[x] - v[y]
            v[VF] = 1 if v[x] > v[y] else 0
            v[x] = u8(diff)
        elif n == 0x6:  # SHR
            bit = v[x] & 1
            v[VF] = bit
            v[x] >>= 1
        elif n == 0x7:  # SUBN
            diff = v[y] - v[x]
            v[VF] = 1 if v[y] > v[x] else 0
            v[x] = u8(diff)
        elif n == 0xE:  # SHL
            bit = v[x] >> 7
            v[VF] = bit
            v[x] = u8(v[x] << 1)
        else:
            self._diag(DIAG_UNKNOWN_OP, op)

    # -- 0xC: RND --
    def _exec_rnd(self, op: int):
        self.v[(op >> 8) & 0xF] = u8(self.rand()) & (op & 0xFF)

    # -- 0xD: DRW --
    def _exec_draw(self, op: int):
        x0 = self.v[(op >> 8) & 0xF]
        y0 = self.v[(op >> 4) & 0xF]
        n = op & 0xF
        self.v[VF] = 0

        if n == 0 and self.hires:
            self._draw_sprite(x0, y0, 16, 16, op)
        elif n == 0 and self.schip:
            self._draw_sprite(x0, y0, 8, 16, op)
        else:
            self._draw_sprite(x0, y0, 8, n, op)

        self.draw_flag = True

    # -- 0xE: key skips --
    def _exec_key(self, op: int):
        key = self.v[(op >> 8) & 0xF]
        low = op & 0xFF
        if low not in (0x9E, 0xA1):
            self._diag(DIAG_UNKNOWN_OP, op)
            return
        if key >= NUM_KEYS:
            self._diag(DIAG_BAD_KEY, op)
            return
        pressed = self.keys[key] != 0
        if pressed == (low == 0x9E):
            self.pc += 2

    # -- 0xF: timers, index, BCD, bulk transfers --
    def _exec_misc(self, op: int):
        x = (op >> 8) & 0xF
        low = op & 0xFF
        if low == 0x07:
            self.v[x] = self.delay_timer
        elif low == 0x0A:
            self.waiting_for_key = True
            self.key_register = x
        elif low == 0x15:
            self.delay_timer = self.v[x]
        elif low == 0x18:
            self.sound_timer = self.v[x]
        elif low == 0x1E:
            self.i = u16(self.i + self.v[x])
        elif low == 0x29:
            self.i = SMALL_FONT_BASE + self.v[x] * SMALL_GLYPH_SIZE
        elif low == 0x33:
            val = self.v[x]
            self.mem_write8(self.i, val // 100)
            self.mem_write8(self.i + 1, (val // 10) % 10)
            self.mem_write8(self.i + 2, val % 10)
        elif low == 0x55:
            for r in range(x + 1):
                self.mem_write8(self.i + r, self.v[r])
        elif low == 0x65:
            for r in range(x + 1):
                self.v[r] = self.mem_read8(self.i + r)
        elif low == 0x30 and self.schip:
            self.i = BIG_FONT_BASE + self.v[x] * BIG_GLYPH_SIZE
        elif low == 0x75 and self.schip:
            for r in range(min(x + 1, RPL_SIZE)):
                self.rpl[r] = self.v[r]
        elif low == 0x85 and self.schip:
            for r in range(min(x + 1, RPL_SIZE)):
                self.v[r] = self.rpl[r]
        else:
            self._diag(DIAG_UNKNOWN_OP, op)

    # =====================================================================
    #  Display engine
    # =====================================================================

    def _set_resolution(self, hires: bool):
        self.hires = hires
        self.width, self.height = (HIRES_W, HIRES_H) if hires else (LORES_W, LORES_H)
        self.gfx[:] = bytes(GFX_SIZE)
        self.draw_flag = True

    def _draw_sprite(self, x0: int, y0: int, sprite_w: int, sprite_h: int,
                     op: int):
        """XOR a sprite from [I] onto the plane; coordinates wrap."""
        row_bytes = sprite_w // 8
        if self.i + row_bytes * sprite_h > MEM_SIZE:
            self._diag(DIAG_SPRITE_OVERRUN, op)
            return

        w, h = self.width, self.height
        gfx = self.gfx
        for row in range(sprite_h):
            py = (y0 + row) % h
            base = py * GFX_STRIDE
            for col_byte in range(row_bytes):
                bits = self.mem[self.i + row * row_bytes + col_byte]
                for bit in range(8):
                    if not bits & (0x80 >> bit):
                        continue
                    idx = base + (x0 + col_byte * 8 + bit) % w
                    if gfx[idx]:
                        self.v[VF] = 1
                    gfx[idx] ^= 1

    # Scrolls move only the active width; columns past it are left as-is.

    def _scroll_down(self, n: int):
        if n <= 0:
            return
        w, h = self.width, self.height
        gfx = self.gfx
        n = min(n, h)
        for row in range(h - 1, n - 1, -1):
            src = (row - n) * GFX_STRIDE
            dst = row * GFX_STRIDE
            gfx[dst:dst + w] = gfx[src:src + w]
        for row in range(n):
            gfx[row * GFX_STRIDE:row * GFX_STRIDE + w] = bytes(w)
        self.draw_flag = True

    def _scroll_left(self):
        w = self.width
        gfx = self.gfx
        for row in range(self.height):
            base = row * GFX_STRIDE
            gfx[base:base + w - 4] = gfx[base + 4:base + w]
            gfx[base + w - 4:base + w] = bytes(4)
        self.draw_flag = True

    def _scroll_right(self):
        w = self.width
        gfx = self.gfx
        for row in range(self.height):
            base = row * GFX_STRIDE
            gfx[base + 4:base + w] = gfx[base:base + w - 4]
            gfx[base:base + 4] = bytes(4)
        self.draw_flag = True

    # -- Host helpers --

    def frame_rows(self) -> list[bytes]:
        """Active rectangle as one ``bytes`` object per row."""
        return [bytes(self.gfx[r * GFX_STRIDE:r * GFX_STRIDE + self.width])
                for r in range(self.height)]

    # -- Debug / introspection --

    def dump_regs(self) -> str:
        lines = []
        for r in range(0, NUM_REGS, 4):
            lines.append("  " + "  ".join(f"V{r + k:X} = {self.v[r + k]:#04x}"
                                          for k in range(4)))
        lines.append(f"  I = {self.i:#05x}  PC = {self.pc:#05x}  SP = {self.sp}")
        lines.append(f"  DT = {self.delay_timer}  ST = {self.sound_timer}  "
                     f"HIRES = {int(self.hires)}  "
                     f"WAIT = {f'V{self.key_register:X}' if self.waiting_for_key else '-'}")
        if self.sp:
            lines.append("  STACK = " + " ".join(f"{a:#05x}" for a in self.stack[:self.sp]))
        return "\n".join(lines)
