"""
CHIP-8 / SUPER-CHIP Disassembler
=================================
Decodes 16-bit opcodes into a mnemonic, a one-line description and the
canonical opcode pattern.  Never executes anything.

Usage:
  from disasm import disassemble, disasm_rom
  mnemonic, description, pattern = disassemble(0x00E0)
  for addr, op, text in disasm_rom(rom_bytes):
      ...
"""

from __future__ import annotations
from typing import Iterator

from chip8 import PROGRAM_BASE

# ---------------------------------------------------------------------------
#  Name tables
# ---------------------------------------------------------------------------

SYS_NAMES = {
    0x00E0: ("cls",     "Clear the entire display.", "00E0"),
    0x00EE: ("ret",     "Pop address from stack to PC to return from a subroutine.", "00EE"),
    0x00FB: ("scright", "Scroll display right by 4 pixels. (SCHIP)", "00FB"),
    0x00FC: ("scleft",  "Scroll display left by 4 pixels. (SCHIP)", "00FC"),
    0x00FD: ("exit",    "Exit the interpreter. (SCHIP)", "00FD"),
    0x00FE: ("low",     "Switch to 64x32 resolution. (SCHIP)", "00FE"),
    0x00FF: ("high",    "Switch to 128x64 resolution. (SCHIP)", "00FF"),
}

ALU_NAMES = {
    0x0: ("ld",   "Set Vx to Vy.", "8xy0"),
    0x1: ("or",   "Set Vx to Vx OR Vy.", "8xy1"),
    0x2: ("and",  "Set Vx to Vx AND Vy.", "8xy2"),
    0x3: ("xor",  "Set Vx to Vx XOR Vy.", "8xy3"),
    0x4: ("add",  "Add Vy to Vx. VF=1 on carry, else 0.", "8xy4"),
    0x5: ("sub",  "Subtract Vy from Vx. VF=1 if no borrow, else 0.", "8xy5"),
    0x6: ("shr",  "Shift Vx right by 1. VF=bit shifted out.", "8xy6"),
    0x7: ("subn", "Set Vx to Vy - Vx. VF=1 if no borrow, else 0.", "8xy7"),
    0xE: ("shl",  "Shift Vx left by 1. VF=bit shifted out.", "8xyE"),
}

KEY_NAMES = {
    0x9E: ("skp",  "Skip next instruction if key Vx is pressed.", "Ex9E"),
    0xA1: ("sknp", "Skip next instruction if key Vx is not pressed.", "ExA1"),
}

# F-family: low byte -> (format, description, pattern); {x} is the register
MISC_NAMES = {
    0x07: ("ld   v{x}, DT",     "Set Vx to the delay timer.", "Fx07"),
    0x0A: ("ld   v{x}, K",      "Wait for a key press, store the key in Vx.", "Fx0A"),
    0x15: ("ld   DT, v{x}",     "Set the delay timer to Vx.", "Fx15"),
    0x18: ("ld   ST, v{x}",     "Set the sound timer to Vx.", "Fx18"),
    0x1E: ("add  I, v{x}",      "Add Vx to I.", "Fx1E"),
    0x29: ("ld   F, v{x}",      "Point I at the 5-byte glyph for digit Vx.", "Fx29"),
    0x30: ("ld   HF, v{x}",     "Point I at the 10-byte glyph for digit Vx. (SCHIP)", "Fx30"),
    0x33: ("bcd  v{x}",         "Store BCD of Vx at I, I+1, I+2.", "Fx33"),
    0x55: ("ld   [I], v0-v{x}", "Store V0..Vx to memory at I.", "Fx55"),
    0x65: ("ld   v0-v{x}, [I]", "Load V0..Vx from memory at I.", "Fx65"),
    0x75: ("ld   R, v0-v{x}",   "Save V0..Vx to RPL flags. (SCHIP)", "Fx75"),
    0x85: ("ld   v0-v{x}, R",   "Load V0..Vx from RPL flags. (SCHIP)", "Fx85"),
}


def _error(op: int, what: str, pattern: str) -> tuple[str, str, str]:
    return f"ERROR 0x{op:04X}", what, pattern


# ---------------------------------------------------------------------------
#  Decoder
# ---------------------------------------------------------------------------

def disassemble(op: int) -> tuple[str, str, str]:
    """Decode one opcode. Returns (mnemonic, description, pattern)."""
    op &= 0xFFFF
    f = (op >> 12) & 0xF
    x = (op >> 8) & 0xF
    y = (op >> 4) & 0xF
    n = op & 0xF
    kk = op & 0xFF
    nnn = op & 0xFFF

    if f == 0x0:
        if op in SYS_NAMES:
            return SYS_NAMES[op]
        if (op & 0xFFF0) == 0x00C0:
            return f"scdown {n}", "Scroll display down by N pixels. (SCHIP)", "00Cn"
        return _error(op, "Unknown 0-group instruction", "0nnn")

    elif f == 0x1:
        return f"jp   0x{nnn:03X}", "Jump to address NNN.", "1nnn"

    elif f == 0x2:
        return f"call 0x{nnn:03X}", "Push PC to stack, then jump to NNN.", "2nnn"

    elif f == 0x3:
        return f"se   v{x}, 0x{kk:02X}", "Skip next instruction if Vx equals KK.", "3xkk"

    elif f == 0x4:
        return f"sne  v{x}, 0x{kk:02X}", "Skip next instruction if Vx does not equal KK.", "4xkk"

    elif f == 0x5:
        return f"se   v{x}, v{y}", "Skip next instruction if Vx equals Vy.", "5xy0"

    elif f == 0x6:
        return f"ld   v{x}, 0x{kk:02X}", "Load KK into Vx.", "6xkk"

    elif f == 0x7:
        return f"add  v{x}, 0x{kk:02X}", "Add KK to Vx (no carry flag).", "7xkk"

    elif f == 0x8:
        if n not in ALU_NAMES:
            return _error(op, "Unknown arithmetic/logic op", "8xy?")
        name, what, pattern = ALU_NAMES[n]
        if n in (0x6, 0xE):
            return f"{name:<4} v{x}", what, pattern
        return f"{name:<4} v{x}, v{y}", what, pattern

    elif f == 0x9:
        return f"sne  v{x}, v{y}", "Skip next instruction if Vx does not equal Vy.", "9xy0"

    elif f == 0xA:
        return f"ld   I, 0x{nnn:03X}", "Load NNN into the index register I.", "Annn"

    elif f == 0xB:
        return f"jp   v0, 0x{nnn:03X}", "Jump to NNN plus V0.", "Bnnn"

    elif f == 0xC:
        return f"rnd  v{x}, 0x{kk:02X}", "Set Vx to a random byte AND KK.", "Cxkk"

    elif f == 0xD:
        return (f"drw  v{x}, v{y}, 0x{n:X}",
                "Draw N-row sprite from I at (Vx, Vy). VF=1 on collision.", "Dxyn")

    elif f == 0xE:
        if kk not in KEY_NAMES:
            return _error(op, "Unknown key instruction", "Ex??")
        name, what, pattern = KEY_NAMES[kk]
        return f"{name:<4} v{x}", what, pattern

    else:
        if kk not in MISC_NAMES:
            return _error(op, "Unknown F-group instruction", "Fx??")
        fmt, what, pattern = MISC_NAMES[kk]
        return fmt.format(x=x), what, pattern


def disasm_rom(data: bytes | bytearray,
               base: int = PROGRAM_BASE) -> Iterator[tuple[int, int, str]]:
    """Walk *data* two bytes at a time, yielding (addr, opcode, text).

    A trailing odd byte is reported as ``db 0xNN`` with opcode -1.
    """
    for off in range(0, len(data) - 1, 2):
        op = (data[off] << 8) | data[off + 1]
        yield base + off, op, disassemble(op)[0]
    if len(data) % 2:
        yield base + len(data) - 1, -1, f"db   0x{data[-1]:02X}"


def listing(data: bytes | bytearray, base: int = PROGRAM_BASE) -> str:
    """Full text listing, one instruction per line."""
    lines = []
    for addr, op, text in disasm_rom(data, base):
        word = f"{op:04X}" if op >= 0 else f"{data[addr - base]:02X}  "
        lines.append(f"{addr:#05x}: {word}  {text}")
    return "\n".join(lines)
