#!/usr/bin/env python3
"""
CHIP-8 Runner / Monitor
========================
Command-line front end for the CHIP-8 / SUPER-CHIP engine.

Provides:
  - Windowed play (pygame) with keyboard input and bell on beep
  - Headless runs that print the final frame as ASCII art
  - ROM disassembly listings
  - An interactive debug monitor: step / run / breakpoints /
    register and memory inspection / key injection

Usage:
  python cli.py ROM [--variant schip|chip8] [--cycles N] [--scale N]
                    [--strict] [--seed N]
                    [--headless --frames N | --disassemble | --monitor]
"""

from __future__ import annotations
import argparse
import cmd
import random
import shlex
import sys
from typing import Optional

from chip8 import (
    Chip8Error, RomTooLargeError, VARIANTS, VARIANT_SCHIP, NUM_KEYS,
    PROGRAM_BASE, MEM_SIZE,
)
from disasm import disassemble, listing
from system import Chip8System, DEFAULT_CYCLES_PER_FRAME


class Chip8CLI(cmd.Cmd):
    """Interactive monitor for a CHIP-8 system."""

    intro = (
        "\n"
        "╔══════════════════════════════════════════════════════════╗\n"
        "║            CHIP-8 / SUPER-CHIP Monitor                   ║\n"
        "║   Type 'help' for commands.  'quit' to exit.             ║\n"
        "╚══════════════════════════════════════════════════════════╝\n"
    )
    prompt = "CHIP8> "

    def __init__(self, system: Chip8System, stdout=None):
        super().__init__(stdout=stdout)
        self.sys = system
        self.breakpoints: set[int] = set()
        self._rom_path: Optional[str] = None

    def _print(self, *args):
        print(*args, file=self.stdout)

    # -- Parsing helpers --

    def _parse_addr(self, s: str) -> int:
        """Parse an address (hex with 0x prefix, decimal, pc or i)."""
        s = s.strip().lower()
        if s == "pc":
            return self.sys.cpu.pc
        if s == "i":
            return self.sys.cpu.i
        return int(s, 0)

    def _parse_int(self, s: str) -> int:
        return int(s.strip(), 0)

    def _ready(self) -> bool:
        if not self.sys.loaded:
            self._print("No ROM loaded.  Use 'load <file>'.")
            return False
        return True

    # ================================================================
    #  Commands
    # ================================================================

    # -- Loading --

    def do_load(self, arg):
        """Load a ROM file at 0x200: load <file>"""
        parts = shlex.split(arg)
        if not parts:
            self._print("Usage: load <file>")
            return
        path = parts[0]
        try:
            self.sys.load_rom_file(path)
        except RomTooLargeError as e:
            self._print(f"Error: {e}")
            return
        except OSError as e:
            self._print(f"Error reading '{path}': {e}")
            return
        self._rom_path = path
        self._print(f"Loaded {self.sys.rom_size} bytes from '{path}' "
                    f"at {PROGRAM_BASE:#05x}")

    def do_reset(self, arg):
        """Reload the current ROM from disk and reset the engine."""
        if self._rom_path is None:
            self._print("No ROM file to reload.")
            return
        self.do_load(shlex.quote(self._rom_path))

    # -- Execution --

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        if not self._ready():
            return
        count = self._parse_int(arg) if arg.strip() else 1
        cpu = self.sys.cpu
        for _ in range(count):
            if cpu.waiting_for_key:
                self.sys.step()
                if cpu.waiting_for_key:
                    self._print(f"  waiting for key -> V{cpu.key_register:X}")
                    break
                continue
            addr = cpu.pc
            op = cpu.read_opcode(addr)
            self.sys.step()
            self._print(f"  {addr:#05x}: {op:04X}  {disassemble(op)[0]}")

    def do_run(self, arg):
        """Run N frames (default 60), stopping at breakpoints: run [frames]"""
        if not self._ready():
            return
        frames = self._parse_int(arg) if arg.strip() else 60
        if not self.breakpoints:
            self.sys.run(frames)
            self._print(f"Ran {frames} frames.")
            return

        cpu = self.sys.cpu
        for frame in range(frames):
            for _ in range(self.sys.cycles_per_frame):
                if cpu.pc in self.breakpoints and not cpu.waiting_for_key:
                    self._print(f"\nBreakpoint hit at {cpu.pc:#05x} "
                                f"(frame {frame})")
                    return
                self.sys.step()
            self.sys.end_frame()
        self._print(f"Ran {frames} frames.")

    def do_continue(self, arg):
        """Alias for 'run'."""
        self.do_run(arg)
    do_c = do_continue

    # -- Breakpoints --

    def do_bp(self, arg):
        """Set breakpoint: bp <address>"""
        if not arg.strip():
            if self.breakpoints:
                self._print("Breakpoints:")
                for a in sorted(self.breakpoints):
                    self._print(f"  {a:#05x}")
            else:
                self._print("No breakpoints set.")
            return
        addr = self._parse_addr(arg)
        self.breakpoints.add(addr)
        self._print(f"Breakpoint set at {addr:#05x}")
    do_break = do_bp

    def do_bpd(self, arg):
        """Delete breakpoint: bpd <address|all>"""
        if arg.strip().lower() == "all":
            self.breakpoints.clear()
            self._print("All breakpoints cleared.")
            return
        addr = self._parse_addr(arg)
        self.breakpoints.discard(addr)
        self._print(f"Breakpoint at {addr:#05x} removed.")

    # -- Input --

    def do_key(self, arg):
        """Press or release a key: key <0-F> [down|up]
        With no state, shows the current key map."""
        parts = shlex.split(arg)
        if not parts:
            self._print("  " + " ".join(f"{k:X}" for k in range(NUM_KEYS)))
            self._print("  " + " ".join("1" if p else "." for p in self.sys.keys))
            return
        try:
            key = int(parts[0], 16)
            pressed = (parts[1].lower() != "up") if len(parts) > 1 else True
            self.sys.set_key(key, pressed)
        except ValueError as e:
            self._print(f"Error: {e}")
            return
        self._print(f"  key {key:X} {'down' if pressed else 'up'}")

    # -- Inspection --

    def do_regs(self, arg):
        """Show registers, timers and the call stack."""
        self._print(self.sys.cpu.dump_regs())

    def do_status(self, arg):
        """Show full system status."""
        self._print(self.sys.dump_state())

    def do_timers(self, arg):
        """Show the delay and sound timers."""
        cpu = self.sys.cpu
        self._print(f"  DT = {cpu.delay_timer}  ST = {cpu.sound_timer}")

    def do_frame(self, arg):
        """Print the active display rectangle as ASCII art."""
        for row in self.sys.cpu.frame_rows():
            self._print("".join("#" if px else "." for px in row))

    def do_dump(self, arg):
        """Hex dump memory: dump <address> [count]
        Count defaults to 64 bytes."""
        parts = shlex.split(arg)
        if not parts:
            self._print("Usage: dump <address> [count]")
            return
        addr = self._parse_addr(parts[0])
        count = self._parse_int(parts[1]) if len(parts) > 1 else 64
        for row_start in range(addr, min(addr + count, MEM_SIZE), 16):
            n = min(16, addr + count - row_start, MEM_SIZE - row_start)
            hex_bytes = [f"{self.sys.cpu.mem[row_start + k]:02x}" for k in range(n)]
            self._print(f"  {row_start:#05x}: {' '.join(hex_bytes)}")
    do_mem = do_dump

    def do_setmem(self, arg):
        """Set memory bytes: setmem <address> <byte> [byte] ..."""
        parts = shlex.split(arg)
        if len(parts) < 2:
            self._print("Usage: setmem <addr> <byte...>")
            return
        addr = self._parse_addr(parts[0])
        for k, tok in enumerate(parts[1:]):
            self.sys.cpu.mem_write8(addr + k, self._parse_int(tok))
        self._print(f"  Wrote {len(parts) - 1} bytes at {addr:#05x}")

    def do_disasm(self, arg):
        """Disassemble: disasm [address] [count]
        Defaults to current PC, 16 instructions."""
        parts = shlex.split(arg)
        cpu = self.sys.cpu
        addr = self._parse_addr(parts[0]) if parts else cpu.pc
        count = self._parse_int(parts[1]) if len(parts) > 1 else 16
        for _ in range(count):
            if addr >= MEM_SIZE - 1:
                break
            op = cpu.read_opcode(addr)
            marker = ">>>" if addr == cpu.pc else "   "
            self._print(f"  {marker} {addr:#05x}: {op:04X}  {disassemble(op)[0]}")
            addr += 2
    do_dis = do_disasm

    # -- Misc --

    def do_quit(self, arg):
        """Exit the monitor."""
        self._print("Goodbye.")
        return True
    do_exit = do_quit
    do_q = do_quit

    def do_EOF(self, arg):
        self._print()
        return self.do_quit(arg)

    def default(self, line):
        """Handle unknown commands gracefully."""
        self._print(f"Unknown command: {line.split()[0]!r}. "
                    f"Type 'help' for available commands.")

    def emptyline(self):
        """Don't repeat the last command on empty input."""
        pass


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def _print_diagnostic(kind: str, pc: int, opcode: int):
    print(f"[strict] {kind} at {pc:#05x} (op {opcode:04X})", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CHIP-8 / SUPER-CHIP interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py pong.ch8\n"
               "  python cli.py pong.ch8 --variant chip8 --cycles 15\n"
               "  python cli.py pong.ch8 --headless --frames 120\n"
               "  python cli.py pong.ch8 --disassemble\n"
               "  python cli.py pong.ch8 --monitor\n"
    )
    parser.add_argument("rom", nargs="?", default=None,
                        help="ROM file (raw bytes, loaded at 0x200)")
    parser.add_argument("--variant", choices=VARIANTS, default=VARIANT_SCHIP,
                        help="Instruction-set variant (default: schip)")
    parser.add_argument("--cycles", type=int, default=DEFAULT_CYCLES_PER_FRAME,
                        metavar="N",
                        help="Instructions per 60 Hz frame "
                             f"(default: {DEFAULT_CYCLES_PER_FRAME})")
    parser.add_argument("--scale", type=int, default=10, metavar="N",
                        help="Window scale factor (default: 10)")
    parser.add_argument("--strict", action="store_true",
                        help="Report anomalies (unknown opcodes, stack "
                             "over/underflow, ...) on stderr")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for the RND instruction")
    parser.add_argument("--no-bell", action="store_true",
                        help="Do not ring the terminal bell on beep")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--headless", action="store_true",
                      help="Run without a window, print the last frame")
    mode.add_argument("--disassemble", "-d", action="store_true",
                      help="Print a disassembly listing and exit")
    mode.add_argument("--monitor", "-m", action="store_true",
                      help="Start the interactive debug monitor")
    parser.add_argument("--frames", type=int, default=600, metavar="N",
                        help="Frames to run with --headless (default: 600)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.rom is None and not args.monitor:
        print("ERROR: a ROM file is required (or use --monitor)", file=sys.stderr)
        return 2

    data = b""
    if args.rom is not None:
        try:
            with open(args.rom, "rb") as f:
                data = f.read()
        except OSError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

    # ---- Disassemble-only mode ----------------------------------------
    if args.disassemble:
        print(listing(data))
        return 0

    rand = None
    if args.seed is not None:
        rng = random.Random(args.seed)
        rand = lambda: rng.getrandbits(8)

    try:
        sys_emu = Chip8System(variant=args.variant,
                              cycles_per_frame=args.cycles,
                              rand=rand, strict=args.strict)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    if args.strict:
        sys_emu.cpu.on_diagnostic = _print_diagnostic

    if args.rom is not None:
        try:
            sys_emu.load_rom(data)
        except RomTooLargeError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        print(f"Loaded {len(data)} bytes from '{args.rom}' "
              f"({args.variant}, {args.cycles} cycles/frame)")

    # ---- Monitor ------------------------------------------------------
    if args.monitor:
        cli = Chip8CLI(sys_emu)
        cli._rom_path = args.rom
        try:
            cli.cmdloop()
        except KeyboardInterrupt:
            print("\nInterrupted. Goodbye.")
        return 0

    # ---- Headless -----------------------------------------------------
    if args.headless:
        from display import HeadlessDisplay
        headless = HeadlessDisplay(sys_emu, keep=1)
        headless.start()
        try:
            sys_emu.run(args.frames)
        except Chip8Error as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        finally:
            headless.stop()
        print(headless.render_text())
        print(f"[headless] {sys_emu.frame_count} frames, "
              f"{sys_emu.beep_count} beeps")
        return 0

    # ---- Window -------------------------------------------------------
    from display import FramebufferDisplay
    display = FramebufferDisplay(sys_emu, scale=args.scale,
                                 title=f"CHIP-8: {args.rom}",
                                 bell=not args.no_bell)
    try:
        display.run()
    except ImportError as e:
        print(f"[display] pygame not available: {e}", file=sys.stderr)
        print("[display] Install with: pip install pygame", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
