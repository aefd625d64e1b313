"""Synthetic ELF images for tests.

Builds just enough of an ELF file for the flattener: identification
bytes, file header, program header table and segment contents.  Bytes
not covered by any of those are filled with ``FILLER`` so that tests can
tell copied data from zero fill.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional, Sequence

from elfcopyflat.parsers.elf_parser import PF_R, PF_W, PF_X, PT_LOAD

FILLER = 0xCC

R, W, X = PF_R, PF_W, PF_X


@dataclass
class Seg:
    vaddr: int
    offset: int
    data: bytes = b""
    memsz: Optional[int] = None
    flags: int = PF_R
    kind: int = PT_LOAD
    filesz: Optional[int] = None
    paddr: Optional[int] = None
    align: int = 0x1000

    @property
    def file_size(self) -> int:
        return len(self.data) if self.filesz is None else self.filesz

    @property
    def mem_size(self) -> int:
        return self.file_size if self.memsz is None else self.memsz


def pattern(size: int, seed: int = 1) -> bytes:
    """Deterministic non-zero byte pattern."""
    return bytes(((i * 7 + seed) % 255) + 1 for i in range(size))


def build_elf(
    segments: Sequence[Seg] = (),
    *,
    bits: int = 64,
    byteorder: str = "little",
    phentsize: Optional[int] = None,
    phnum: Optional[int] = None,
    phoff: Optional[int] = None,
    shoff: int = 0,
    section0_info: Optional[int] = None,
    ei_class: Optional[int] = None,
    ei_data: Optional[int] = None,
    ei_version: int = 1,
    file_type: int = 2,
    machine: int = 62,
    entry: int = 0,
    min_size: int = 0,
) -> bytes:
    e = "<" if byteorder == "little" else ">"
    if bits == 64:
        ehdr_fmt, phdr_fmt, ehsize, canonical = f"{e}HHIQQQIHHHHHH", f"{e}IIQQQQQQ", 64, 56
    else:
        ehdr_fmt, phdr_fmt, ehsize, canonical = f"{e}HHIIIIIHHHHHH", f"{e}IIIIIIII", 52, 32

    entsize = canonical if phentsize is None else phentsize
    table_at = ehsize if phoff is None else phoff
    count = len(segments) if phnum is None else phnum

    ends = [min_size, ehsize]
    if segments:
        ends.append(table_at + entsize * (len(segments) - 1) + max(entsize, canonical))
    ends += [s.offset + len(s.data) for s in segments]
    if shoff:
        ends.append(shoff + (64 if bits == 64 else 40))
    buf = bytearray([FILLER]) * max(ends)

    ident = bytearray(16)
    ident[:4] = b"\x7fELF"
    ident[4] = (2 if bits == 64 else 1) if ei_class is None else ei_class
    ident[5] = (1 if byteorder == "little" else 2) if ei_data is None else ei_data
    ident[6] = ei_version
    buf[:16] = ident

    struct.pack_into(
        ehdr_fmt, buf, 16,
        file_type, machine, 1, entry,
        table_at if segments or phoff is not None else 0, shoff, 0, ehsize,
        entsize, count, 0, 0, 0,
    )

    for i, s in enumerate(segments):
        at = table_at + i * entsize
        buf[at:at + entsize] = bytes(entsize)
        paddr = s.vaddr if s.paddr is None else s.paddr
        if bits == 64:
            fields = (s.kind, s.flags, s.offset, s.vaddr, paddr, s.file_size, s.mem_size, s.align)
        else:
            fields = (s.kind, s.offset, s.vaddr, paddr, s.file_size, s.mem_size, s.flags, s.align)
        struct.pack_into(phdr_fmt, buf, at, *fields)

    for s in segments:
        buf[s.offset:s.offset + len(s.data)] = s.data

    if shoff and section0_info is not None:
        info_at = shoff + (44 if bits == 64 else 28)
        struct.pack_into(f"{e}I", buf, info_at, section0_info)

    return bytes(buf)
