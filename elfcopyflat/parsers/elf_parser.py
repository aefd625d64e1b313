"""
ELF Program Header Parser
==========================

Manual struct-based reader for the parts of the Executable and Linkable
Format (ELF) needed to flatten a file: the identification bytes, the
file header, and the program header table.  Sections are never read,
so stripped files work.  The one exception is ``PN_XNUM`` handling,
which takes the real entry count from section header 0.

Both 32-bit (ELF32) and 64-bit (ELF64) files in either byte order are
supported.  The class and byte order are detected once from the
identification bytes; every later read goes through the same
:class:`_ElfVariant`, a bundle of precompiled :class:`struct.Struct`
objects for that combination.

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2.
    - System V Application Binary Interface, Edition 4.1.
    - Linux man page: elf(5).
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from elfcopyflat.core.errors import FormatError
from elfcopyflat.core.models import (
    AddressClass,
    ByteOrder,
    FormatIdentity,
    ProgramHeaderTable,
    SegmentDescriptor,
    PT_LOAD,
    SegmentFlag,
)


# ---------------------------------------------------------------------------
# ELF Constants
# ---------------------------------------------------------------------------

ELF_MAGIC: bytes = b"\x7fELF"
EI_NIDENT: int = 16

# Identification byte offsets
EI_CLASS: int = 4
EI_DATA: int = 5
EI_VERSION: int = 6

# ELF Class (32-bit vs 64-bit)
ELFCLASSNONE: int = 0
ELFCLASS32: int = 1
ELFCLASS64: int = 2

# Data encoding (endianness)
ELFDATANONE: int = 0
ELFDATA2LSB: int = 1  # Little-endian
ELFDATA2MSB: int = 2  # Big-endian

EV_CURRENT: int = 1

# ELF type
ET_NONE: int = 0
ET_REL: int = 1
ET_EXEC: int = 2
ET_DYN: int = 3
ET_CORE: int = 4

ET_NAMES: dict[int, str] = {
    ET_NONE: "NONE",
    ET_REL: "REL",
    ET_EXEC: "EXEC",
    ET_DYN: "DYN",
    ET_CORE: "CORE",
}

# Program header types
PT_NULL: int = 0
PT_DYNAMIC: int = 2
PT_INTERP: int = 3
PT_NOTE: int = 4
PT_SHLIB: int = 5
PT_PHDR: int = 6
PT_TLS: int = 7
PT_GNU_EH_FRAME: int = 0x6474E550
PT_GNU_STACK: int = 0x6474E551
PT_GNU_RELRO: int = 0x6474E552

PT_NAMES: dict[int, str] = {
    PT_NULL: "NULL",
    PT_LOAD: "LOAD",
    PT_DYNAMIC: "DYNAMIC",
    PT_INTERP: "INTERP",
    PT_NOTE: "NOTE",
    PT_SHLIB: "SHLIB",
    PT_PHDR: "PHDR",
    PT_TLS: "TLS",
    PT_GNU_EH_FRAME: "GNU_EH_FRAME",
    PT_GNU_STACK: "GNU_STACK",
    PT_GNU_RELRO: "GNU_RELRO",
}

# Program header flags
PF_X: int = 0x1
PF_W: int = 0x2
PF_R: int = 0x4
_PF_MASK: int = PF_R | PF_W | PF_X

# Extended numbering: real e_phnum lives in sh_info of section header 0
PN_XNUM: int = 0xFFFF


def segment_type_name(kind: int) -> str:
    """Return the ``PT_*`` name for *kind*, or its hex value."""
    return PT_NAMES.get(kind, f"0x{kind:x}")


# ---------------------------------------------------------------------------
# Class / byte-order variants
# ---------------------------------------------------------------------------

# Header field order shared by both classes, following e_ident
_EHDR_FIELDS: tuple[str, ...] = (
    "e_type", "e_machine", "e_version", "e_entry",
    "e_phoff", "e_shoff", "e_flags", "e_ehsize",
    "e_phentsize", "e_phnum", "e_shentsize", "e_shnum",
    "e_shstrndx",
)


@dataclass(frozen=True)
class _ElfVariant:
    """Field widths and byte order for one (class, data) combination."""

    identity: FormatIdentity
    ehdr: struct.Struct
    phdr: struct.Struct
    phdr_fields: tuple[str, ...]
    sh_info: struct.Struct
    sh_info_offset: int

    @property
    def header_size(self) -> int:
        return EI_NIDENT + self.ehdr.size

    @property
    def min_entry_size(self) -> int:
        return self.phdr.size


def _make_variant(address_class: AddressClass, byte_order: ByteOrder) -> _ElfVariant:
    e = byte_order.struct_prefix
    if address_class is AddressClass.ELF64:
        # Elf64_Ehdr tail: 48 bytes, Elf64_Phdr: 56 bytes
        return _ElfVariant(
            identity=FormatIdentity(address_class=address_class, byte_order=byte_order),
            ehdr=struct.Struct(f"{e}HHIQQQIHHHHHH"),
            phdr=struct.Struct(f"{e}IIQQQQQQ"),
            phdr_fields=(
                "p_type", "p_flags", "p_offset", "p_vaddr",
                "p_paddr", "p_filesz", "p_memsz", "p_align",
            ),
            sh_info=struct.Struct(f"{e}I"),
            sh_info_offset=44,
        )
    # Elf32_Ehdr tail: 36 bytes, Elf32_Phdr: 32 bytes
    return _ElfVariant(
        identity=FormatIdentity(address_class=address_class, byte_order=byte_order),
        ehdr=struct.Struct(f"{e}HHIIIIIHHHHHH"),
        phdr=struct.Struct(f"{e}IIIIIIII"),
        phdr_fields=(
            "p_type", "p_offset", "p_vaddr", "p_paddr",
            "p_filesz", "p_memsz", "p_flags", "p_align",
        ),
        sh_info=struct.Struct(f"{e}I"),
        sh_info_offset=28,
    )


_CLASSES: dict[int, AddressClass] = {
    ELFCLASS32: AddressClass.ELF32,
    ELFCLASS64: AddressClass.ELF64,
}

_ENCODINGS: dict[int, ByteOrder] = {
    ELFDATA2LSB: ByteOrder.LITTLE,
    ELFDATA2MSB: ByteOrder.BIG,
}

_VARIANTS: dict[tuple[AddressClass, ByteOrder], _ElfVariant] = {
    (cls, order): _make_variant(cls, order)
    for cls in _CLASSES.values()
    for order in _ENCODINGS.values()
}


def _variant_for(identity: FormatIdentity) -> _ElfVariant:
    return _VARIANTS[(identity.address_class, identity.byte_order)]


# ---------------------------------------------------------------------------
# Header reader
# ---------------------------------------------------------------------------

def read_identity(data: bytes) -> FormatIdentity:
    """Validate the identification bytes and return the format identity.

    Args:
        data: File contents, at least the first 16 bytes.

    Raises:
        FormatError: If the magic, class, data encoding or version bytes
            are missing or hold unrecognised values.
    """
    if len(data) < EI_NIDENT:
        raise FormatError(
            f"file too short for ELF identification "
            f"({len(data)} of {EI_NIDENT} bytes)"
        )
    if bytes(data[:4]) != ELF_MAGIC:
        raise FormatError(f"bad ELF magic {bytes(data[:4])!r}")

    ei_class = data[EI_CLASS]
    ei_data = data[EI_DATA]
    ei_version = data[EI_VERSION]

    if ei_class not in _CLASSES:
        raise FormatError(f"invalid ELF class {ei_class}")
    if ei_data not in _ENCODINGS:
        raise FormatError(f"invalid ELF data encoding (endianness) {ei_data}")
    if ei_version != EV_CURRENT:
        raise FormatError(f"invalid ELF version {ei_version}")

    return _VARIANTS[(_CLASSES[ei_class], _ENCODINGS[ei_data])].identity


def read_header(data: bytes) -> ProgramHeaderTable:
    """Parse the ELF file header and locate the program header table.

    Args:
        data: Complete file contents (or at least enough to reach the
              program header table).

    Returns:
        The table's location, entry count and entry size together with
        the detected :class:`FormatIdentity`.

    Raises:
        FormatError: On bad identification bytes, a truncated file header,
            or an unresolvable ``PN_XNUM`` entry count.
    """
    identity = read_identity(data)
    variant = _variant_for(identity)

    if len(data) < variant.header_size:
        raise FormatError(
            f"file too short for {identity.describe()} header "
            f"({len(data)} of {variant.header_size} bytes)"
        )
    h = dict(zip(_EHDR_FIELDS, variant.ehdr.unpack_from(data, EI_NIDENT)))

    entry_count = h["e_phnum"]
    if entry_count == PN_XNUM:
        entry_count = _extended_entry_count(data, variant, h["e_shoff"])

    return ProgramHeaderTable(
        identity=identity,
        offset=h["e_phoff"],
        entry_count=entry_count,
        entry_size=h["e_phentsize"],
        file_type=h["e_type"],
        machine=h["e_machine"],
        entry_point=h["e_entry"],
    )


def _extended_entry_count(data: bytes, variant: _ElfVariant, shoff: int) -> int:
    """Read the real program header count from ``sh_info`` of section 0."""
    if shoff == 0:
        raise FormatError(
            "e_phnum is PN_XNUM but the file has no section header table"
        )
    pos = shoff + variant.sh_info_offset
    if pos + variant.sh_info.size > len(data):
        raise FormatError(
            "e_phnum is PN_XNUM but section header 0 lies past end of file"
        )
    (count,) = variant.sh_info.unpack_from(data, pos)
    return count


# ---------------------------------------------------------------------------
# Program header table parser
# ---------------------------------------------------------------------------

def parse_program_headers(
    data: bytes, table: ProgramHeaderTable
) -> list[SegmentDescriptor]:
    """Decode every entry of the program header table, in table order.

    Entries larger than the canonical size are accepted and their
    trailing bytes ignored.

    Args:
        data: Complete file contents.
        table: Geometry returned by :func:`read_header`.

    Returns:
        One :class:`SegmentDescriptor` per entry.

    Raises:
        FormatError: If the table has entries but no offset, the entry
            size is below the canonical minimum for the class, an entry
            extends past the end of *data*, or a loadable entry is
            internally inconsistent.
    """
    if table.entry_count == 0:
        return []
    if table.offset == 0:
        raise FormatError(
            f"e_phoff is 0 but e_phnum is {table.entry_count}",
            stage="program headers",
        )

    variant = _variant_for(table.identity)
    if table.entry_size < variant.min_entry_size:
        raise FormatError(
            f"program header entry size {table.entry_size} is smaller than "
            f"{variant.min_entry_size} bytes required for "
            f"{table.identity.describe()}",
            stage="program headers",
        )

    limit = table.identity.address_limit
    segments: list[SegmentDescriptor] = []

    for i in range(table.entry_count):
        offset = table.offset + i * table.entry_size
        if offset + variant.phdr.size > len(data):
            raise FormatError(
                f"program header table truncated at entry {i} "
                f"(entry at 0x{offset:x} needs {variant.phdr.size} bytes, "
                f"file is 0x{len(data):x} bytes)",
                stage="program headers",
            )
        ph = dict(zip(variant.phdr_fields, variant.phdr.unpack_from(data, offset)))

        seg = SegmentDescriptor(
            index=i,
            kind=ph["p_type"],
            flags=SegmentFlag(ph["p_flags"] & _PF_MASK),
            file_offset=ph["p_offset"],
            file_size=ph["p_filesz"],
            virtual_address=ph["p_vaddr"],
            physical_address=ph["p_paddr"],
            memory_size=ph["p_memsz"],
            alignment=ph["p_align"],
        )
        if seg.is_loadable:
            _check_loadable(seg, limit)
        segments.append(seg)

    return segments


def _check_loadable(seg: SegmentDescriptor, limit: int) -> None:
    if seg.memory_size < seg.file_size:
        raise FormatError(
            f"segment {seg.index}: memory size 0x{seg.memory_size:x} is "
            f"smaller than file size 0x{seg.file_size:x}",
            stage="program headers",
        )
    if seg.end_address > limit:
        raise FormatError(
            f"segment {seg.index}: 0x{seg.virtual_address:x} + "
            f"0x{seg.memory_size:x} wraps the address space",
            stage="program headers",
        )
