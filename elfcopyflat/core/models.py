"""
elfcopyflat Data Models
========================

Pydantic-based value objects flowing through the flattening pipeline:
the format identity read from the ELF identification bytes, the program
header table geometry, one descriptor per program header, the selection
predicate and copy options supplied by the caller, and the computed
layout and result.

All models are frozen.  They are produced once per run and never
modified afterwards.

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2.
    - System V Application Binary Interface, Edition 4.1, chapter 5.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.config import FlatCopyConfig

# p_type of a loadable segment
PT_LOAD: int = 1

# Image size limit used when the caller gives none (1 GiB)
DEFAULT_MAX_IMAGE_SIZE: int = 1 << 30


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class AddressClass(int, enum.Enum):
    """Width of addresses and sizes in the file (``EI_CLASS``)."""
    ELF32 = 32
    ELF64 = 64


class ByteOrder(str, enum.Enum):
    """Encoding of multi-byte fields (``EI_DATA``)."""
    LITTLE = "little"
    BIG = "big"

    @property
    def struct_prefix(self) -> str:
        """The :mod:`struct` byte-order character for this encoding."""
        return "<" if self is ByteOrder.LITTLE else ">"


class SegmentFlag(enum.IntFlag):
    """Segment permission bits (``p_flags``), using the ELF ``PF_*`` values."""
    NONE = 0
    X = 0x1
    W = 0x2
    R = 0x4

    @classmethod
    def parse(cls, text: str) -> SegmentFlag:
        """Parse a permission string made of the letters ``r``, ``w``, ``x``.

        Letters are case-insensitive and may appear in any order.

        Raises:
            ValueError: On an unknown or repeated letter.
        """
        flags = cls.NONE
        for char in text:
            try:
                bit = cls[char.upper()]
            except KeyError:
                raise ValueError(f"Unknown flag '{char}'") from None
            if flags & bit:
                raise ValueError(f"Duplicate flag '{char.lower()}'")
            flags |= bit
        return flags

    def to_rwx(self) -> str:
        """Render as a fixed-width ``rwx`` string, ``-`` for missing bits."""
        return "".join(
            letter if self & bit else "-"
            for letter, bit in (("r", SegmentFlag.R), ("w", SegmentFlag.W), ("x", SegmentFlag.X))
        )


class OverlapPolicy(str, enum.Enum):
    """What to do when selected segments share addresses."""
    LAST_WINS = "last-wins"
    ERROR = "error"


class PipelineStage(str, enum.Enum):
    """Linear state of a conversion run."""
    IDLE = "idle"
    HEADER_PARSED = "header_parsed"
    TABLE_PARSED = "table_parsed"
    SEGMENTS_SELECTED = "segments_selected"
    LAYOUT_COMPUTED = "layout_computed"
    ASSEMBLED = "assembled"
    WRITTEN = "written"


# ---------------------------------------------------------------------------
# Header and program header table
# ---------------------------------------------------------------------------

class FormatIdentity(BaseModel):
    """Address class and byte order, fixed by the identification bytes."""
    model_config = ConfigDict(frozen=True)

    address_class: AddressClass
    byte_order: ByteOrder

    @property
    def address_limit(self) -> int:
        """One past the highest address representable in this class."""
        return 1 << self.address_class.value

    def describe(self) -> str:
        order = "LSB" if self.byte_order is ByteOrder.LITTLE else "MSB"
        return f"ELF{self.address_class.value} {order}"


class ProgramHeaderTable(BaseModel):
    """Location and geometry of the program header table.

    Attributes:
        identity: Format identity the table must be decoded with.
        offset: File offset of the first entry (``e_phoff``).
        entry_count: Number of entries (``e_phnum``, or the ``PN_XNUM``
            extension value).
        entry_size: Size of one entry in bytes (``e_phentsize``).
        file_type: ``e_type`` (executable, shared object, core, ...).
        machine: ``e_machine``.
        entry_point: ``e_entry``.
    """
    model_config = ConfigDict(frozen=True)

    identity: FormatIdentity
    offset: int = Field(ge=0)
    entry_count: int = Field(ge=0)
    entry_size: int = Field(ge=0)
    file_type: int = 0
    machine: int = 0
    entry_point: int = 0


class SegmentDescriptor(BaseModel):
    """One decoded program header entry.

    Attributes:
        index: Position in the program header table.
        kind: Segment type (``p_type``).
        flags: Permission bits (``p_flags``).
        file_offset: Start of the segment's bytes in the file.
        file_size: Number of bytes backed by the file.
        virtual_address: Load address of the first byte.
        physical_address: ``p_paddr``, reported only.
        memory_size: Size in memory, at least ``file_size`` for loadable
            segments.  The tail beyond ``file_size`` reads as zero.
        alignment: ``p_align``, reported only.
    """
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    kind: int
    flags: SegmentFlag = SegmentFlag.NONE
    file_offset: int = Field(default=0, ge=0)
    file_size: int = Field(default=0, ge=0)
    virtual_address: int = Field(default=0, ge=0)
    physical_address: int = Field(default=0, ge=0)
    memory_size: int = Field(default=0, ge=0)
    alignment: int = Field(default=0, ge=0)

    @property
    def is_loadable(self) -> bool:
        return self.kind == PT_LOAD

    @property
    def end_address(self) -> int:
        """One past the last byte of the segment in memory."""
        return self.virtual_address + self.memory_size

    @property
    def zero_fill_size(self) -> int:
        """Bytes of the segment not backed by the file."""
        return max(self.memory_size - self.file_size, 0)


# ---------------------------------------------------------------------------
# Caller configuration
# ---------------------------------------------------------------------------

class SelectionPredicate(BaseModel):
    """Permission filter applied to loadable segments.

    A segment passes when its flags include every bit of :attr:`require`
    and none of :attr:`exclude`.  With both empty every loadable segment
    passes.
    """
    model_config = ConfigDict(frozen=True)

    require: SegmentFlag = SegmentFlag.NONE
    exclude: SegmentFlag = SegmentFlag.NONE

    @classmethod
    def all(cls) -> SelectionPredicate:
        return cls()

    @classmethod
    def requiring(cls, flags: SegmentFlag) -> SelectionPredicate:
        return cls(require=flags)

    @classmethod
    def excluding(cls, flags: SegmentFlag) -> SelectionPredicate:
        return cls(exclude=flags)

    def matches(self, flags: SegmentFlag) -> bool:
        return (flags & self.require) == self.require and not (flags & self.exclude)

    def describe(self) -> str:
        if not self.require and not self.exclude:
            return "ALL"
        parts = []
        if self.require:
            parts.append(f"REQUIRE({self.require.to_rwx()})")
        if self.exclude:
            parts.append(f"EXCLUDE({self.exclude.to_rwx()})")
        return " & ".join(parts)


class CopyOptions(BaseModel):
    """The single configuration value consumed by the pipeline.

    Attributes:
        predicate: Which loadable segments to copy.
        require_non_empty: Treat an empty selection or zero-length image
            as an error instead of producing an empty file.
        base_address: Address of output byte 0.  ``None`` uses the lowest
            selected segment address.
        overlap_policy: Whether overlapping segments are accepted (the
            later one in table order wins) or rejected.
        max_image_size: Upper bound on the image size in bytes, ``None``
            for no limit.  Defaults to :data:`DEFAULT_MAX_IMAGE_SIZE`.
    """
    model_config = ConfigDict(frozen=True)

    predicate: SelectionPredicate = Field(default_factory=SelectionPredicate)
    require_non_empty: bool = False
    base_address: Optional[int] = Field(default=None, ge=0)
    overlap_policy: OverlapPolicy = OverlapPolicy.LAST_WINS
    max_image_size: Optional[int] = Field(default=DEFAULT_MAX_IMAGE_SIZE, ge=0)

    @classmethod
    def from_config(
        cls,
        config: FlatCopyConfig,
        *,
        predicate: Optional[SelectionPredicate] = None,
        base_address: Optional[int] = None,
        require_non_empty: Optional[bool] = None,
        overlap_policy: Optional[OverlapPolicy] = None,
    ) -> CopyOptions:
        """Build options from the ``[flatcopy]`` config section.

        Keyword arguments left as ``None`` fall back to the config value.
        A ``max_image_size`` of ``0`` in the config disables the limit.
        """
        return cls(
            predicate=predicate or SelectionPredicate(),
            require_non_empty=(
                config.require_non_empty
                if require_non_empty is None
                else require_non_empty
            ),
            base_address=base_address,
            overlap_policy=overlap_policy or OverlapPolicy(config.overlap_policy),
            max_image_size=config.max_image_size or None,
        )


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------

class Layout(BaseModel):
    """Address span covered by the flat image."""
    model_config = ConfigDict(frozen=True)

    base_address: int = Field(default=0, ge=0)
    end_address: int = Field(default=0, ge=0)
    total_size: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_span(self) -> Layout:
        if self.end_address - self.base_address != self.total_size:
            raise ValueError(
                "total_size must equal end_address - base_address"
            )
        return self

    def offset_of(self, address: int) -> int:
        """Image offset holding *address*."""
        return address - self.base_address


class SegmentOverlap(BaseModel):
    """Address range shared by two selected segments.

    Attributes:
        earlier: Table index of the segment copied first.
        later: Table index of the segment copied last, whose bytes end up
            in the image.
        start: First shared address.
        end: One past the last shared address.
    """
    model_config = ConfigDict(frozen=True)

    earlier: int
    later: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


class FlatCopyResult(BaseModel):
    """Everything one conversion run produced.

    ``image`` is excluded from serialisation; use ``model_dump(mode="json")``
    for a summary.
    """
    model_config = ConfigDict(frozen=True)

    identity: FormatIdentity
    table: ProgramHeaderTable
    segments: list[SegmentDescriptor] = Field(default_factory=list)
    selection: list[SegmentDescriptor] = Field(default_factory=list)
    layout: Layout = Field(default_factory=Layout)
    overlaps: list[SegmentOverlap] = Field(default_factory=list)
    stage: PipelineStage = PipelineStage.IDLE
    image: bytes = Field(default=b"", exclude=True, repr=False)

    @property
    def selected_indices(self) -> list[int]:
        return [seg.index for seg in self.selection]

    def with_stage(self, stage: PipelineStage) -> FlatCopyResult:
        return self.model_copy(update={"stage": stage})
