"""elfcopyflat parsers: ELF header and program header table decoding."""
