"""
Mach-O container sanity check
=============================
Header-level recognition of thin and universal (fat) Mach-O files.

Only the magic number and a handful of header words are inspected; load
commands, sections and symbol tables are never parsed.  Patches are located
by raw byte patterns, so all this has to answer is "does this look like a
library we should touch at all".
"""

import struct

from .errors import FormatError

# Thin headers, as read little-endian from the first four bytes
MH_MAGIC = 0xFEEDFACE
MH_MAGIC_64 = 0xFEEDFACF
MH_CIGAM = 0xCEFAEDFE      # big-endian 32-bit
MH_CIGAM_64 = 0xCFFAEDFE   # big-endian 64-bit

# Universal headers are always big-endian
FAT_MAGIC = 0xCAFEBABE
FAT_MAGIC_64 = 0xCAFEBABF

MAX_FAT_ARCHS = 20  # sanity; also rejects Java class files (same magic)

CPU_TYPES = {
    0x00000007: 'i386',
    0x01000007: 'x86_64',
    0x0000000C: 'arm',
    0x0100000C: 'arm64',
    0x0200000C: 'arm64_32',
    0x00000012: 'ppc',
    0x01000012: 'ppc64',
}


def _arch_name(cputype):
    return CPU_TYPES.get(cputype, f'cpu_{cputype:#x}')


# region Format Detection

def describe_container(data):
    """Return {'format', 'arches'} for a Mach-O buffer, or None if unrecognized.

    'format' is 'macho' for a thin file or 'fat' for a universal one; 'arches'
    lists the architecture names in header order.
    """
    if len(data) < 8:
        return None

    magic = struct.unpack_from('<I', data, 0)[0]

    if magic in (MH_MAGIC, MH_MAGIC_64):
        header_size = 32 if magic == MH_MAGIC_64 else 28
        if len(data) < header_size:
            return None
        cputype = struct.unpack_from('<I', data, 4)[0]
        return {'format': 'macho', 'arches': [_arch_name(cputype)]}

    if magic in (MH_CIGAM, MH_CIGAM_64):
        header_size = 32 if magic == MH_CIGAM_64 else 28
        if len(data) < header_size:
            return None
        cputype = struct.unpack_from('>I', data, 4)[0]
        return {'format': 'macho', 'arches': [_arch_name(cputype)]}

    fat_magic = struct.unpack_from('>I', data, 0)[0]
    if fat_magic in (FAT_MAGIC, FAT_MAGIC_64):
        nfat_arch = struct.unpack_from('>I', data, 4)[0]
        if not 0 < nfat_arch <= MAX_FAT_ARCHS:
            return None
        entry_size = 32 if fat_magic == FAT_MAGIC_64 else 20
        if 8 + nfat_arch * entry_size > len(data):
            return None
        arches = []
        for i in range(nfat_arch):
            cputype = struct.unpack_from('>I', data, 8 + i * entry_size)[0]
            arches.append(_arch_name(cputype))
        return {'format': 'fat', 'arches': arches}

    return None


def check_container(data, path='<buffer>'):
    """Raise FormatError unless data starts with a Mach-O or universal header."""
    info = describe_container(data)
    if info is None:
        raise FormatError(path, "not a Mach-O or universal binary")
    return info

# endregion Format Detection
