"""Rewrites matched regions of a buffer with their replacement bytes."""

from collections import namedtuple

PatchedRoutine = namedtuple('PatchedRoutine', ['name', 'bytes', 'offset'])


def apply_patches(data, matches):
    """Return (patched_bytes, routines) for matches found in data.

    data is never modified.  Bytes outside the matched regions are copied
    through unchanged; routines carry the replacement bytes written at each
    offset, in ascending offset order.
    """
    out = bytearray(data)
    routines = []
    end_of_last = 0

    for sig, offset in sorted(matches, key=lambda m: m.offset):
        length = len(sig.replacement)
        if offset < end_of_last:
            raise ValueError(f"{sig.name} at 0x{offset:X} overlaps the previous patch")
        if offset < 0 or offset + length > len(out):
            raise ValueError(f"{sig.name} at 0x{offset:X} runs past the end of the buffer")

        out[offset:offset + length] = sig.replacement
        routines.append(PatchedRoutine(sig.name, sig.replacement, offset))
        end_of_last = offset + length

    return bytes(out), routines
