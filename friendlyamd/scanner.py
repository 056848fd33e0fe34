"""
Pattern scanner
===============
Finds catalog signatures in a raw byte buffer.

Matching rules:
  - wildcard (`??`) positions match any byte
  - matches never overlap: after a match at K of length L the scan resumes at K+L
  - when several signatures match at the same offset, catalog order decides
  - a signature longer than what is left of the buffer simply does not match

The result is exactly what a byte-by-byte left-to-right scan would produce,
but candidates are located with bytes.find() per signature first, which keeps
multi-megabyte libraries fast.
"""

import logging
from collections import namedtuple

from .signatures import SIGNATURES

logger = logging.getLogger(__name__)

Match = namedtuple('Match', ['signature', 'offset'])


# region Signature Scanner

def scan_pattern(data, pattern):
    """Return every offset in data where pattern matches, overlaps included.

    Only positions whose first fixed byte is found by bytes.find() are
    verified against the full pattern; overlap resolution is left to scan().
    """
    fixed = [(i, b) for i, b in enumerate(pattern) if b is not None]
    if not fixed:
        return []

    anchor, anchor_byte = fixed[0]
    needle = bytes([anchor_byte])
    last_start = len(data) - len(pattern)
    offsets = []

    idx = data.find(needle, anchor)
    while idx >= 0:
        candidate = idx - anchor
        if candidate > last_start:
            break
        if all(data[candidate + j] == b for j, b in fixed):
            offsets.append(candidate)
        idx = data.find(needle, idx + 1)

    return offsets


def scan(data, catalog=SIGNATURES):
    """Scan data against catalog and return non-overlapping Matches by offset."""
    # offset -> index of the highest-priority signature matching there
    candidates = {}
    for priority, sig in enumerate(catalog):
        for offset in scan_pattern(data, sig.pattern):
            if offset not in candidates:
                candidates[offset] = priority

    matches = []
    resume = 0
    for offset in sorted(candidates):
        if offset < resume:
            continue
        sig = catalog[candidates[offset]]
        matches.append(Match(sig, offset))
        resume = offset + len(sig.pattern)
        logger.debug("matched %s at 0x%X", sig.name, offset)

    return matches

# endregion Signature Scanner
