"""
Signature catalog
=================
Known Intel-only routines found in x86_64 macOS libraries and the same-length
bytes that replace them.

Patterns are written as space-separated hex bytes, `??` being a wildcard that
matches any byte (register encodings, rel8/rel32 branch displacements and RIP
displacements change between builds while the opcode skeleton stays put).

The catalog is ordered: when two signatures match at the same offset the one
declared first wins, so longer and more specific forms are listed before
their short counterparts.

Every wildcard sits inside the region its replacement rewrites as a whole
(a function body turned into `mov eax, 1; ret`, or a branch turned into NOPs),
so no operand that has to survive is overwritten with a constant.
"""


# region Signature

class Signature:
    """A named byte pattern with wildcards and its same-length replacement."""

    def __init__(self, name, pattern_hex, replacement_hex, description=""):
        self.name = name
        self.pattern_hex = pattern_hex
        self.pattern = self._parse(pattern_hex)
        self.replacement = self._parse_fixed(replacement_hex)
        self.description = description

        if len(self.pattern) != len(self.replacement):
            raise ValueError(
                f"{name}: pattern is {len(self.pattern)} bytes but replacement "
                f"is {len(self.replacement)} bytes")
        if all(b is None for b in self.pattern):
            raise ValueError(f"{name}: pattern has no fixed bytes")

    @staticmethod
    def _parse(hex_str):
        return [None if b == '??' else int(b, 16) for b in hex_str.split()]

    @staticmethod
    def _parse_fixed(hex_str):
        return bytes(int(b, 16) for b in hex_str.split())

    def __len__(self):
        return len(self.pattern)

    def __repr__(self):
        return f"Signature({self.name})"

# endregion Signature


# region Catalog

# 'Genu' 'ineI' 'ntel' as little-endian imm32 operands of cmp
SIGNATURES = [
    Signature(
        name="MklServIntelCpuTrue",
        pattern_hex="55 48 89 E5 53 50 8B 05 ?? ?? ?? ?? 83 F8 FF 75 ??",
        replacement_hex="B8 01 00 00 00 C3 90 90 90 90 90 90 90 90 90 90 90",
        description="mkl_serv_intel_cpu_true: push rbp; mov rbp,rsp; push rbx; push rax; "
                    "mov eax,[rip+cached]; cmp eax,-1; jne -> mov eax,1; ret",
    ),

    Signature(
        name="GenuineIntelEbxJne32",
        pattern_hex="81 FB 47 65 6E 75 0F 85 ?? ?? ?? ??",
        replacement_hex="81 FB 47 65 6E 75 90 90 90 90 90 90",
        description="cmp ebx,'Genu'; jne rel32 -> fall through",
    ),

    Signature(
        name="GenuineIntelEbxJne8",
        pattern_hex="81 FB 47 65 6E 75 75 ??",
        replacement_hex="81 FB 47 65 6E 75 90 90",
        description="cmp ebx,'Genu'; jne rel8 -> fall through",
    ),

    Signature(
        name="GenuineIntelEaxJne8",
        pattern_hex="3D 47 65 6E 75 75 ??",
        replacement_hex="3D 47 65 6E 75 90 90",
        description="cmp eax,'Genu'; jne rel8 -> fall through",
    ),

    Signature(
        name="IntelEcxJne32",
        pattern_hex="81 F9 6E 74 65 6C 0F 85 ?? ?? ?? ??",
        replacement_hex="81 F9 6E 74 65 6C 90 90 90 90 90 90",
        description="cmp ecx,'ntel'; jne rel32 -> fall through",
    ),

    Signature(
        name="IntelEcxJne8",
        pattern_hex="81 F9 6E 74 65 6C 75 ??",
        replacement_hex="81 F9 6E 74 65 6C 90 90",
        description="cmp ecx,'ntel'; jne rel8 -> fall through",
    ),

    Signature(
        name="IntelEdxJne8",
        pattern_hex="81 FA 69 6E 65 49 75 ??",
        replacement_hex="81 FA 69 6E 65 49 90 90",
        description="cmp edx,'ineI'; jne rel8 -> fall through",
    ),
]

# endregion Catalog
