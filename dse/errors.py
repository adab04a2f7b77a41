from __future__ import annotations


class DSEError(ValueError):
    """Base class for every failure raised by the codec and translators."""


class DSEFormatError(DSEError):
    pass


class DSEBoundsError(DSEError):
    pass


class DSESemanticError(DSEError):
    pass


class DSEIOError(DSEError, OSError):
    pass


class DSEStringError(DSEError):
    pass


class DSECommandParseError(DSEError):
    pass


class DSEInternalError(DSEError):
    pass


# ── Named errors ─────────────────────────────────────────────────────


class PointerTableDuplicateSelfIndex(DSESemanticError):
    def __init__(self, index: int) -> None:
        super().__init__(f"pointer table has more than one object with self-index {index}")
        self.index = index


class PointerTableTooLarge(DSEBoundsError):
    def __init__(self, offset: int, pointer_size: int) -> None:
        super().__init__(
            f"pointer table offset {offset:#x} does not fit in a {pointer_size * 8}-bit pointer"
        )
        self.offset = offset
        self.pointer_size = pointer_size


class TableNonMatchingSelfIndex(DSESemanticError):
    def __init__(self, position: int, self_index: int) -> None:
        super().__init__(
            f"object at position {position} has self-index {self_index}; "
            "self-indices in a table must match their position"
        )
        self.position = position
        self.self_index = self_index


class NotesTooLong(DSEBoundsError):
    def __init__(self, key: int, ticks: int) -> None:
        super().__init__(f"note {key} is held for {ticks} ticks (max 0xFFFFFF)")
        self.key = key
        self.ticks = ticks


class TooManyTracks(DSEBoundsError):
    def __init__(self, count: int) -> None:
        super().__init__(f"smf1 file has {count} channel tracks; at most 16 fit into midi channels")
        self.count = count


class MarkersTooFarApart(DSEBoundsError):
    def __init__(self, delta: int) -> None:
        super().__init__(f"flattened delta of {delta} ticks exceeds 2^28-1")
        self.delta = delta


class VoiceChannelRangeError(DSEBoundsError):
    pass


class SampleRateUnsupported(DSESemanticError):
    def __init__(self, sample_rate: float) -> None:
        super().__init__(f"sample rate {sample_rate} has no entry in the built-in adjustment table")
        self.sample_rate = sample_rate
