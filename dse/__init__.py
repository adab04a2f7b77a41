"""Codec and translators for the DSE sound engine's SMDL/SWDL files."""

from .errors import (  # noqa: F401
    DSEBoundsError,
    DSECommandParseError,
    DSEError,
    DSEFormatError,
    DSEInternalError,
    DSEIOError,
    DSESemanticError,
    DSEStringError,
)
from .dtype import (  # noqa: F401
    DSEString,
    PointerTable,
    SongBuilderFlags,
    Table,
)
from .smdl import (  # noqa: F401
    SMDL,
    FixedDurationPause,
    Other,
    PlayNote,
    TrkChunk,
    create_smdl_shell,
)
from .swdl import (  # noqa: F401
    SWDL,
    ProgramInfo,
    SampleInfo,
    SplitEntry,
    Tuning,
    peek_song_builder_flags,
)
from .midi import (  # noqa: F401
    ProgramUsed,
    TrkChunkWriter,
    from_midi,
    open_midi,
)
from .sf2 import SoundFont2  # noqa: F401
from .sf2swdl import (  # noqa: F401
    DSPOptions,
    prune_swdl,
    swdl_from_sf2,
)
from .xml_mirror import (  # noqa: F401
    smdl_from_xml,
    smdl_to_xml,
    swdl_from_xml,
    swdl_to_xml,
)
