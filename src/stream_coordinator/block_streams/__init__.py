from .synchronise import (
    StreamStatus,
    classify_stream_status,
    determine_start_block_height,
    synchronise_block_streams,
)

__all__ = [
    "StreamStatus",
    "classify_stream_status",
    "determine_start_block_height",
    "synchronise_block_streams",
]
