from .block_streams import BlockStreamsHandler
from .executors import ExecutorsHandler

__all__ = ["BlockStreamsHandler", "ExecutorsHandler"]
