from .synchronise import synchronise_executors

__all__ = ["synchronise_executors"]
