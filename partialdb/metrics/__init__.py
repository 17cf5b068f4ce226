from .instrument import instrumented

__all__ = ["instrumented"]
