from .entropy_config import EntropyConfig, LoadEntropyConfig, deep_merge, load_defaults

__all__ = ["EntropyConfig", "LoadEntropyConfig", "deep_merge", "load_defaults"]
