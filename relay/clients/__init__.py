from .completion import CompletionClient

__all__ = ["CompletionClient"]
