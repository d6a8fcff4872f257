from .client import YnabCache, YnabClient, YnabError

__all__ = ["YnabCache", "YnabClient", "YnabError"]
