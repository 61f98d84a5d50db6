from .tokensource import CombinedTokenSources, NoTokenSourcesError, ReuseTokenSource, TokenSource, TokenSourceError

__all__ = ["CombinedTokenSources", "NoTokenSourcesError", "ReuseTokenSource", "TokenSource", "TokenSourceError"]
