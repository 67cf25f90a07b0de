"""
Grammar adapters.

One adapter per supported surface grammar; each normalizes its grammar's
object-creation syntax into grammar-neutral construction sites.
"""

from typing import Dict, List, Type

from dtdscan.adapters.base import GrammarAdapter

# Registry of available adapters
_adapters: Dict[str, Type[GrammarAdapter]] = {}

ALIASES = {
    "cs": "csharp",
    "c#": "csharp",
    "vb": "vbnet",
    "visualbasic": "vbnet",
    "vb.net": "vbnet",
}


def register_adapter(language: str):
    """Decorator to register an adapter for a language."""
    def decorator(cls: Type[GrammarAdapter]) -> Type[GrammarAdapter]:
        _adapters[language.lower()] = cls
        return cls
    return decorator


def get_adapter(language: str) -> GrammarAdapter:
    """Get an adapter instance for a language."""
    language = language.lower()
    language = ALIASES.get(language, language)
    if language not in _adapters:
        raise KeyError(f"No grammar adapter registered for language: {language}")
    return _adapters[language]()


def list_supported_languages() -> List[str]:
    """List all languages with registered adapters."""
    return sorted(_adapters)


# Import adapters to register them
from dtdscan.adapters.csharp import CSharpAdapter  # noqa: E402
from dtdscan.adapters.vbnet import VisualBasicAdapter  # noqa: E402

__all__ = [
    "GrammarAdapter",
    "get_adapter",
    "register_adapter",
    "list_supported_languages",
    "CSharpAdapter",
    "VisualBasicAdapter",
]
