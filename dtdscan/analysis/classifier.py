from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from dtdscan.analysis.model import ConstructionSite, TypeRef, Verdict
from dtdscan.core.type_registry import SafeSignature, TypeRegistry

logger = logging.getLogger(__name__)

CompatibilityCheck = Callable[[TypeRef, str], bool]


class SafetyClassifier:
    """
    Decides whether a construction site routes parsing through a hardened reader.

    Classification depends only on the constructed type and the argument
    types, so the same site always gets the same verdict.
    """

    def __init__(self, registry: TypeRegistry):
        self.registry = registry

    def classify(self, site: ConstructionSite, is_compatible: CompatibilityCheck) -> Optional[Verdict]:
        signatures = self.registry.lookup(site.type_name)
        if signatures is None:
            return None
        if site.has_unresolved_arguments:
            # Missing type information never turns into a diagnostic.
            logger.debug(
                "Skipping %s at %s: argument type could not be resolved",
                site.simple_type_name, site.span,
            )
            return None
        is_safe = any(
            _matches(signature, site.argument_types, is_compatible)
            for signature in signatures
        )
        return Verdict(site=site, is_safe=is_safe)


def _matches(
    signature: SafeSignature,
    argument_types: Sequence[TypeRef],
    is_compatible: CompatibilityCheck,
) -> bool:
    if signature.arity != len(argument_types):
        return False
    return all(
        is_compatible(actual, required)
        for actual, required in zip(argument_types, signature.parameter_types)
    )
