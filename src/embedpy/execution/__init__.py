"""Process execution against an embedded runtime."""
from embedpy.execution.fallback import ElfLoaderFallback, FallbackPolicy, fallbacks_for_platform
from embedpy.execution.launcher import ProcessLauncher, classify_failure

__all__ = [
    "ElfLoaderFallback",
    "FallbackPolicy",
    "fallbacks_for_platform",
    "ProcessLauncher",
    "classify_failure",
]
