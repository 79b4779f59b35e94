"""Privacy policy applied to a request before routing.

A profile can demand that requests stay on the machine (modes
``privacy-strict``, ``local-only`` and ``offline``, or
``privacy.allowExternal: false``). The router then only accepts
candidates from local provider kinds, whatever the rules prefer.
"""

from dataclasses import replace

from modelrouter.config.models import ProfileConfig, RoutingMode
from modelrouter.routing.scorer import RoutingContext, matches_path

REDACTED = "[REDACTED]"

STRICT_MODES = frozenset({
    RoutingMode.PRIVACY_STRICT,
    RoutingMode.LOCAL_ONLY,
    RoutingMode.OFFLINE,
})

# Lines kept from each end of a stripped prompt
KEEP_LINES = 50


def requires_local(profile: ProfileConfig, context: RoutingContext) -> bool:
    """Whether this request may only go to local providers."""
    if context.privacy_strict:
        return True
    if profile.mode in STRICT_MODES:
        return True
    return profile.privacy is not None and not profile.privacy.allow_external


def strip_large_content(content: str, keep: int = KEEP_LINES) -> str:
    """Keep the first and last ``keep`` lines of a long prompt."""
    lines = content.split("\n")
    if len(lines) <= keep * 2:
        return content
    omitted = len(lines) - keep * 2
    head = "\n".join(lines[:keep])
    tail = "\n".join(lines[-keep:])
    return f"{head}\n\n[... {omitted} lines omitted for privacy ...]\n\n{tail}"


def apply_privacy(profile: ProfileConfig, context: RoutingContext) -> RoutingContext:
    """Return the effective context for ``profile``. The input is not modified."""
    effective = replace(context, privacy_strict=requires_local(profile, context))

    privacy = profile.privacy
    if privacy is None:
        return effective

    if privacy.redact_paths and context.file_path:
        if any(matches_path(context.file_path, p) for p in privacy.redact_paths):
            effective = replace(effective, file_path=REDACTED)

    if privacy.strip_file_content_over_kb is not None and context.file_size_kb is not None:
        if context.file_size_kb > privacy.strip_file_content_over_kb:
            effective = replace(effective, prompt=strip_large_content(context.prompt))

    if privacy.anonymize_metadata and context.metadata:
        effective = replace(effective, metadata={})

    return effective
