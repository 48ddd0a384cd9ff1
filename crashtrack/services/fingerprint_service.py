"""
Fingerprint computation for grouping events into issues.

The default grouping key covers the exception type and up to five in-app
frames. A project rule that matches replaces the components with its own
literal list. Components are serialized as compact JSON before hashing,
so ``None`` and ``""`` never collide and nesting stays explicit.
"""
import hashlib
import json
import logging
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, Iterable, List, Optional, Sequence

from crashtrack.database.models.crash_types import FingerprintMatchType
from crashtrack.models.crash_models import CaptureRequest, FingerprintRule, Frame

logger = logging.getLogger(__name__)

MAX_FINGERPRINT_FRAMES = 5


@dataclass(frozen=True)
class Fingerprint:
    """Computed grouping key and the components it was derived from."""

    hash: str
    components: List[Any]
    rule_index: Optional[int] = None

    @property
    def from_rule(self) -> bool:
        return self.rule_index is not None


def hash_components(components: Sequence[Any]) -> str:
    """Return the SHA-256 hex digest of the canonical JSON of ``components``."""
    canonical = json.dumps(list(components), separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def grouping_frames(frames: Sequence[Frame]) -> List[Frame]:
    """Up to five in-app frames, or up to five frames of any kind when none are in-app."""
    in_app = [frame for frame in frames if frame.in_app]
    chosen = in_app if in_app else list(frames)
    return chosen[:MAX_FINGERPRINT_FRAMES]


def default_components(event: CaptureRequest) -> List[Any]:
    frames = grouping_frames(event.stacktrace.frames)
    return [
        "default",
        event.exception_type,
        [[frame.function, frame.module] for frame in frames],
    ]


def _rule_matches(rule: FingerprintRule, event: CaptureRequest) -> bool:
    if rule.match_type == FingerprintMatchType.EXCEPTION_TYPE:
        return fnmatchcase(event.exception_type, rule.pattern)
    if rule.match_type == FingerprintMatchType.EXCEPTION_MESSAGE:
        return fnmatchcase(event.exception_value, rule.pattern)
    if rule.match_type == FingerprintMatchType.MODULE:
        return any(
            frame.module is not None and fnmatchcase(frame.module, rule.pattern)
            for frame in event.stacktrace.frames
        )
    if rule.match_type == FingerprintMatchType.FUNCTION:
        return any(
            frame.function is not None and fnmatchcase(frame.function, rule.pattern)
            for frame in event.stacktrace.frames
        )
    raise ValueError(f"Unknown fingerprint match type: {rule.match_type}")


def parse_rules(raw_rules: Optional[Iterable[Any]]) -> List[FingerprintRule]:
    """Validate stored rule dicts. Invalid entries are skipped with a warning."""
    rules: List[FingerprintRule] = []
    for index, raw in enumerate(raw_rules or []):
        if isinstance(raw, FingerprintRule):
            rules.append(raw)
            continue
        try:
            rules.append(FingerprintRule.model_validate(raw))
        except ValueError as e:
            logger.warning(f"Skipping invalid fingerprint rule #{index}: {e}")
    return rules


def compute_fingerprint(
    event: CaptureRequest, rules: Optional[Sequence[FingerprintRule]] = None
) -> Fingerprint:
    """
    Compute the grouping fingerprint for an event.

    Args:
        event: Event, after symbolication
        rules: Project rules in declaration order

    Returns:
        Fingerprint with a 64-character hex hash
    """
    for index, rule in enumerate(rules or []):
        if _rule_matches(rule, event):
            components: List[Any] = ["rule", *rule.fingerprint]
            logger.debug(f"Fingerprint rule #{index} matched ({rule.match_type.value}: {rule.pattern})")
            return Fingerprint(hash=hash_components(components), components=components, rule_index=index)

    components = default_components(event)
    return Fingerprint(hash=hash_components(components), components=components)
