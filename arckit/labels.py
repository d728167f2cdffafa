"""Label maps and label selectors."""

from __future__ import annotations

from dataclasses import dataclass

LABEL_KEY_RUNNER_TEMPLATE_HASH = "runner-template-hash"
LABEL_KEY_RUNNER_DEPLOYMENT_NAME = "runner-deployment-name"
LABEL_KEY_POD_TEMPLATE_HASH = "pod-template-hash"


@dataclass
class LabelSelectorRequirement:
    """One set-based requirement of a label selector."""

    key: str
    operator: str
    values: list[str] | None = None


@dataclass
class LabelSelector:
    """Equality and set-based label matching rules."""

    match_labels: dict[str, str] | None = None
    match_expressions: list[LabelSelectorRequirement] | None = None


def filter_labels(labels: dict[str, str], filter: str) -> dict[str, str]:
    """Return a copy of ``labels`` without the key ``filter``."""
    return {key: value for key, value in labels.items() if key != filter}


def clone_and_add_label(
    labels: dict[str, str] | None, key: str, value: str
) -> dict[str, str] | None:
    """Return a copy of ``labels`` with ``key`` set, or ``labels`` itself
    when ``key`` is empty."""
    if not key:
        return labels
    cloned = dict(labels or {})
    cloned[key] = value
    return cloned


def clone_selector_and_add_label(
    selector: LabelSelector, key: str, value: str
) -> LabelSelector:
    """Return a deep copy of ``selector`` whose match labels include
    ``key``, or ``selector`` itself when ``key`` is empty."""
    if not key:
        return selector

    match_labels = dict(selector.match_labels or {})
    match_labels[key] = value

    expressions = None
    if selector.match_expressions is not None:
        expressions = [
            LabelSelectorRequirement(
                key=requirement.key,
                operator=requirement.operator,
                values=None if requirement.values is None else list(requirement.values),
            )
            for requirement in selector.match_expressions
        ]

    return LabelSelector(match_labels=match_labels, match_expressions=expressions)