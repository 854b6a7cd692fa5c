"""Query template expansion.

A template such as ``SELECT count() FROM {table} WHERE x < {limit}`` is
expanded into one concrete query per combination of substitution values.
Dimensions are walked in declaration order, so earlier dimensions vary
slower than later ones.  A dimension whose ``{name}`` never appears in
the template does not branch at all.
"""

from __future__ import annotations

from collections.abc import Sequence

Dimension = tuple[str, Sequence[str]]


def _placeholder(name: str) -> str:
    return "{" + name + "}"


def _expand(
    template: str,
    dimensions: Sequence[Dimension],
    chosen: tuple[tuple[str, str], ...],
) -> list[tuple[str, tuple[tuple[str, str], ...]]]:
    if not dimensions:
        return [(template, chosen)]

    (name, values), rest = dimensions[0], dimensions[1:]
    mask = _placeholder(name)
    if mask not in template:
        return _expand(template, rest, chosen)

    out: list[tuple[str, tuple[tuple[str, str], ...]]] = []
    for value in values:
        out.extend(_expand(template.replace(mask, value), rest, chosen + ((name, value),)))
    return out


def expand_with_parameters(
    template: str, dimensions: Sequence[Dimension]
) -> list[tuple[str, dict[str, str]]]:
    """Expand a template and report the values chosen for each result.

    Returns:
        ``(query, {dimension: value})`` pairs in Cartesian-product order.
        Only dimensions referenced by the template appear in the mapping.
    """
    return [(query, dict(chosen)) for query, chosen in _expand(template, list(dimensions), ())]


def expand(template: str, dimensions: Sequence[Dimension]) -> list[str]:
    """Expand a template into the ordered list of concrete queries.

    A referenced dimension without values yields no queries at all for
    the template.
    """
    return [query for query, _ in expand_with_parameters(template, dimensions)]


def expand_queries(
    templates: Sequence[str], dimensions: Sequence[Dimension]
) -> list[tuple[str, dict[str, str]]]:
    """Expand every template in order and concatenate the results."""
    expanded: list[tuple[str, dict[str, str]]] = []
    for template in templates:
        expanded.extend(expand_with_parameters(template, dimensions))
    return expanded
