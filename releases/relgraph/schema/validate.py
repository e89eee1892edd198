"""
Structural validation of resources against their kind schema.

Invariants:
    - Validation errors are deterministic (sorted by name within a group)
    - Unknown names suggest similar valid names
    - Every problem is reported, not just the first
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import Any, Iterable, List, Mapping, Sequence

from .types import CollectionSpec, FieldSpec, KindSchema


def _unknown(name: str, known: Iterable[str], what: str, where: str) -> str:
    suggestions = get_close_matches(name, list(known), n=3)
    if suggestions:
        return f"{where}: unknown {what} '{name}'. Did you mean: {suggestions}?"
    return f"{where}: unknown {what} '{name}'"


def validate_fields(
    specs: Sequence[FieldSpec],
    values: Mapping[str, Any],
    where: str,
) -> List[str]:
    """Validate domain field values against an allow-list.

    Args:
        specs: Permitted fields
        values: Field values to check
        where: Location prefix for error messages

    Returns:
        List of errors (empty if valid)
    """
    errors: List[str] = []
    known = [s.name for s in specs]
    for name in sorted(set(values) - set(known)):
        errors.append(_unknown(name, known, "field", where))

    for spec in specs:
        if spec.name not in values:
            if spec.required:
                errors.append(f"{where}: field '{spec.name}' is required")
            continue
        ok, message = spec.validate_value(values[spec.name])
        if not ok:
            errors.append(f"{where}: {message}")
    return errors


def validate_relations(
    permitted: Sequence[str],
    relations: Iterable[str],
    where: str,
) -> List[str]:
    return [
        _unknown(rel, permitted, "relation", where)
        for rel in sorted(set(relations) - set(permitted))
    ]


def validate_collection(
    spec: CollectionSpec,
    items: Sequence[Any],
    where: str,
) -> List[str]:
    """Validate every item of one ``_embedded`` collection."""
    errors: List[str] = []
    for i, item in enumerate(items):
        item_where = f"{where}[{i}]"
        errors.extend(validate_fields(spec.fields, item.fields, item_where))
        errors.extend(
            validate_relations(spec.relations, [l.relation for l in item.links], item_where)
        )
    return errors


def validate_resource(
    schema: KindSchema,
    fields: Mapping[str, Any],
    relations: Iterable[str],
    embedded: Mapping[str, Sequence[Any]],
) -> List[str]:
    """Validate a whole resource against its kind schema.

    Returns:
        List of errors (empty if valid)
    """
    where = schema.kind.value
    relations = list(relations)
    errors = validate_fields(schema.fields, fields, where)
    errors.extend(validate_relations(schema.relations, relations, f"{where}._links"))
    if "self" not in relations:
        errors.append(f"{where}._links: relation 'self' is required")

    known = [c.name for c in schema.collections]
    for name in sorted(embedded):
        spec = schema.get_collection(name)
        if spec is None:
            errors.append(_unknown(name, known, "collection", f"{where}._embedded"))
            continue
        errors.extend(validate_collection(spec, embedded[name], f"{where}._embedded.{name}"))
    return errors
