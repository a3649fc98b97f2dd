"""Single normalization step from a raw client request to an immutable FilterSpec.

Every listing request passes through ``normalize_filter_spec`` exactly once.
Defaults (limit, sort) come from the target surface; anything the surface does
not declare is rejected here, before any backend is contacted.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import TypeAdapter, ValidationError

from venue_search.common.pagination import MAX_LIMIT, MAX_OFFSET, MIN_LIMIT
from venue_search.core.errors import InputError
from venue_search.filtering.surfaces import SearchSurface
from venue_search.schemas.filter_spec import (
    ContainsFilter,
    EqualsFilter,
    FieldFilter,
    FilterSpec,
    InFilter,
    OffsetPage,
    RangeFilter,
    SORT_FIELDS,
)

WILDCARD = "*"
RANGE_FROM_SUFFIX = "_from"
RANGE_TO_SUFFIX = "_to"

ALLOWED_REQUEST_KEYS = frozenset(
    {
        "term",
        "keyword",
        "filters",
        "geo",
        "lat",
        "lon",
        "radius",
        "sort",
        "sortBy",
        "sortDirection",
        "page",
        "limit",
        "offset",
        "cursor",
        "includeRelations",
        "include_relations",
    }
)

_adapters: dict[Any, TypeAdapter] = {}


def _adapter(value_type: Any) -> TypeAdapter:
    if value_type not in _adapters:
        _adapters[value_type] = TypeAdapter(value_type)
    return _adapters[value_type]


def flatten_filters(raw: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into dotted names: {"courts": {"sport": x}} -> {"courts.sport": x}."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten_filters(value, prefix=f"{name}."))
        else:
            flat[name] = value
    return flat


def classify_filter_values(raw: Mapping[str, Any]) -> dict[str, FieldFilter]:
    """
    Turn one level of raw filter values into typed filters.

    - None values are skipped
    - lists/tuples/sets become InFilter
    - ``<name>_from`` / ``<name>_to`` merge into one RangeFilter on ``<name>``
    - strings containing ``*`` become ContainsFilter with the markers stripped
    - everything else becomes EqualsFilter
    """
    result: dict[str, FieldFilter] = {}
    for key, value in raw.items():
        if value is None:
            continue

        if key.endswith(RANGE_FROM_SUFFIX) or key.endswith(RANGE_TO_SUFFIX):
            is_from = key.endswith(RANGE_FROM_SUFFIX)
            suffix = RANGE_FROM_SUFFIX if is_from else RANGE_TO_SUFFIX
            base = key[: -len(suffix)]
            if base:
                existing = result.get(base)
                bounds = {"gte": None, "lte": None}
                if isinstance(existing, RangeFilter):
                    bounds = {"gte": existing.gte, "lte": existing.lte}
                bounds["gte" if is_from else "lte"] = value
                result[base] = RangeFilter(**bounds)
                continue

        if isinstance(value, (list, tuple, set, frozenset)):
            result[key] = InFilter(values=tuple(value))
        elif isinstance(value, str) and WILDCARD in value:
            result[key] = ContainsFilter(value=value.replace(WILDCARD, ""))
        else:
            result[key] = EqualsFilter(value=value)
    return result


def parse_field_filters(raw: Mapping[str, Any] | None) -> dict[str, FieldFilter]:
    """Flatten and classify a raw ``filters`` mapping."""
    if not raw:
        return {}
    return classify_filter_values(flatten_filters(raw))


def _coerce(value: Any, value_type: Any, name: str) -> Any:
    try:
        return _adapter(value_type).validate_python(value)
    except ValidationError as e:
        raise InputError(
            f"Invalid value for filter '{name}'",
            details={"field": f"filters.{name}", "issue": e.errors()[0].get("msg", "invalid value")},
        ) from e


def coerce_field_filters(
    field_filters: Mapping[str, FieldFilter],
    surface: SearchSurface,
) -> dict[str, FieldFilter]:
    """Validate filter names against the surface registry and coerce values to the declared types."""
    coerced: dict[str, FieldFilter] = {}
    for name, field_filter in field_filters.items():
        field_def = surface.filter_fields.get(name)
        if field_def is None:
            raise InputError(
                f"Unknown filter field '{name}'",
                details={"field": f"filters.{name}", "allowed": sorted(surface.filter_fields)},
            )

        if isinstance(field_filter, EqualsFilter):
            coerced[name] = EqualsFilter(value=_coerce(field_filter.value, field_def.type, name))
        elif isinstance(field_filter, InFilter):
            coerced[name] = InFilter(values=tuple(_coerce(v, field_def.type, name) for v in field_filter.values))
        elif isinstance(field_filter, RangeFilter):
            coerced[name] = RangeFilter(
                gte=None if field_filter.gte is None else _coerce(field_filter.gte, field_def.type, name),
                lte=None if field_filter.lte is None else _coerce(field_filter.lte, field_def.type, name),
            )
        else:
            if field_def.type is not str:
                raise InputError(
                    f"Wildcard matching is only supported on text filters, not '{name}'",
                    details={"field": f"filters.{name}", "issue": "contains on non-text field"},
                )
            coerced[name] = field_filter
    return coerced


def normalize_field_filters(raw: Mapping[str, Any] | None, surface: SearchSurface) -> dict[str, FieldFilter]:
    """Parse and validate a raw filters mapping against a surface."""
    if raw is not None and not isinstance(raw, Mapping):
        raise InputError("filters must be an object", details={"field": "filters"})
    return coerce_field_filters(parse_field_filters(raw), surface)


def check_distance_sort(spec: FilterSpec) -> None:
    """Distance ordering needs an origin point."""
    if spec.sort.field == "distance" and spec.geo is None:
        raise InputError(
            "sort=distance requires a geo filter (lat, lon, radius)",
            details={"field": "sort.field", "issue": "distance sort without geo"},
        )


def check_result_window(spec: FilterSpec) -> None:
    """Offset pages must end inside the index result window."""
    if isinstance(spec.page, OffsetPage) and spec.page.start + spec.limit > MAX_OFFSET:
        raise InputError(
            f"Page ends past the first {MAX_OFFSET} results",
            details={"field": "page.page", "issue": f"start {spec.page.start} + limit {spec.limit} > {MAX_OFFSET}"},
        )


def _normalize_term(raw: Mapping[str, Any]) -> str | None:
    term = raw.get("term", raw.get("keyword"))
    if term is None:
        return None
    if not isinstance(term, str):
        raise InputError("term must be a string", details={"field": "term"})
    term = term.strip()
    return term or None


def _normalize_geo(raw: Mapping[str, Any]) -> dict[str, Any] | None:
    geo = raw.get("geo")
    if geo is None and ("lat" in raw or "lon" in raw):
        geo = {key: raw[key] for key in ("lat", "lon", "radius") if raw.get(key) is not None}
    if geo is None:
        return None
    if not isinstance(geo, Mapping):
        raise InputError("geo must be an object with lat, lon and radius", details={"field": "geo"})
    return dict(geo)


def _normalize_sort(raw: Mapping[str, Any], surface: SearchSurface) -> dict[str, str]:
    sort = raw.get("sort")
    if sort is None:
        field = raw.get("sortBy")
        direction = raw.get("sortDirection")
    elif isinstance(sort, Mapping):
        field = sort.get("field")
        direction = sort.get("direction")
    elif isinstance(sort, str):
        field, direction = sort, None
    else:
        raise InputError("sort must be an object with field and direction", details={"field": "sort"})

    if field is None:
        field, default_direction = surface.default_sort
    else:
        default_direction = "asc" if field == "distance" else "desc"

    if field not in surface.sort_fields:
        allowed = [name for name in SORT_FIELDS if name in surface.sort_fields]
        raise InputError(
            f"Unsupported sort field '{field}'",
            details={"field": "sort.field", "allowed": allowed},
        )

    direction = (direction or default_direction)
    if not isinstance(direction, str) or direction.lower() not in ("asc", "desc"):
        raise InputError(
            f"Unsupported sort direction '{direction}'",
            details={"field": "sort.direction", "allowed": ["asc", "desc"]},
        )
    return {"field": field, "direction": direction.lower()}


def _normalize_page(raw: Mapping[str, Any], surface: SearchSurface) -> dict[str, Any]:
    limit = raw.get("limit")
    if limit is None:
        limit = surface.default_limit

    if "cursor" in raw:
        cursor = raw.get("cursor")
        cursor = str(cursor).strip() if cursor is not None else None
        return {"mode": "cursor", "cursor": cursor or None, "limit": limit}

    page: dict[str, Any] = {"mode": "offset", "limit": limit}
    if raw.get("page") is not None:
        page["page"] = raw["page"]
    if raw.get("offset") is not None:
        page["offset"] = raw["offset"]
    return page


def validate_for_surface(spec: FilterSpec, surface: SearchSurface) -> FilterSpec:
    """Check an already-built FilterSpec against a surface (fields, sort, backend capabilities)."""
    coerce_field_filters(spec.field_filters, surface)
    if spec.sort.field not in surface.sort_fields:
        raise InputError(f"Unsupported sort field '{spec.sort.field}'", details={"field": "sort.field"})
    if spec.geo is not None and surface.backend != "index":
        raise InputError(
            f"Geo filtering is not available on '{surface.name}'",
            details={"field": "geo", "issue": "geo requires the search index"},
        )
    if surface.backend == "index":
        check_result_window(spec)
    check_distance_sort(spec)
    return spec


def normalize_filter_spec(raw: Mapping[str, Any] | FilterSpec | None, surface: SearchSurface) -> FilterSpec:
    """
    Build the immutable FilterSpec for one request.

    Accepted request keys: term (alias keyword), filters, geo (or top-level
    lat/lon/radius), sort (or sortBy/sortDirection), page, limit, offset,
    cursor, includeRelations. A request carrying a cursor is in cursor mode and
    its page/offset fields are ignored. A limit outside [1, 100] is rejected,
    never clamped.

    Raises:
        InputError: on unknown keys, unknown filter or sort fields, limit outside
            [1, 100], invalid coordinates or radius, sort=distance without geo,
            or an index offset page ending past the result window.
    """
    if isinstance(raw, FilterSpec):
        return validate_for_surface(raw, surface)

    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise InputError("Request must be an object")

    unknown = sorted(set(raw) - ALLOWED_REQUEST_KEYS)
    if unknown:
        raise InputError(
            f"Unknown request field(s): {', '.join(unknown)}",
            details={"fields": unknown, "allowed": sorted(ALLOWED_REQUEST_KEYS)},
        )

    limit = raw.get("limit")
    if limit is not None:
        limit_value = None
        if not isinstance(limit, bool):
            try:
                limit_value = int(limit)
            except (TypeError, ValueError):
                limit_value = None
        if limit_value is None or not MIN_LIMIT <= limit_value <= MAX_LIMIT:
            raise InputError(
                f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}",
                details={"field": "page.limit", "issue": f"got {limit!r}"},
            )

    data = {
        "term": _normalize_term(raw),
        "field_filters": normalize_field_filters(raw.get("filters"), surface),
        "geo": _normalize_geo(raw),
        "sort": _normalize_sort(raw, surface),
        "page": _normalize_page(raw, surface),
        "include_relations": bool(raw.get("includeRelations", raw.get("include_relations", False))),
    }

    try:
        spec = FilterSpec.model_validate(data)
    except ValidationError as e:
        raise InputError.from_validation_error(e) from e

    return validate_for_surface(spec, surface)
