"""Sequence expansion.

Turns the loaded entities into the ordered list of navigation steps for a
format. Expansion is pure and deterministic: the same entities and format
always give the same steps in the same order, which is what lets a restarted
process find its place again.

Ordering recipe:
    countries by code
      -> queries by insertion order (query formats only)
        -> units: states by code, cities by (state code, name),
           zips by code, counties by name
"""

import logging
from dataclasses import replace
from typing import Dict, List, Sequence, Tuple, Union

from src.navigation.entities import City, Country, EntitySet, Query, State, Zip
from src.navigation.formats import NavFormat, parse_format
from src.navigation.models import Nav, StepRefs

__all__ = [
    'expand_sequence',
]


Unit = Tuple[Dict[str, str], StepRefs]


def _query_order(queries: Sequence[Query]) -> List[Query]:
    """Insertion order (row id); rows without an id go last, by text."""
    return sorted(
        (q for q in queries if q.query),
        key=lambda q: (q.id is None, q.id if q.id is not None else 0, q.query)
    )


def _zip_units(base: Dict[str, str], code: str, zips: Sequence[Zip]) -> List[Unit]:
    ordered = sorted(zips, key=lambda z: (z.zip, z.id if z.id is not None else 0))
    return [
        ({**base, 'zip': z.zip}, StepRefs(code, zip_id=z.id))
        for z in ordered if z.zip
    ]


def _state_units(base: Dict[str, str], code: str, states: Sequence[State]) -> List[Unit]:
    return [
        ({**base, 'state': s.state, 'state_short': s.state_short}, StepRefs(code, state_short=s.state_short))
        for s in states if s.state and s.state_short
    ]


def _city_units(
    base: Dict[str, str],
    code: str,
    cities: Sequence[City],
    states_by_short: Dict[str, State],
    with_state: bool,
) -> List[Unit]:
    units = []
    unresolved = 0
    for city in cities:
        if not city.city:
            continue
        if not with_state:
            units.append(({**base, 'city': city.city}, StepRefs(code, city_id=city.id)))
            continue

        # State data is authoritative: a city pointing at an unknown state is dropped
        state = states_by_short.get(city.state_short)
        if state is None or not state.state:
            unresolved += 1
            continue
        units.append((
            {**base, 'city': city.city, 'state': state.state, 'state_short': state.state_short},
            StepRefs(code, city_id=city.id, state_short=state.state_short),
        ))

    if unresolved:
        logging.warning(f"Skipped {unresolved} {code} cities whose state could not be resolved")
    return units


def _county_units(base: Dict[str, str], code: str, cities: Sequence[City]) -> List[Unit]:
    first_city: Dict[str, City] = {}
    for city in cities:
        if city.county and city.county not in first_city:
            first_city[city.county] = city
    return [
        ({**base, 'county': county}, StepRefs(code, city_id=first_city[county].id))
        for county in sorted(first_city)
    ]


def _units_for_country(
    nav_format: NavFormat,
    country: Country,
    states: Sequence[State],
    cities: Sequence[City],
    zips: Sequence[Zip],
) -> List[Unit]:
    """Geographic units of one country with their format-specific fields."""
    code = country.country_short
    base = {'country': code}
    if 'country_short' in nav_format.fields:
        base['country_short'] = code

    unit = nav_format.unit
    if unit == 'zip':
        return _zip_units(base, code, zips)
    if unit == 'state':
        return _state_units(base, code, states)
    if unit == 'city':
        states_by_short = {s.state_short: s for s in states}
        return _city_units(base, code, cities, states_by_short, nav_format.needs_state)
    if unit == 'county':
        return _county_units(base, code, cities)
    return [(base, StepRefs(code))]


def expand_sequence(entities: EntitySet, nav_format: Union[str, NavFormat]) -> List[Nav]:
    """Expand entities into the ordered step sequence for a format.

    Never raises for incomplete data: entities missing the values a format
    needs simply produce no step.

    Args:
        entities: Loaded countries, states, cities, zips and queries
        nav_format: Format selecting the fields of each step

    Returns:
        Ordered list of steps; index i + 1 is the successor of index i
    """
    nav_format = parse_format(nav_format)
    queries = _query_order(entities.queries) if nav_format.is_query else []

    steps: List[Nav] = []
    for country in sorted(entities.countries, key=lambda c: c.country_short):
        code = country.country_short
        if not code:
            continue

        states = sorted(
            (s for s in entities.states if s.country_short == code),
            key=lambda s: (s.state_short, s.state)
        )
        cities = sorted(
            (c for c in entities.cities if c.country_short == code),
            key=lambda c: (c.state_short, c.city, c.id if c.id is not None else 0)
        )
        zips = [z for z in entities.zips if z.country_short == code]

        units = _units_for_country(nav_format, country, states, cities, zips)

        if nav_format.is_query:
            for query in queries:
                for values, refs in units:
                    steps.append(Nav(
                        nav_format,
                        {**values, 'query': query.query},
                        replace(refs, query_id=query.id),
                    ))
        else:
            for values, refs in units:
                steps.append(Nav(nav_format, values, refs))

    logging.debug(f"Expanded {len(steps)} steps for format '{nav_format}'")
    return steps
