"""Navigation sequencing: formats, steps, expansion and the resumable cursor.

The sequencer itself lives in ``src.navigation.sequencer`` and is imported
from there, since it depends on the store and geodata packages.
"""

from .formats import NavFormat, parse_format
from .entities import City, Country, EntitySet, NavSession, Query, State, Zip
from .models import (
    COMPLETED,
    NOT_STARTED,
    InProgress,
    Nav,
    NavResponse,
    PageState,
    StepRefs,
    build_placeholder,
)
from .expander import expand_sequence

__all__ = [
    'COMPLETED',
    'City',
    'Country',
    'EntitySet',
    'InProgress',
    'NOT_STARTED',
    'Nav',
    'NavFormat',
    'NavResponse',
    'NavSession',
    'PageState',
    'Query',
    'State',
    'StepRefs',
    'Zip',
    'build_placeholder',
    'expand_sequence',
    'parse_format',
]
