"""
Parameter lenses.

A lens addresses one scalar field of a parameter record. It can read the value
with get(params) and produce an updated copy of the record with
set(params, value), without ever mutating the original record. Continuation
only ever sees the scalar, the lens keeps track of where it lives.
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Mapping
from typing import Any

import numpy as np

from .types import Params


class Lens:
    """Abstract base class for all parameter lenses."""

    def get(self, params: Params) -> Any:
        """Return the addressed value of the parameter record."""
        raise NotImplementedError("'Lens' is an abstract base class - do not use for actual parameter access!")

    def set(self, params: Params, value: Any) -> Params:
        """Return a copy of the parameter record with the addressed value replaced."""
        raise NotImplementedError("'Lens' is an abstract base class - do not use for actual parameter access!")

    @property
    def name(self) -> str:
        """A human readable name of the addressed field."""
        return type(self).__name__


class AttributeLens(Lens):
    """
    Lens for a named field.

    Works with mappings (e.g. dicts), dataclasses, named tuples and any other
    object with attributes.
    """

    def __init__(self, attribute: str) -> None:
        """
        Initialize the AttributeLens.

        Parameters
        ----------
        attribute
            The name of the key / attribute.
        """
        #: name of the key or attribute
        self.attribute = attribute

    def get(self, params: Params) -> Any:
        if isinstance(params, Mapping):
            return params[self.attribute]
        return getattr(params, self.attribute)

    def set(self, params: Params, value: Any) -> Params:
        if isinstance(params, Mapping):
            new_params = dict(params)
            new_params[self.attribute] = value
            return type(params)(new_params) if not isinstance(params, dict) else new_params
        if dataclasses.is_dataclass(params) and not isinstance(params, type):
            return dataclasses.replace(params, **{self.attribute: value})
        if isinstance(params, tuple) and hasattr(params, "_replace"):
            # named tuples
            return params._replace(**{self.attribute: value})
        # generic objects: shallow copy and overwrite the attribute
        new_params = copy.copy(params)
        setattr(new_params, self.attribute, value)
        return new_params

    @property
    def name(self) -> str:
        return self.attribute

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AttributeLens) and other.attribute == self.attribute

    def __hash__(self) -> int:
        return hash(("AttributeLens", self.attribute))

    def __repr__(self) -> str:
        return f"AttributeLens({self.attribute!r})"


class IndexLens(Lens):
    """Lens for an entry of a sequence or numpy array of parameters."""

    def __init__(self, index: int) -> None:
        """
        Initialize the IndexLens.

        Parameters
        ----------
        index
            The index of the entry.
        """
        #: index of the entry
        self.index = index

    def get(self, params: Params) -> Any:
        return params[self.index]

    def set(self, params: Params, value: Any) -> Params:
        if isinstance(params, np.ndarray):
            new_params = params.copy()
            if not np.iscomplexobj(new_params) and np.iscomplexobj(value):
                new_params = new_params.astype(complex)
            new_params[self.index] = value
            return new_params
        new_list = list(params)
        new_list[self.index] = value
        return type(params)(new_list) if isinstance(params, tuple) else new_list

    @property
    def name(self) -> str:
        return f"p[{self.index}]"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, IndexLens) and other.index == self.index

    def __hash__(self) -> int:
        return hash(("IndexLens", self.index))

    def __repr__(self) -> str:
        return f"IndexLens({self.index})"


def lens(key: str | int | Lens) -> Lens:
    """
    Create a lens from a key.

    Strings address named fields, integers address entries of sequences.
    Lenses are passed through unchanged.
    """
    if isinstance(key, Lens):
        return key
    if isinstance(key, (int, np.integer)):
        return IndexLens(int(key))
    return AttributeLens(key)
