# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Passes infrastructure for the graph IR."""

from __future__ import annotations

__all__ = [
    "InPlacePass",
    "PassBase",
    "PassError",
    "PassResult",
    "PostconditionError",
    "PreconditionError",
]

import abc
import dataclasses

import tensorshape as ts


class PassError(RuntimeError):
    """Raised when a pass fails."""


class PreconditionError(PassError):
    """Raised when a precondition of a pass is violated."""


class PostconditionError(PassError):
    """Raised when a postcondition of a pass is violated."""


@dataclasses.dataclass
class PassResult:
    """Result of a pass.

    Attributes:
        graph: The transformed graph.
        modified: Whether the graph was modified.
    """

    graph: ts.Graph
    modified: bool


class PassBase(abc.ABC):
    """Base class for all passes.

    Subclasses implement :meth:`call`. :meth:`requires` and :meth:`ensures` can
    be overridden to check pre- and postconditions.
    """

    @property
    @abc.abstractmethod
    def in_place(self) -> bool:
        """Whether the pass modifies the graph in place and returns it."""

    def __call__(self, graph_or_result: ts.Graph | PassResult) -> PassResult:
        # A pass can take the result of another pass as input
        if isinstance(graph_or_result, PassResult):
            graph = graph_or_result.graph
        else:
            graph = graph_or_result

        try:
            self.requires(graph)
        except PreconditionError:
            raise
        except Exception as e:
            raise PreconditionError(
                f"Pre-condition for pass '{self.__class__.__name__}' failed"
            ) from e

        result = self.call(graph)

        if not isinstance(result, PassResult):
            raise TypeError(
                f"The result of the pass '{self.__class__.__name__}' should be type PassResult. "
                "Please create one with ts.passes.PassResult()."
            )
        if self.in_place and result.graph is not graph:
            raise PassError(
                f"The pass '{self.__class__.__name__}' is declared in-place, "
                "but the graph returned is *not* the same object as the input graph."
            )

        try:
            self.ensures(result.graph)
        except PostconditionError:
            raise
        except Exception as e:
            raise PostconditionError(
                f"Post-condition for pass '{self.__class__.__name__}' failed"
            ) from e
        return result

    @abc.abstractmethod
    def call(self, graph: ts.Graph) -> PassResult:
        """The main entry point for the pass."""
        ...

    def requires(self, graph: ts.Graph) -> None:
        """Pre-conditions for the pass.

        Raise PreconditionError if the graph is not valid for the pass.
        """
        del graph  # Unused

    def ensures(self, graph: ts.Graph) -> None:
        """Post-conditions for the pass.

        Raise PostconditionError if the graph is not valid after the pass.
        """
        del graph  # Unused


class InPlacePass(PassBase):
    """A pass that modifies the input graph in place and returns it."""

    @property
    def in_place(self) -> bool:
        return True
