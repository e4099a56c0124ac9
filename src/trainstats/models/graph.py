from typing import Dict, Optional

import torch
import torch.nn as nn

from trainstats.errors import UnsupportedModelTopology
from trainstats.models.base import ModelView, Topology
from trainstats.models.hooks import InputCaptureHook, attach_input_hook, detach_input_hooks


class GraphModel(ModelView):
    """
    ModelView over an arbitrary module graph.

    The output of one layer may feed several others, so per-layer activations
    cannot be derived from stored inputs; `named_activations()` fails fast.
    The batch size is taken from the first tensor passed to the root module.
    """

    topology = Topology.GRAPH

    def __init__(
        self,
        module: nn.Module,
        optimizer: Optional[torch.optim.Optimizer] = None,
    ) -> None:
        super().__init__(module, optimizer)
        self._root_hook: Optional[InputCaptureHook] = attach_input_hook(module, "input")

    @property
    def num_layers(self) -> int:
        """Number of leaf modules (containers are skipped)."""
        return sum(1 for m in self.module.modules() if not any(m.children()))

    def _observed_input(self) -> Optional[torch.Tensor]:
        if self._root_hook is None:
            return None
        return self._root_hook.latest

    def named_activations(self) -> Dict[str, torch.Tensor]:
        raise UnsupportedModelTopology(
            "Activation statistics are only available for sequential models"
        )

    def close(self) -> None:
        detach_input_hooks([self.module])
        self._root_hook = None
