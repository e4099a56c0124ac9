from typing import Dict, List, Optional

import torch
import torch.nn as nn

from trainstats.errors import UnsupportedModelTopology
from trainstats.models.base import ModelView, Topology
from trainstats.models.hooks import InputCaptureHook, attach_input_hook, detach_input_hooks


class SequentialModel(ModelView):
    """
    ModelView over an ordered layer stack (`nn.Sequential`).

    A forward pre-hook on every top-level layer keeps that layer's latest
    input. The activation of layer i-1 is the stored input of layer i, for
    i >= 1; the raw training input (layer 0's input) is never reported as an
    activation, and neither is the output of the last layer.
    """

    topology = Topology.SEQUENTIAL

    def __init__(
        self,
        module: nn.Sequential,
        optimizer: Optional[torch.optim.Optimizer] = None,
    ) -> None:
        if not isinstance(module, nn.Sequential):
            raise TypeError(
                f"SequentialModel expects nn.Sequential, got {type(module).__name__}"
            )
        # iterate positions, not children(): children() de-duplicates shared layers
        layers = list(module)
        if len({id(layer) for layer in layers}) != len(layers):
            raise UnsupportedModelTopology(
                "nn.Sequential reuses a layer instance at more than one position; "
                "per-layer activations cannot be attributed"
            )
        super().__init__(module, optimizer)
        self._layers: List[nn.Module] = layers
        self._hooks: List[InputCaptureHook] = [
            attach_input_hook(layer, str(i)) for i, layer in enumerate(self._layers)
        ]

    @property
    def num_layers(self) -> int:
        return len(self._layers)

    def _observed_input(self) -> Optional[torch.Tensor]:
        if not self._hooks:
            return None
        return self._hooks[0].latest

    def named_activations(self) -> Dict[str, torch.Tensor]:
        out: Dict[str, torch.Tensor] = {}
        for i in range(1, len(self._hooks)):
            latest = self._hooks[i].latest
            if latest is not None:
                out[str(i - 1)] = latest
        return out

    def close(self) -> None:
        detach_input_hooks(self._layers)
        self._hooks = []
