"""
Model capability interface consumed by the StatsListener.

The listener never inspects a raw `nn.Module`. It is handed a ModelView, a
closed set of two topologies:

- SequentialModel : an ordered layer stack; activations are derivable
- GraphModel      : any other module graph; activations are not

Both wrap a PyTorch module plus (optionally) its optimizer, and are told
about each training step through `record_step(loss, batch_size)`.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

import torch
import torch.nn as nn


class Topology(str, Enum):
    SEQUENTIAL = "sequential"
    GRAPH = "graph"


def module_config_tree(module: nn.Module, name: str = "") -> Dict[str, Any]:
    """
    Serialize a module hierarchy into a JSON-like tree.

    Each node carries the module class, its `extra_repr()` (hyper-parameters
    such as in/out features), the shapes of its own parameters, and its
    children in registration order.
    """
    return {
        "name": name,
        "class": type(module).__name__,
        "extra": module.extra_repr(),
        "params": {
            pname: list(p.shape) for pname, p in module.named_parameters(recurse=False)
        },
        "children": [
            module_config_tree(child, cname)
            for cname, child in module.named_children()
        ],
    }


class ModelView(ABC):
    """
    Abstract capability interface over a training model.

    Subclasses must provide the topology tag and the activation mapping; the
    rest is shared.
    """

    topology: Topology

    def __init__(
        self,
        module: nn.Module,
        optimizer: Optional[torch.optim.Optimizer] = None,
    ) -> None:
        self.module = module
        self.optimizer = optimizer
        self._loss: Any = None
        self._batch_size: Optional[int] = None

    # ------------------------------------------------------------------
    # per-step state
    # ------------------------------------------------------------------

    def record_step(self, loss: Any, batch_size: Optional[int] = None) -> None:
        """
        Record the outcome of one training step.

        The loss is kept as given (tensors are detached) and only converted to
        a float when a report reads `score`, so skipped iterations never force
        a device sync.
        """
        self._loss = loss.detach() if isinstance(loss, torch.Tensor) else loss
        self._batch_size = None if batch_size is None else int(batch_size)

    @property
    def score(self) -> Optional[float]:
        if self._loss is None:
            return None
        if isinstance(self._loss, torch.Tensor):
            return float(self._loss.float().mean().item())
        return float(self._loss)

    @property
    def batch_size(self) -> Optional[int]:
        """Examples in the current minibatch, or None if unknown."""
        if self._batch_size is not None:
            return self._batch_size
        t = self._observed_input()
        if t is None or t.dim() == 0:
            return None
        return int(t.shape[0])

    def _observed_input(self) -> Optional[torch.Tensor]:
        return None

    # ------------------------------------------------------------------
    # named arrays
    # ------------------------------------------------------------------

    def named_parameters(self) -> Dict[str, torch.Tensor]:
        return {name: p.detach() for name, p in self.module.named_parameters()}

    def named_gradients(self) -> Dict[str, torch.Tensor]:
        """Current gradients; parameters without a gradient are omitted."""
        return {
            name: p.grad.detach()
            for name, p in self.module.named_parameters()
            if p.grad is not None
        }

    def param_names(self) -> List[str]:
        return [name for name, _ in self.module.named_parameters()]

    @abstractmethod
    def named_activations(self) -> Dict[str, torch.Tensor]:
        raise NotImplementedError("Must be implemented by subclasses.")

    def learning_rates(self) -> Optional[Dict[str, float]]:
        """
        Learning rate per parameter name, read from the optimizer param groups.
        Returns None when no optimizer is attached.
        """
        if self.optimizer is None:
            return None
        names = {id(p): name for name, p in self.module.named_parameters()}
        out: Dict[str, float] = {}
        for group in self.optimizer.param_groups:
            lr = group.get("lr")
            if lr is None:
                continue
            lr = float(lr.item()) if isinstance(lr, torch.Tensor) else float(lr)
            for p in group["params"]:
                name = names.get(id(p))
                if name is not None:
                    out[name] = lr
        return out

    # ------------------------------------------------------------------
    # static description
    # ------------------------------------------------------------------

    @property
    def class_name(self) -> str:
        cls = type(self.module)
        return f"{cls.__module__}.{cls.__qualname__}"

    @property
    def num_params(self) -> int:
        return int(sum(p.numel() for p in self.module.parameters()))

    @property
    @abstractmethod
    def num_layers(self) -> int:
        raise NotImplementedError("Must be implemented by subclasses.")

    def serialized_config(self) -> Dict[str, Any]:
        return {
            "topology": self.topology.value,
            "model": module_config_tree(self.module),
        }

    def close(self) -> None:
        """Release any hooks attached to the wrapped module."""
