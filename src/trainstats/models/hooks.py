import weakref
from typing import Any, List, Optional

import torch
import torch.nn as nn

from trainstats.loggers.error_log import get_error_logger

# Registry to prevent multiple hook attachments per module
_input_hook_registry: "weakref.WeakKeyDictionary[nn.Module, InputCaptureHook]" = (
    weakref.WeakKeyDictionary()
)


def _first_tensor(obj: Any) -> Optional[torch.Tensor]:
    """Return the first tensor found in a tensor or nested list/tuple/dict."""
    if isinstance(obj, torch.Tensor):
        return obj
    if isinstance(obj, (list, tuple)):
        for x in obj:
            t = _first_tensor(x)
            if t is not None:
                return t
    if isinstance(obj, dict):
        for x in obj.values():
            t = _first_tensor(x)
            if t is not None:
                return t
    return None


class InputCaptureHook:
    """
    Forward pre-hook keeping a detached reference to a module's latest input.

    Only a reference is kept (no copy), so an in-place operation in a later
    layer is visible in the stored tensor.
    """

    def __init__(self, layer_name: str):
        self.layer_name = layer_name
        self.latest: Optional[torch.Tensor] = None
        self._handle = None
        self._logger = get_error_logger("InputCaptureHook")

    def __call__(self, module: nn.Module, inputs: Any) -> None:
        try:
            t = _first_tensor(inputs)
            self.latest = t.detach() if t is not None else None
        except Exception as e:
            self._logger.error(
                f"[TrainStats] Error capturing input for layer {self.layer_name}: {e}"
            )

    def attach(self, module: nn.Module) -> "InputCaptureHook":
        self._handle = module.register_forward_pre_hook(self)
        return self

    def remove(self) -> None:
        if self._handle is not None:
            self._handle.remove()
            self._handle = None
        self.latest = None


def attach_input_hook(module: nn.Module, layer_name: str) -> InputCaptureHook:
    """
    Attach an InputCaptureHook to `module`.
    Hooks are idempotent: repeated calls return the existing hook.
    """
    hook = _input_hook_registry.get(module)
    if hook is not None:
        return hook
    hook = InputCaptureHook(layer_name).attach(module)
    _input_hook_registry[module] = hook
    return hook


def detach_input_hooks(modules: List[nn.Module]) -> None:
    for module in modules:
        hook = _input_hook_registry.pop(module, None)
        if hook is not None:
            hook.remove()
