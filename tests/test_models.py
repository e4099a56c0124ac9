import pytest
import torch
import torch.nn as nn

from trainstats.errors import UnsupportedModelTopology
from trainstats.models.base import Topology, module_config_tree
from trainstats.models.graph import GraphModel
from trainstats.models.sequential import SequentialModel


def _tiny_model():
    return nn.Sequential(
        nn.Linear(8, 16),
        nn.ReLU(),
        nn.Linear(16, 4),
    )


class _TwoBranch(nn.Module):
    def __init__(self):
        super().__init__()
        self.left = nn.Linear(8, 4)
        self.right = nn.Linear(8, 4)

    def forward(self, x):
        return self.left(x) + self.right(x)


def _step(view, module, optimizer, batch_size=32, in_features=8):
    x = torch.randn(batch_size, in_features)
    loss = module(x).pow(2).mean()
    optimizer.zero_grad()
    loss.backward()
    optimizer.step()
    view.record_step(loss)
    return loss


class TestSequentialModel:

    def test_topology_and_counts(self):
        module = _tiny_model()
        view = SequentialModel(module)
        assert view.topology is Topology.SEQUENTIAL
        assert view.num_layers == 3
        assert view.num_params == 8 * 16 + 16 + 16 * 4 + 4
        assert view.param_names() == ["0.weight", "0.bias", "2.weight", "2.bias"]

    def test_rejects_non_sequential(self):
        with pytest.raises(TypeError):
            SequentialModel(_TwoBranch())

    def test_activations_are_next_layer_inputs(self):
        module = _tiny_model()
        view = SequentialModel(module)
        x = torch.randn(5, 8)
        with torch.no_grad():
            module(x)
            expected_0 = module[0](x)
            expected_1 = module[1](expected_0)

        acts = view.named_activations()
        # layer 0 input (raw data) and last layer output are never reported
        assert list(acts) == ["0", "1"]
        assert torch.allclose(acts["0"], expected_0)
        assert torch.allclose(acts["1"], expected_1)

    def test_rejects_reused_layer_instance(self):
        act = nn.ReLU()
        module = nn.Sequential(nn.Linear(8, 16), act, nn.Linear(16, 4), act)
        with pytest.raises(UnsupportedModelTopology):
            SequentialModel(module)
        # nothing was hooked, so the module runs untouched afterwards
        module(torch.randn(2, 8))

    def test_distinct_layers_of_same_type_are_accepted(self):
        module = nn.Sequential(nn.Linear(8, 16), nn.ReLU(), nn.Linear(16, 4), nn.ReLU())
        view = SequentialModel(module)
        x = torch.randn(3, 8)
        with torch.no_grad():
            module(x)
            expected_0 = module[0](x)
        assert view.num_layers == 4
        assert torch.allclose(view.named_activations()["0"], expected_0)

    def test_activations_empty_before_forward(self):
        assert SequentialModel(_tiny_model()).named_activations() == {}

    def test_batch_size_from_observed_input(self):
        module = _tiny_model()
        opt = torch.optim.SGD(module.parameters(), lr=0.1)
        view = SequentialModel(module, opt)
        assert view.batch_size is None

        _step(view, module, opt, batch_size=12)
        assert view.batch_size == 12

    def test_explicit_batch_size_wins(self):
        module = _tiny_model()
        view = SequentialModel(module)
        module(torch.randn(3, 8))
        view.record_step(0.5, batch_size=64)
        assert view.batch_size == 64

    def test_score(self):
        module = _tiny_model()
        opt = torch.optim.SGD(module.parameters(), lr=0.1)
        view = SequentialModel(module, opt)
        assert view.score is None

        loss = _step(view, module, opt)
        assert view.score == pytest.approx(loss.item())

        view.record_step(1.25)
        assert view.score == 1.25

    def test_gradients(self):
        module = _tiny_model()
        opt = torch.optim.SGD(module.parameters(), lr=0.1)
        view = SequentialModel(module, opt)
        assert view.named_gradients() == {}

        _step(view, module, opt)
        grads = view.named_gradients()
        assert set(grads) == set(view.param_names())
        assert grads["0.weight"].shape == module[0].weight.shape

    def test_learning_rates_per_param_group(self):
        module = _tiny_model()
        opt = torch.optim.SGD(
            [
                {"params": module[0].parameters(), "lr": 0.1},
                {"params": module[2].parameters(), "lr": 0.01},
            ]
        )
        view = SequentialModel(module, opt)
        lrs = view.learning_rates()
        assert lrs == {
            "0.weight": pytest.approx(0.1),
            "0.bias": pytest.approx(0.1),
            "2.weight": pytest.approx(0.01),
            "2.bias": pytest.approx(0.01),
        }

    def test_no_optimizer_means_no_learning_rates(self):
        assert SequentialModel(_tiny_model()).learning_rates() is None

    def test_close_removes_hooks(self):
        module = _tiny_model()
        view = SequentialModel(module)
        view.close()
        module(torch.randn(2, 8))
        assert view.named_activations() == {}

    def test_serialized_config_tree(self):
        view = SequentialModel(_tiny_model())
        cfg = view.serialized_config()
        assert cfg["topology"] == "sequential"
        tree = cfg["model"]
        assert tree["class"] == "Sequential"
        assert [c["class"] for c in tree["children"]] == ["Linear", "ReLU", "Linear"]
        assert tree["children"][0]["params"]["weight"] == [16, 8]
        assert "in_features=8" in tree["children"][0]["extra"]


class TestGraphModel:

    def test_topology_and_counts(self):
        view = GraphModel(_TwoBranch())
        assert view.topology is Topology.GRAPH
        assert view.num_layers == 2
        assert view.num_params == 2 * (8 * 4 + 4)

    def test_activations_fail_fast(self):
        view = GraphModel(_TwoBranch())
        with pytest.raises(UnsupportedModelTopology):
            view.named_activations()

    def test_batch_size_from_root_input(self):
        module = _TwoBranch()
        view = GraphModel(module)
        module(torch.randn(7, 8))
        assert view.batch_size == 7

    def test_learning_rates(self):
        module = _TwoBranch()
        opt = torch.optim.Adam(module.parameters(), lr=3e-4)
        view = GraphModel(module, opt)
        lrs = view.learning_rates()
        assert set(lrs) == {"left.weight", "left.bias", "right.weight", "right.bias"}
        assert all(v == pytest.approx(3e-4) for v in lrs.values())


def test_module_config_tree_for_leaf():
    tree = module_config_tree(nn.Linear(2, 3), "fc")
    assert tree["name"] == "fc"
    assert tree["children"] == []
    assert tree["params"] == {"weight": [3, 2], "bias": [3]}
