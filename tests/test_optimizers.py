"""
Test Nested Optimizers
Verify multi-timescale scheduling, Adam/SGD rules, clipping and state handling
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import torch
import torch.nn as nn

from nested_learning.config import OptimizerConfig
from nested_learning.core.level import NestedOptimizationLevel
from nested_learning.exceptions import InvalidArgumentError, ShapeMismatchError
from nested_learning.optimizers import (
    AdamRule,
    DeepOptimizer,
    NestedAdam,
    NestedSGD,
    SGDRule,
    create_optimizer,
)


def make_level(index, frequency=1.0, lr=0.1, *params):
    level = NestedOptimizationLevel(index, update_frequency=frequency, learning_rate=lr)
    for param in params:
        level.add_parameter(param)
    return level


def test_multi_timescale_step():
    """Levels at [1, 0.1, 0.01] fire 100 / 10 / 1 times over 100 steps"""
    print("\n" + "-" * 70)
    print("TEST 1: Multi-timescale scheduling")
    print("-" * 70)

    levels = [make_level(i, f) for i, f in enumerate([1.0, 0.1, 0.01])]
    optimizer = DeepOptimizer(levels)

    fired_at_10 = None
    for step in range(1, 101):
        fired = optimizer.step()
        if step == 10:
            fired_at_10 = fired

    assert optimizer.current_step == 100
    assert [level.update_count for level in levels] == [100, 10, 1]
    assert levels[2].last_update_step == 100
    assert fired_at_10 == [0, 1]
    print("✓ Firing counts 100 / 10 / 1, step() advances without gradients")


def test_adam_single_step():
    """First Adam step moves the parameter by ~lr"""
    param = nn.Parameter(torch.tensor([1.0]))
    level = make_level(0, 1.0, 0.1, param)
    optimizer = NestedAdam([level])

    optimizer.step({param: torch.tensor([1.0])})
    assert abs(param.item() - 0.9) < 1e-5
    assert optimizer.state[param]['step'] == 1
    print(f"✓ Adam step: 1.0 -> {param.item():.6f}")


def test_sparse_adam_step_counter():
    """Moment state only advances when the owning level fires"""
    print("\n" + "-" * 70)
    print("TEST 2: Sparse Adam step counter")
    print("-" * 70)

    fast = nn.Parameter(torch.zeros(2))
    slow = nn.Parameter(torch.zeros(2))
    optimizer = NestedAdam([make_level(0, 1.0, 0.01, fast), make_level(1, 0.1, 0.01, slow)])

    for _ in range(30):
        optimizer.step({fast: torch.ones(2), slow: torch.ones(2)})

    assert optimizer.state[fast]['step'] == 30
    assert optimizer.state[slow]['step'] == 3
    print("✓ Slow level reached t=3 after 30 global steps")


def test_global_lr_fallback():
    param = nn.Parameter(torch.tensor([1.0]))
    optimizer = DeepOptimizer([make_level(0, 1.0, 0.0, param)], lr=0.5)
    optimizer.step({param: torch.tensor([1.0])})
    assert torch.allclose(param, torch.tensor([0.5]))
    print("✓ Level with lr=0 uses the global learning rate")


def test_missing_gradients_skipped():
    p1 = nn.Parameter(torch.ones(2))
    p2 = nn.Parameter(torch.ones(2))
    optimizer = DeepOptimizer([make_level(0, 1.0, 0.5, p1, p2)])

    fired = optimizer.step({p2: torch.ones(2)})
    assert fired == [0]
    assert torch.allclose(p1, torch.ones(2))
    assert torch.allclose(p2, torch.full((2,), 0.5))
    print("✓ Gradients paired per parameter, missing ones skipped")


def test_gradient_clipping():
    """scale = min(1, threshold / ||g||)"""
    print("\n" + "-" * 70)
    print("TEST 3: Gradient clipping")
    print("-" * 70)

    optimizer = DeepOptimizer(gradient_clipping=True, clip_threshold=1.0)
    clipped = optimizer.clip_gradient(torch.tensor([3.0, 4.0]))
    assert torch.allclose(clipped, torch.tensor([0.6, 0.8]))

    small = torch.tensor([0.3, 0.4])
    assert optimizer.clip_gradient(small) is small
    zero = torch.zeros(2)
    assert optimizer.clip_gradient(zero) is zero
    assert optimizer.clip_gradient(None) is None
    print("✓ Only gradients above the threshold are rescaled")

    param = nn.Parameter(torch.zeros(2))
    optimizer = DeepOptimizer(
        [make_level(0, 1.0, 1.0, param)], gradient_clipping=True, clip_threshold=1.0
    )
    optimizer.step({param: torch.tensor([3.0, 4.0])})
    assert torch.allclose(param, torch.tensor([-0.6, -0.8]))
    print("✓ Clipping applied inside step()")


def test_sgd_rules():
    # Weight decay: g = 0 + 0.5 * 2 = 1
    param = nn.Parameter(torch.tensor([2.0]))
    SGDRule(weight_decay=0.5).update(param, torch.tensor([0.0]), 0.1, {})
    assert torch.allclose(param, torch.tensor([1.9]))
    print("✓ Weight decay")

    # Classic momentum: v1 = 1, v2 = 1.9
    param = nn.Parameter(torch.tensor([0.0]))
    rule, state = SGDRule(momentum=0.9), {}
    rule.update(param, torch.tensor([1.0]), 1.0, state)
    rule.update(param, torch.tensor([1.0]), 1.0, state)
    assert torch.allclose(param, torch.tensor([-2.9]))
    assert state['step'] == 2
    print("✓ Momentum")

    # Nesterov: g + mu * v = 1 + 0.9
    param = nn.Parameter(torch.tensor([0.0]))
    SGDRule(momentum=0.9, nesterov=True).update(param, torch.tensor([1.0]), 1.0, {})
    assert torch.allclose(param, torch.tensor([-1.9]))
    print("✓ Nesterov momentum")


def test_amsgrad_keeps_maximum():
    param = nn.Parameter(torch.tensor([0.0]))
    rule, state = AdamRule(amsgrad=True), {}

    rule.update(param, torch.tensor([10.0]), 1e-3, state)
    assert torch.allclose(state['max_exp_avg_sq'], torch.tensor([100.0]), rtol=1e-3)

    rule.update(param, torch.tensor([0.1]), 1e-3, state)
    assert torch.allclose(state['max_exp_avg_sq'], torch.tensor([100.0]), rtol=1e-3)
    print("✓ AMSGrad keeps the running maximum of v_hat")


def test_adam_weight_decay():
    """Weight decay alone produces a step against the parameter sign"""
    param = nn.Parameter(torch.tensor([1.0]))
    AdamRule(weight_decay=0.1).update(param, torch.tensor([0.0]), 0.1, {})
    assert abs(param.item() - 0.9) < 1e-4
    print("✓ Adam weight decay")


def test_shape_mismatch():
    param = nn.Parameter(torch.zeros(3))
    optimizer = NestedAdam([make_level(0, 1.0, 0.1, param)])
    with pytest.raises(ShapeMismatchError):
        optimizer.step({param: torch.zeros(4)})
    print("✓ Gradient shape mismatch raises")


def test_zero_grad_and_reset():
    layer = nn.Linear(3, 2)
    level = make_level(0, 1.0, 0.1, *layer.parameters())
    optimizer = NestedSGD([level], momentum=0.9)

    layer(torch.randn(4, 3)).sum().backward()
    assert all(p.grad is not None for p in layer.parameters())

    before = layer.weight.detach().clone()
    optimizer.step()
    assert not torch.allclose(before, layer.weight)
    assert len(optimizer.get_velocities()) == 2
    print("✓ step() reads .grad from backward")

    optimizer.zero_grad()
    assert all(p.grad is None for p in layer.parameters())
    print("✓ zero_grad clears gradients")

    optimizer.reset()
    assert optimizer.current_step == 0
    assert optimizer.state == {}
    print("✓ reset clears step and state")


def test_state_dict_roundtrip():
    param = nn.Parameter(torch.ones(2))
    optimizer = NestedAdam([make_level(0, 1.0, 0.1, param)])
    for _ in range(3):
        optimizer.step({param: torch.ones(2)})
    state = optimizer.state_dict()

    other = NestedAdam([make_level(0, 1.0, 0.1, param)])
    other.load_state_dict(state)
    assert other.current_step == 3
    assert other.state[param]['step'] == 3
    assert torch.allclose(other.state[param]['exp_avg'], optimizer.state[param]['exp_avg'])
    assert other.levels[0].last_update_step == 3
    print("✓ State restored by parameter position")


def test_hyperparameter_clamping():
    adam = NestedAdam(beta1=1.5, beta2=-0.5, eps=0.0, weight_decay=-1.0, lr=-1.0)
    assert adam.beta1 == 1.0
    assert adam.beta2 == 0.0
    assert adam.eps == 1e-8
    assert adam.weight_decay == 0.0
    assert adam.lr == 0.0

    sgd = NestedSGD(momentum=2.0)
    sgd.weight_decay = -3.0
    assert sgd.momentum == 1.0
    assert sgd.weight_decay == 0.0
    assert sgd.get_config()['optimizer'] == 'NestedSGD'
    print("✓ Hyperparameters clamped")


def test_create_optimizer():
    levels = [make_level(0, 1.0, 0.1, nn.Parameter(torch.zeros(1)))]

    assert isinstance(create_optimizer(levels), NestedAdam)
    assert isinstance(create_optimizer(levels, OptimizerConfig(optimizer="sgd")), NestedSGD)

    ams = create_optimizer(levels, OptimizerConfig(optimizer="amsgrad"))
    assert isinstance(ams, NestedAdam) and ams.amsgrad

    with pytest.raises(InvalidArgumentError):
        create_optimizer(levels, OptimizerConfig(optimizer="lion"))
    print("✓ Factory builds Adam / AMSGrad / SGD and rejects unknown names")


if __name__ == "__main__":
    print("=" * 70)
    print("Testing Nested Optimizers")
    print("=" * 70)
    try:
        test_multi_timescale_step()
        test_adam_single_step()
        test_sparse_adam_step_counter()
        test_global_lr_fallback()
        test_missing_gradients_skipped()
        test_gradient_clipping()
        test_sgd_rules()
        test_amsgrad_keeps_maximum()
        test_adam_weight_decay()
        test_shape_mismatch()
        test_zero_grad_and_reset()
        test_state_dict_roundtrip()
        test_hyperparameter_clamping()
        test_create_optimizer()

        print("\n" + "=" * 70)
        print("✅ ALL OPTIMIZER TESTS PASSED")
        print("=" * 70)
    except Exception as e:
        print(f"\n❌ TEST FAILED: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
