"""
Update rules dispatched by the DeepOptimizer

The scheduler decides WHEN a level fires; an UpdateRule decides HOW the
level's parameters move once it does. Rules keep their per-parameter state in
a dict owned by the optimizer, so a parameter that belongs to a slow level only
advances its state on the sparse steps that level fires.

Adam (Adaptive Moment Estimation), per parameter and per firing:
-----------------------------------------------------------------
    g   <- g + wd * p                     (weight decay, if wd > 0)
    t   <- t + 1
    m   <- b1 * m + (1 - b1) * g
    v   <- b2 * v + (1 - b2) * g^2
    m^  =  m / (1 - b1^t)
    v^  =  v / (1 - b2^t)
    v^  <- max(v^, max_v^)                (AMSGrad only)
    p   <- p - lr * m^ / (sqrt(v^) + eps)

SGD with momentum:
------------------
    g   <- g + wd * p
    v   <- mu * v + g
    g   <- g + mu * v   (Nesterov)   |   g <- v   (classic)
    p   <- p - lr * g
"""

import logging
from typing import Any, Dict

import torch

from nested_learning.exceptions import ShapeMismatchError

logger = logging.getLogger(__name__)

MIN_EPSILON = 1e-8


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class UpdateRule:
    """Base class for per-parameter update rules."""

    name = "base"

    def update(
        self,
        param: torch.Tensor,
        grad: torch.Tensor,
        lr: float,
        state: Dict[str, Any],
    ):
        """
        Update `param` in place from `grad`.

        Args:
            param: Parameter to update
            grad: Gradient of the loss w.r.t. param (same shape)
            lr: Learning rate for this firing
            state: Per-parameter state dict, mutated in place
        """
        raise NotImplementedError

    def hyperparameters(self) -> Dict[str, Any]:
        return {}

    @staticmethod
    def _check_shape(param: torch.Tensor, grad: torch.Tensor):
        if grad.shape != param.shape:
            raise ShapeMismatchError(param.shape, grad.shape, context="gradient")

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v}" for k, v in self.hyperparameters().items())
        return f"{type(self).__name__}({params})"


class SGDRule(UpdateRule):
    """
    SGD with optional (Nesterov) momentum and L2 weight decay.

    Args:
        momentum: Momentum coefficient, clamped to [0, 1]
        weight_decay: L2 penalty (>= 0)
        nesterov: Use Nesterov momentum
    """

    name = "sgd"

    def __init__(self, momentum: float = 0.0, weight_decay: float = 0.0, nesterov: bool = False):
        self.momentum = _clamp_unit(momentum)
        self.weight_decay = max(0.0, float(weight_decay))
        self.nesterov = nesterov

    @torch.no_grad()
    def update(self, param, grad, lr, state):
        self._check_shape(param, grad)
        grad = grad.to(param.dtype)

        if self.weight_decay > 0.0:
            grad = grad.add(param, alpha=self.weight_decay)

        if self.momentum > 0.0:
            buf = state.get('momentum_buffer')
            if buf is None:
                buf = torch.zeros_like(param)
                state['momentum_buffer'] = buf
            buf.mul_(self.momentum).add_(grad)
            if self.nesterov:
                grad = grad.add(buf, alpha=self.momentum)
            else:
                grad = buf

        state['step'] = state.get('step', 0) + 1
        param.add_(grad, alpha=-lr)

    def hyperparameters(self):
        return {
            'momentum': self.momentum,
            'weight_decay': self.weight_decay,
            'nesterov': self.nesterov,
        }


class AdamRule(UpdateRule):
    """
    Adam / AMSGrad with bias correction.

    Args:
        beta1: First moment decay, clamped to [0, 1]
        beta2: Second moment decay, clamped to [0, 1]
        eps: Denominator term, floored at 1e-8
        weight_decay: L2 penalty added to the gradient (>= 0)
        amsgrad: Use the running maximum of the corrected second moment
    """

    name = "adam"

    def __init__(
        self,
        beta1: float = 0.9,
        beta2: float = 0.999,
        eps: float = 1e-8,
        weight_decay: float = 0.0,
        amsgrad: bool = False,
    ):
        self.beta1 = _clamp_unit(beta1)
        self.beta2 = _clamp_unit(beta2)
        self.eps = max(MIN_EPSILON, float(eps))
        self.weight_decay = max(0.0, float(weight_decay))
        self.amsgrad = amsgrad

    @torch.no_grad()
    def update(self, param, grad, lr, state):
        self._check_shape(param, grad)
        grad = grad.to(param.dtype)

        if self.weight_decay > 0.0:
            grad = grad.add(param, alpha=self.weight_decay)

        # Lazy state initialization
        if 'step' not in state:
            state['step'] = 0
            state['exp_avg'] = torch.zeros_like(param, memory_format=torch.preserve_format)
            state['exp_avg_sq'] = torch.zeros_like(param, memory_format=torch.preserve_format)

        state['step'] += 1
        t = state['step']
        exp_avg = state['exp_avg']
        exp_avg_sq = state['exp_avg_sq']

        exp_avg.mul_(self.beta1).add_(grad, alpha=1.0 - self.beta1)
        exp_avg_sq.mul_(self.beta2).addcmul_(grad, grad, value=1.0 - self.beta2)

        # beta == 1 makes the correction vanish; leave the moment uncorrected
        bias_correction1 = (1.0 - self.beta1 ** t) or 1.0
        bias_correction2 = (1.0 - self.beta2 ** t) or 1.0

        m_hat = exp_avg / bias_correction1
        v_hat = exp_avg_sq / bias_correction2

        if self.amsgrad:
            max_v_hat = state.get('max_exp_avg_sq')
            if max_v_hat is None:
                state['max_exp_avg_sq'] = v_hat.clone()
            else:
                torch.maximum(max_v_hat, v_hat, out=max_v_hat)
            v_hat = state['max_exp_avg_sq']

        denom = v_hat.clamp_min(0.0).sqrt().add_(self.eps)
        param.addcdiv_(m_hat, denom, value=-lr)

    def hyperparameters(self):
        return {
            'beta1': self.beta1,
            'beta2': self.beta2,
            'eps': self.eps,
            'weight_decay': self.weight_decay,
            'amsgrad': self.amsgrad,
        }
