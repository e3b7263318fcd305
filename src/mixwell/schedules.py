"""
Parameter schedules.

A schedule maps the current step to a hyperparameter value such as the
learning rate. Schedules are pure functions of the step; bind their
constants with ``functools.partial`` and hand the result to an optimizer:

    >>> from functools import partial
    >>> lr = partial(cosine_decay, init_value=1e-3, decay_steps=1000)
    >>> opt = mixwell.optimizers.sgd(learning_rate=lr)

Every schedule accepts a scalar step or an array of steps and returns a
``numpy.float64`` (or a float64 array).
"""

import numpy as np


def _finish(value):
    value = np.asarray(value, dtype=np.float64)
    if value.ndim == 0:
        return np.float64(value)
    return value


def exponential_decay(step,
                      init_value: float = 1e-2,
                      decay_rate: float = 0.95,
                      transition_steps: int = 10,
                      transition_begin: int = 0,
                      staircase: bool = False):
    """
    Exponential decay schedule.

    gamma(t) = gamma_0 * r ** (t / k)

    Args:
        step: Current step
        init_value: Initial value, gamma_0
        decay_rate: Rate of decay, r
        transition_steps: Steps per transition, k
        transition_begin: Step to begin the transition at
        staircase: Discretize the exponent

    Examples:
        >>> float(exponential_decay(5))
        0.009746794344808964
        >>> float(exponential_decay(10, staircase=True, transition_steps=5))
        0.009025
    """
    step = np.asarray(step, dtype=np.float64) - transition_begin

    p = step / transition_steps
    if staircase:
        p = np.floor(p)

    return _finish(np.where(step <= 0, init_value, init_value * np.power(decay_rate, p)))


def cosine_decay(step,
                 init_value: float = 1e-2,
                 decay_steps: int = 10,
                 alpha: float = 0.0):
    """
    Cosine decay schedule.

    gamma(t) = gamma_0 * ((1 - alpha) * 0.5 * (1 + cos(pi * t / k)) + alpha)

    Args:
        step: Current step
        init_value: Initial value, gamma_0
        decay_steps: Number of steps to decay over, k
        alpha: Minimum multiplier of the initial value

    Examples:
        >>> float(cosine_decay(5))
        0.005
        >>> float(cosine_decay(1, decay_steps=4))
        0.008535533905932738

    References:
        SGDR: Stochastic Gradient Descent with Warm Restarts
        https://openreview.net/forum?id=Skq89Scxx
    """
    count = np.minimum(np.asarray(step, dtype=np.float64), decay_steps)
    decay = 0.5 * (1 + np.cos(np.pi * count / decay_steps))
    decayed = (1 - alpha) * decay + alpha
    return _finish(init_value * decayed)


def constant(step, init_value: float = 1e-2):
    """
    Constant schedule.

    Examples:
        >>> float(constant(100))
        0.01
    """
    return _finish(np.full(np.shape(step), init_value, dtype=np.float64))


def polynomial_decay(step,
                     init_value: float = 1e-2,
                     end_value: float = 1e-3,
                     power: float = 2,
                     transition_steps: int = 10,
                     transition_begin: int = 0):
    """
    Polynomial schedule.

    gamma(t) = (gamma_0 - gamma_n) * (1 - t / k) ** p + gamma_n

    Args:
        step: Current step
        init_value: Initial value, gamma_0
        end_value: Final value, gamma_n
        power: Power of the polynomial, p
        transition_steps: Steps to anneal over, k
        transition_begin: Step to begin annealing at

    Examples:
        >>> float(polynomial_decay(11))
        0.001
        >>> float(polynomial_decay(2, power=1.5))
        0.007439875775199396
    """
    count = np.clip(np.asarray(step, dtype=np.float64) - transition_begin, 0, transition_steps)
    frac = 1 - count / transition_steps
    return _finish((init_value - end_value) * np.power(frac, power) + end_value)
