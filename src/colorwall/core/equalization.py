"""White-balance equalization and overlap-range rescaling across projectors.

Three strategies choose the common target white balance; see
:class:`EqualizationMethod`. The chosen target is then applied to every
projector's LUTs and min/max values. Finally all LUTs are rescaled so every
projector stays inside the luminance range the whole wall can reach.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from colorwall.core.errors import ConvergenceError
from colorwall.core.types import CalibrationParams, RgbValue

if TYPE_CHECKING:
    from colorwall.core.context import CalibrationContext

__all__ = [
    "EqualizationMethod",
    "EqualizationStage",
    "OverlapStage",
    "apply_white_balance",
    "compute_common_range",
    "compute_white_balances",
    "corrected_luminance",
    "equalize_white_balances",
    "maximize_min_luminance",
    "rescale_to_common_range",
]

logger = logging.getLogger(__name__)


class EqualizationMethod(str, Enum):
    """Strategy used to choose the target white balance."""

    EQUALIZE_ONLY = "equalize_only"
    WEAKEST_LUMINANCE = "weakest_luminance"
    MAXIMIZE_MIN_LUMINANCE = "maximize_min_luminance"


# ---------------------------------------------------------------------------
# White balance
# ---------------------------------------------------------------------------


def compute_white_balances(params: Sequence[CalibrationParams]) -> list[CalibrationParams]:
    """Set ``white_balance = white_point / white_point.g`` on each projector.

    Returns:
        The projectors that could not be balanced (missing white point or
        non-positive green). Their ``white_balance`` is left unset.
    """
    rejected = []
    for p in params:
        if p.white_point is None or not p.white_point.g > 0:
            rejected.append(p)
            continue
        p.white_balance = p.white_point / p.white_point.g
        logger.info("Projector %s initial white balance: %s", p.name, p.white_balance)
    return rejected


def corrected_luminance(params: CalibrationParams, target: RgbValue) -> float:
    """Luminance of the projector's white point once balanced toward *target*."""
    return (params.white_point * (params.white_balance / target).normalize()).luminance()


def _min_corrected(params: Sequence[CalibrationParams], target: RgbValue) -> tuple[float, int]:
    values = [corrected_luminance(p, target) for p in params]
    index = int(np.argmin(values))
    return values[index], index


def maximize_min_luminance(
    params: Sequence[CalibrationParams], max_iterations: int = 100
) -> RgbValue:
    """Iteratively pull the target toward the dimmest corrected projector.

    Starting from (1, 1, 1), the target moves halfway toward the balance of
    the projector with the lowest corrected luminance until that minimum
    changes by less than 1% of the smallest white-point luminance.

    Returns:
        The best target seen, the initial one included, so the minimum
        corrected luminance never ends lower than at the start.

    Raises:
        ConvergenceError: After *max_iterations* steps; ``best`` holds the
            best target seen.
    """
    target = RgbValue(1.0, 1.0, 1.0)
    target_delta = min(p.white_point.luminance() for p in params) * 0.01

    best_target = target
    best_min, _ = _min_corrected(params, target)
    for iteration in range(1, max_iterations + 1):
        previous_min, min_index = _min_corrected(params, target)
        target = target * 0.5 + params[min_index].white_balance * 0.5
        new_min, _ = _min_corrected(params, target)
        if new_min > best_min:
            best_min, best_target = new_min, target

        delta = abs(new_min - previous_min)
        logger.debug(
            "White balance at iteration %d: %s, delta %.4f%%",
            iteration,
            target,
            100.0 * delta / new_min if new_min else float("inf"),
        )
        if delta < target_delta:
            logger.info("Optimized white balance: %s", best_target)
            return best_target

    raise ConvergenceError(
        f"White balance did not converge within {max_iterations} iterations",
        best=best_target,
    )


def equalize_white_balances(
    params: Sequence[CalibrationParams],
    method: EqualizationMethod | str = EqualizationMethod.MAXIMIZE_MIN_LUMINANCE,
    max_iterations: int = 100,
) -> RgbValue:
    """Choose the common target white balance.

    Args:
        params: Projectors with ``white_point`` and ``white_balance`` set.
        method: Strategy to apply.
        max_iterations: Iteration cap for the iterative strategy.

    Returns:
        The target white balance.

    Raises:
        ValueError: If *params* is empty or *method* is unknown.
        ConvergenceError: From the iterative strategy.
    """
    if not params:
        raise ValueError("No projector to equalize")
    method = EqualizationMethod(method)

    if method is EqualizationMethod.EQUALIZE_ONLY:
        total = RgbValue()
        for p in params:
            total = total + p.white_balance
        target = total / len(params)
    elif method is EqualizationMethod.WEAKEST_LUMINANCE:
        weakest = min(params, key=lambda p: p.white_point.luminance())
        target = weakest.white_balance
        logger.info("White balance of the weakest projector (%s): %s", weakest.name, target)
    elif method is EqualizationMethod.MAXIMIZE_MIN_LUMINANCE:
        target = maximize_min_luminance(params, max_iterations)
    else:
        raise ValueError(f"Unhandled equalization method {method!r}")
    return target


def apply_white_balance(params: CalibrationParams, target: RgbValue) -> RgbValue:
    """Scale LUT columns and min/max values by ``normalize(target / balance)``.

    Returns:
        The per-channel correction that was applied.
    """
    correction = (target / params.white_balance).normalize()
    if params.luts is not None:
        params.luts = params.luts * correction.as_array()[None, :]
    if params.min_values is not None:
        params.min_values = params.min_values * correction
    if params.max_values is not None:
        params.max_values = params.max_values * correction
    logger.info("Projector %s correction white balance: %s", params.name, correction)
    return correction


# ---------------------------------------------------------------------------
# Overlap range
# ---------------------------------------------------------------------------


def compute_common_range(
    params: Sequence[CalibrationParams],
) -> tuple[tuple[float, ...], tuple[float, ...]]:
    """Range every projector can reach, per channel and for luminance.

    Returns:
        ``(mins, maxs)``, each ``(R, G, B, luminance)``: the largest minimum
        and the smallest maximum over *params*.
    """
    if not params:
        raise ValueError("No projector to compute a common range from")
    mins = [0.0, 0.0, 0.0, 0.0]
    maxs = [float("inf")] * 4
    for p in params:
        for c in range(3):
            mins[c] = max(mins[c], p.min_values[c])
            maxs[c] = min(maxs[c], p.max_values[c])
        mins[3] = max(mins[3], p.min_values.luminance())
        maxs[3] = min(maxs[3], p.max_values.luminance())
    return tuple(mins), tuple(maxs)


def rescale_to_common_range(
    params: CalibrationParams, common_min_lum: float, common_max_lum: float
) -> tuple[float, float]:
    """Map a projector's LUTs onto the common luminance range.

    Every LUT value becomes ``v * scale + offset`` with the projector's own
    luminance range ``r``: ``offset = (common_min - min) / r`` and
    ``scale = (common_max - common_min) / r``.

    Returns:
        ``(scale, offset)``.

    Raises:
        ValueError: If the projector's luminance range is not positive.
    """
    own_min = params.min_values.luminance()
    span = params.max_values.luminance() - own_min
    if not span > 0:
        raise ValueError(
            f"Projector {params.name!r} has no positive luminance range ({span:.6g})"
        )
    offset = (common_min_lum - own_min) / span
    scale = (common_max_lum - common_min_lum) / span
    params.luts = params.luts * scale + offset
    return scale, offset


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


class EqualizationStage:
    """Stage 6: choose the target white balance and apply it.

    Projectors that cannot be balanced are marked failed. A convergence
    failure of the iterative strategy is recorded and its best target is
    used.

    Args:
        method: Equalization strategy.
        max_iterations: Iteration cap for the iterative strategy.
    """

    def __init__(
        self,
        method: EqualizationMethod | str = EqualizationMethod.MAXIMIZE_MIN_LUMINANCE,
        max_iterations: int = 100,
    ) -> None:
        self._method = EqualizationMethod(method)
        self._max_iterations = max_iterations

    def run(self, context: CalibrationContext) -> CalibrationContext:
        for p in compute_white_balances(context.active_params()):
            p.failed = True
            logger.warning("EqualizationStage: projector %s has no usable white point", p.name)
            context.record_failure(
                "EqualizationStage", "No usable white point", projector=p.name
            )

        active = context.active_params()
        if not active:
            logger.warning("EqualizationStage: no projector left to equalize")
            return context

        try:
            target = equalize_white_balances(active, self._method, self._max_iterations)
        except ConvergenceError as exc:
            logger.warning("EqualizationStage: %s; using best target %s", exc, exc.best)
            context.record_failure("EqualizationStage", str(exc))
            target = exc.best

        for p in active:
            apply_white_balance(p, target)
        context.target_white_balance = target
        return context


class OverlapStage:
    """Stage 7: rescale every LUT into the wall-wide common range."""

    def run(self, context: CalibrationContext) -> CalibrationContext:
        active = [p for p in context.active_params() if p.luts is not None]
        if not active:
            logger.warning("OverlapStage: no projector to rescale")
            return context

        mins, maxs = compute_common_range(active)
        logger.info("OverlapStage: common range %s -> %s", mins, maxs)
        for p in active:
            try:
                scale, offset = rescale_to_common_range(p, mins[3], maxs[3])
            except ValueError as exc:
                p.failed = True
                logger.warning("OverlapStage: %s", exc)
                context.record_failure("OverlapStage", str(exc), projector=p.name)
                continue
            logger.info(
                "OverlapStage: projector %s scale %.4f offset %.4f", p.name, scale, offset
            )
        context.common_range = (mins, maxs)
        return context
