"""
Fallback AutoML Simulator

Stands in for the H2O engine when the cluster probe fails, so a job still
walks progress 0 -> 100 and ends with plausible metrics and a model.

Each iteration trains a synthetic "candidate model" from a fixed algorithm
rotation. Its score follows a rising trend with bounded noise, capped by a
problem-type ceiling; the best-so-far score never decreases.
"""

from __future__ import annotations

import asyncio
import datetime
from typing import Callable, Dict, List, Optional

import numpy as np
from pydantic import BaseModel

from automl_studio.schemas.schemas import MetricsSnapshot, ProblemType, TrainingHistoryEntry
from automl_studio.utils.logger import get_logger

logger = get_logger("simulator")

ALGORITHMS = ["GBM", "Random Forest", "Deep Learning", "GLM", "XGBoost"]

# (base, span, noise, ceiling) per problem type
SCORE_SHAPES = {
    ProblemType.classification: (0.65, 0.25, 0.08, 0.95),
    ProblemType.regression: (0.70, 0.20, 0.06, 0.92),
}

INITIAL_BEST = 0.5

ProgressWriter = Callable[[int, float, Dict], None]


class SimulationResult(BaseModel):
    best_accuracy: float
    best_algorithm: str
    models_trained: int
    history: List[TrainingHistoryEntry]

    def final_metrics(self) -> MetricsSnapshot:
        acc = self.best_accuracy
        return MetricsSnapshot(
            accuracy=acc,
            precision=min(acc + 0.02, 0.98),
            recall=min(acc - 0.01, 0.95),
            f1=min(acc + 0.01, 0.96),
            models_trained=self.models_trained,
        )


class AutoMLSimulator:
    def __init__(
        self,
        iterations: int = 15,
        write_every: int = 3,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
        seed: Optional[int] = None,
    ):
        self.iterations = iterations
        self.write_every = write_every
        self.min_delay = min_delay
        self.max_delay = max(max_delay, min_delay)
        self.seed = seed

    def score(self, rng: np.random.Generator, problem_type: ProblemType, iteration: int) -> float:
        base, span, noise, ceiling = SCORE_SHAPES[ProblemType(problem_type)]
        trend = base + (iteration / self.iterations) * span
        return float(min(trend + rng.uniform(0.0, noise), ceiling))

    async def run(self, job_id: str, problem_type: ProblemType, write_progress: ProgressWriter) -> SimulationResult:
        """Run every iteration, calling ``write_progress(progress, best, metrics)`` on the write cadence."""
        logger.info(f"Running AutoML simulation for job {job_id} ({problem_type})")
        rng = np.random.default_rng(self.seed)
        history: List[TrainingHistoryEntry] = []
        best_accuracy = INITIAL_BEST
        best_algorithm = ALGORITHMS[0]

        for i in range(1, self.iterations + 1):
            algorithm = ALGORITHMS[i % len(ALGORITHMS)]
            accuracy = self.score(rng, problem_type, i)
            if accuracy > best_accuracy:
                best_accuracy = accuracy
                best_algorithm = algorithm

            history.append(
                TrainingHistoryEntry(
                    model=i,
                    algorithm=algorithm,
                    metric=accuracy,
                    elapsed_seconds=float(rng.uniform(10.0, 70.0)),
                    timestamp=datetime.datetime.now(datetime.timezone.utc),
                )
            )

            if i % self.write_every == 0 or i == self.iterations:
                progress = int(i * 100 // self.iterations)
                write_progress(
                    progress,
                    best_accuracy,
                    {"models_trained": i, "current_algorithm": algorithm, "best_accuracy": best_accuracy},
                )

            if i < self.iterations:
                delay = rng.uniform(self.min_delay, self.max_delay) if self.max_delay > 0 else 0.0
                await asyncio.sleep(delay)

        logger.info(f"Simulation for job {job_id} finished: best {best_algorithm} {best_accuracy:.4f}")
        return SimulationResult(
            best_accuracy=best_accuracy,
            best_algorithm=best_algorithm,
            models_trained=self.iterations,
            history=history,
        )
