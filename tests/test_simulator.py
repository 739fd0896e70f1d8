import pytest

from automl_studio.schemas.schemas import ProblemType
from automl_studio.services.simulator import ALGORITHMS, INITIAL_BEST, AutoMLSimulator, SimulationResult


def make_simulator(**kwargs):
    params = dict(iterations=15, write_every=3, min_delay=0.0, max_delay=0.0, seed=42)
    params.update(kwargs)
    return AutoMLSimulator(**params)


async def run(simulator, problem_type=ProblemType.classification):
    writes = []
    result = await simulator.run("job-1", problem_type, lambda p, best, m: writes.append((p, best, m)))
    return result, writes


async def test_writes_every_third_iteration_and_the_last():
    result, writes = await run(make_simulator())

    assert [p for p, _, _ in writes] == [20, 40, 60, 80, 100]
    assert [m["models_trained"] for _, _, m in writes] == [3, 6, 9, 12, 15]
    assert result.models_trained == 15
    assert len(result.history) == 15


async def test_final_write_when_iterations_do_not_divide():
    _, writes = await run(make_simulator(iterations=7))

    assert [p for p, _, _ in writes] == [42, 85, 100]


async def test_best_accuracy_never_decreases():
    result, writes = await run(make_simulator())

    bests = [best for _, best, _ in writes]
    assert bests == sorted(bests)
    assert all(best >= INITIAL_BEST for best in bests)
    assert result.best_accuracy == max(entry.metric for entry in result.history)
    assert writes[-1][1] == result.best_accuracy


@pytest.mark.parametrize("problem_type, ceiling", [(ProblemType.classification, 0.95), (ProblemType.regression, 0.92)])
async def test_scores_respect_ceiling(problem_type, ceiling):
    for seed in range(5):
        result, _ = await run(make_simulator(seed=seed), problem_type)
        assert all(0 < entry.metric <= ceiling for entry in result.history)


async def test_algorithms_rotate():
    result, _ = await run(make_simulator())

    algorithms = [entry.algorithm for entry in result.history]
    assert algorithms[:5] == ALGORITHMS[1:] + ALGORITHMS[:1]
    assert set(algorithms) == set(ALGORITHMS)
    assert result.best_algorithm in ALGORITHMS
    assert all(10 <= entry.elapsed_seconds <= 70 for entry in result.history)


async def test_seed_makes_runs_reproducible():
    first, _ = await run(make_simulator(seed=3))
    second, _ = await run(make_simulator(seed=3))

    assert [e.metric for e in first.history] == [e.metric for e in second.history]
    assert first.best_algorithm == second.best_algorithm


def test_final_metrics_are_capped():
    result = SimulationResult(best_accuracy=0.97, best_algorithm="GBM", models_trained=15, history=[])
    metrics = result.final_metrics()

    assert metrics.accuracy == pytest.approx(0.97)
    assert metrics.precision == pytest.approx(0.98)
    assert metrics.recall == pytest.approx(0.95)
    assert metrics.f1 == pytest.approx(0.96)
    assert metrics.models_trained == 15


async def test_no_delay_after_final_iteration(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("automl_studio.services.simulator.asyncio.sleep", fake_sleep)

    await run(make_simulator(iterations=4, min_delay=1.0, max_delay=3.0))

    assert len(delays) == 3
    assert all(1.0 <= d <= 3.0 for d in delays)
