# -*- coding: utf-8 -*-
"""
Particle MCMC — black-box parameter search by Metropolis sampling

A "simulation" takes a parameter vector theta and returns the resting
configuration of N particles. It is stochastic and treated as expensive, so
every chain step simulates exactly once (no averaging over repeats). A cost
function scores the configuration against a fixed target; the chain looks for
the theta that minimizes it.

Reference setup:
  - 4 particles whose ideal positions are the four corners of [0,9]x[0,9],
    in the order (xmax,ymax), (xmax,ymin), (xmin,ymin), (xmin,ymax).
  - 4 thetas. Particle i is drawn around (theta[i], theta[i+1]) with theta
    wrapping back to theta[0] for the last particle:
        x ~ Normal(theta[i], spread)
        y ~ Uniform(theta[i+1], theta[i+1] + spread)
    both clipped into the box. The y draw is one-sided on purpose.
  - cost = sum_i |target_i - particle_i|_1 (order matters, no matching).
  - Metropolis acceptance p = exp(oldCost - newCost), temperature 1, symmetric
    Gaussian random-walk proposal (clipping at the box is ignored).
  - The best-found record is a greedy memo of the lowest cost ever accepted.

Usage examples:
  # Quick run with a fixed seed
  python particle_mcmc.py --steps 20000 --seed 7

  # Full-length run, several independent chains, progress bars
  python particle_mcmc.py --chains 4 --seed 1234 --progress

  # Per-step debug lines (slow for long chains)
  python particle_mcmc.py --steps 200 --seed 1 --verbose --no_plot
"""

from __future__ import annotations

import argparse
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

try:
    import matplotlib.pyplot as plt  # type: ignore
except Exception:  # pragma: no cover
    plt = None

try:
    from tqdm import tqdm  # type: ignore
except Exception:  # pragma: no cover
    tqdm = None


logger = logging.getLogger(__name__)


# -----------------------------
# Bounds & constants
# -----------------------------
X_MIN = 0.0
X_MAX = 9.0
Y_MIN = 0.0
Y_MAX = 9.0
N_PARTICLES = 4
N_THETA = 4
Q_STD = 0.1           # proposal random-walk sigma
BASE_SPREAD = 0.75    # simulation noise scale
N_STEPS = 1_000_000
N_CORNERS = 4          # corner_target and ideal_theta are 4-particle layouts


class ConfigError(ValueError):
    """Raised at startup when the run configuration is inconsistent."""


@dataclass(frozen=True)
class Bounds:
    x_min: float = X_MIN
    x_max: float = X_MAX
    y_min: float = Y_MIN
    y_max: float = Y_MAX

    @property
    def theta_min(self) -> float:
        return 0.5 * (self.x_min + self.y_min)

    @property
    def theta_max(self) -> float:
        return 0.5 * (self.x_max + self.y_max)

    def midpoint_theta(self, n_theta: int) -> np.ndarray:
        return np.full(n_theta, 0.5 * (self.theta_min + self.theta_max), dtype=float)

    def ideal_theta(self) -> np.ndarray:
        """Theta whose noise-free simulation lands exactly on `corner_target`.

        Only defined for the 4-particle corner layout.
        """
        return np.array([self.x_max, self.y_max, self.x_min, self.y_min], dtype=float)


@dataclass(frozen=True)
class MCMCConfig:
    bounds: Bounds = field(default_factory=Bounds)
    n_particles: int = N_PARTICLES
    n_theta: int = N_THETA
    q_std: float = Q_STD
    base_spread: float = BASE_SPREAD
    steps: int = N_STEPS
    seed: Optional[int] = None

    def validate(self, corner_layout: bool = False) -> None:
        """Fail fast on an inconsistent setup.

        `corner_layout=True` also requires the 4-particle corner layout.
        """
        b = self.bounds
        if not (b.x_min < b.x_max and b.y_min < b.y_max):
            raise ConfigError(f"bounds must satisfy min < max, got {b}")
        if self.n_particles < 1:
            raise ConfigError(f"n_particles must be >= 1, got {self.n_particles}")
        if self.n_theta != self.n_particles:
            # simulate() reads theta[i] as the x mean of particle i
            raise ConfigError(
                f"n_theta ({self.n_theta}) must equal n_particles ({self.n_particles})"
            )
        if self.q_std < 0.0 or self.base_spread < 0.0:
            raise ConfigError("q_std and base_spread must be non-negative")
        if self.steps < 1:
            raise ConfigError(f"steps must be >= 1, got {self.steps}")
        if corner_layout and self.n_particles != N_CORNERS:
            raise ConfigError(
                f"the corner target needs n_particles={N_CORNERS}, got {self.n_particles}"
            )


# -----------------------------
# Points & configurations
# -----------------------------
@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def manhattan_distance(self, other: Point) -> float:
        return abs(self.x - other.x) + abs(self.y - other.y)

    def squared_distance(self, other: Point) -> float:
        return (self.x - other.x) ** 2 + (self.y - other.y) ** 2

    def __str__(self) -> str:
        return f"{{{self.x:g}, {self.y:g}}}"


Configuration = Tuple[Point, ...]


def corner_target(bounds: Bounds) -> Configuration:
    """The four box corners; only usable with N_CORNERS particles."""
    return (
        Point(bounds.x_max, bounds.y_max),
        Point(bounds.x_max, bounds.y_min),
        Point(bounds.x_min, bounds.y_min),
        Point(bounds.x_min, bounds.y_max),
    )


def format_configuration(configuration: Sequence[Point]) -> str:
    return "[" + ", ".join(str(p) for p in configuration) + "]"


# -----------------------------
# Cost
# -----------------------------
def configuration_cost(configuration: Sequence[Point], target: Sequence[Point]) -> float:
    """
    Position-wise Manhattan distance to the target:
      cost = Σ_i |target[i] - configuration[i]|_1
    Particles are NOT matched; the same points in another order cost more.
    """
    if len(configuration) != len(target):
        raise ValueError(
            f"configuration has {len(configuration)} points, target has {len(target)}"
        )
    return float(sum(t.manhattan_distance(p) for t, p in zip(target, configuration)))


# -----------------------------
# Stochastic "simulation" (black box)
# -----------------------------
Simulator = Callable[[np.ndarray, np.random.Generator], Configuration]


def simulate(
    theta: np.ndarray,
    rng: np.random.Generator,
    bounds: Bounds,
    n_particles: int,
    spread: float,
) -> Configuration:
    """
    Reference resting-state generator. For particle i:
      x ~ Normal(theta[i], spread)
      y ~ Uniform(theta[i+1], theta[i+1] + spread)   (theta[0] for the last i)
    each clipped into the bounds.
    """
    m = len(theta)
    points = []
    for i in range(n_particles):
        x_mean = float(theta[i])
        y_mean = float(theta[i + 1]) if i + 1 < m else float(theta[0])
        x = rng.normal(x_mean, spread)
        y = rng.uniform(y_mean, y_mean + spread)
        points.append(Point(
            min(max(float(x), bounds.x_min), bounds.x_max),
            min(max(float(y), bounds.y_min), bounds.y_max),
        ))
    return tuple(points)


def make_simulator(config: MCMCConfig) -> Simulator:
    def _sim(theta: np.ndarray, rng: np.random.Generator) -> Configuration:
        return simulate(theta, rng, config.bounds, config.n_particles, config.base_spread)

    return _sim


# -----------------------------
# Proposal (Gaussian random walk + clip)
# -----------------------------
def propose_theta(
    theta: np.ndarray,
    rng: np.random.Generator,
    q_std: float,
    theta_min: float,
    theta_max: float,
) -> np.ndarray:
    theta = np.asarray(theta, dtype=float)
    step = rng.normal(0.0, q_std, size=theta.shape)
    return np.clip(theta + step, theta_min, theta_max)


# -----------------------------
# Metropolis acceptance
# -----------------------------
def acceptance_probability(new_cost: float, old_cost: float) -> float:
    """p = exp(oldCost - newCost); >= 1 whenever the proposal is no worse."""
    expo = old_cost - new_cost
    expo = max(min(expo, 700.0), -700.0)
    return math.exp(expo)


def metropolis_accept(new_cost: float, old_cost: float, rng: np.random.Generator) -> bool:
    # u is drawn on every step so the RNG stream does not depend on the costs
    u = rng.random()
    return u < acceptance_probability(new_cost, old_cost)


# -----------------------------
# Chain state
# -----------------------------
@dataclass
class BestFound:
    theta: np.ndarray
    cost: float
    configuration: Configuration


@dataclass
class OptimizerState:
    step: int
    theta: np.ndarray
    cost: float
    best: BestFound
    accepts: int = 0


@dataclass
class ChainOut:
    thetas: np.ndarray       # (steps, n_theta)
    costs: np.ndarray        # (steps,)
    best_costs: np.ndarray   # (steps,) best cost after each step
    best: BestFound
    accept_rate: float


def init_state(
    config: MCMCConfig,
    rng: np.random.Generator,
    simulator: Simulator,
    target: Sequence[Point],
) -> OptimizerState:
    theta0 = config.bounds.midpoint_theta(config.n_theta)
    particles = simulator(theta0, rng)
    cost0 = configuration_cost(particles, target)
    return OptimizerState(
        step=0,
        theta=theta0,
        cost=cost0,
        best=BestFound(theta=theta0, cost=cost0, configuration=particles),
    )


def mcmc_step(
    state: OptimizerState,
    config: MCMCConfig,
    rng: np.random.Generator,
    simulator: Simulator,
    target: Sequence[Point],
) -> OptimizerState:
    """One propose -> simulate -> score -> accept/reject transition."""
    b = config.bounds
    theta_prop = propose_theta(state.theta, rng, config.q_std, b.theta_min, b.theta_max)
    particles = simulator(theta_prop, rng)
    new_cost = configuration_cost(particles, target)

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "step %d | theta'=%s | particles=%s | oldCost=%.6g newCost=%.6g prob=%.6g",
            state.step, np.array2string(theta_prop, precision=4), format_configuration(particles),
            state.cost, new_cost, acceptance_probability(new_cost, state.cost),
        )

    if not metropolis_accept(new_cost, state.cost, rng):
        return OptimizerState(
            step=state.step + 1,
            theta=state.theta,
            cost=state.cost,
            best=state.best,
            accepts=state.accepts,
        )

    best = state.best
    if new_cost < best.cost:
        best = BestFound(theta=theta_prop, cost=new_cost, configuration=particles)
    return OptimizerState(
        step=state.step + 1,
        theta=theta_prop,
        cost=new_cost,
        best=best,
        accepts=state.accepts + 1,
    )


# -----------------------------
# Driver (single chain)
# -----------------------------
def run_chain(
    config: MCMCConfig,
    rng: Optional[np.random.Generator] = None,
    simulator: Optional[Simulator] = None,
    target: Optional[Sequence[Point]] = None,
    show_progress: bool = False,
) -> ChainOut:
    """
    Run a fixed-length chain of `config.steps` states. Index 0 is the
    initial (midpoint) state; a rejected proposal repeats the previous state.
    Without an explicit `rng` the chain is seeded from `config.seed`.
    """
    config.validate(corner_layout=target is None)
    if rng is None:
        rng = np.random.default_rng(config.seed)
    if simulator is None:
        simulator = make_simulator(config)
    if target is None:
        target = corner_target(config.bounds)
    if len(target) != config.n_particles:
        raise ConfigError(
            f"target has {len(target)} points but n_particles={config.n_particles}"
        )

    steps = int(config.steps)
    thetas = np.zeros((steps, config.n_theta), dtype=float)
    costs = np.zeros(steps, dtype=float)
    best_costs = np.zeros(steps, dtype=float)

    state = init_state(config, rng, simulator, target)
    thetas[0] = state.theta
    costs[0] = state.cost
    best_costs[0] = state.best.cost

    it_range = range(steps - 1)
    if show_progress and tqdm is not None:
        it_range = tqdm(it_range, desc="Chain", leave=False)

    for _ in it_range:
        state = mcmc_step(state, config, rng, simulator, target)
        thetas[state.step] = state.theta
        costs[state.step] = state.cost
        best_costs[state.step] = state.best.cost

    accept_rate = state.accepts / max(1, steps - 1)
    logger.info(
        "chain done: steps=%d best cost=%.6g accept=%.3f", steps, state.best.cost, accept_rate
    )
    return ChainOut(
        thetas=thetas,
        costs=costs,
        best_costs=best_costs,
        best=state.best,
        accept_rate=accept_rate,
    )


# -----------------------------
# Independent chains
# -----------------------------
def run_chains(
    config: MCMCConfig,
    n_chains: int,
    show_progress: bool = False,
) -> List[ChainOut]:
    """Run `n_chains` non-interacting chains, each with its own RNG stream."""
    if n_chains < 1:
        raise ConfigError(f"n_chains must be >= 1, got {n_chains}")
    master_rng = np.random.default_rng(config.seed)
    chains: List[ChainOut] = []
    for ci in range(n_chains):
        # deterministic child seed stream
        child_seed = int(master_rng.integers(0, 2**32 - 1))
        rng = np.random.default_rng(child_seed)
        logger.info("chain %d/%d seed=%d", ci + 1, n_chains, child_seed)
        chains.append(run_chain(config, rng, show_progress=show_progress))
    return chains


def best_chain(chains: List[ChainOut]) -> ChainOut:
    if not chains:
        raise ValueError("no chains to aggregate")
    return min(chains, key=lambda c: c.best.cost)


# -----------------------------
# Plotting
# -----------------------------
def make_plots(
    outdir: str,
    chains: List[ChainOut],
    target: Sequence[Point],
    max_points: int = 5000,
) -> str:
    if plt is None:
        raise RuntimeError("Plotting requires matplotlib. Install it or run with --no_plot.")
    os.makedirs(outdir, exist_ok=True)
    outpng = os.path.join(outdir, "particle_mcmc.png")

    best = best_chain(chains)
    steps = len(best.costs)
    stride = max(1, steps // max_points)
    xs = np.arange(0, steps, stride)

    fig = plt.figure(figsize=(14, 9))

    # cost trace per chain
    ax1 = fig.add_subplot(2, 2, 1)
    for ci, c in enumerate(chains):
        ax1.plot(xs, c.costs[::stride], linewidth=0.8, label=f"chain {ci}")
    ax1.set_title("Chain cost vs step")
    ax1.set_xlabel("step")
    ax1.set_ylabel("cost")
    ax1.grid(True, alpha=0.3)
    ax1.legend(fontsize=8)

    # best-so-far trace per chain
    ax2 = fig.add_subplot(2, 2, 2)
    for ci, c in enumerate(chains):
        ax2.plot(xs, c.best_costs[::stride], label=f"chain {ci}")
    ax2.set_title("Best-found cost vs step")
    ax2.set_xlabel("step")
    ax2.set_ylabel("best cost")
    ax2.grid(True, alpha=0.3)
    ax2.legend(fontsize=8)

    # theta trace of the winning chain
    ax3 = fig.add_subplot(2, 2, 3)
    for k in range(best.thetas.shape[1]):
        ax3.plot(xs, best.thetas[::stride, k], linewidth=0.8, label=f"θ[{k}]")
    ax3.set_title("θ trace (best chain)")
    ax3.set_xlabel("step")
    ax3.set_ylabel("θ")
    ax3.grid(True, alpha=0.3)
    ax3.legend(fontsize=8)

    # best configuration vs target
    ax4 = fig.add_subplot(2, 2, 4)
    ax4.scatter([p.x for p in target], [p.y for p in target], marker="s", s=80,
                facecolors="none", edgecolors="k", label="target")
    ax4.scatter([p.x for p in best.best.configuration], [p.y for p in best.best.configuration],
                marker="o", label="best found")
    for i, (t, p) in enumerate(zip(target, best.best.configuration)):
        ax4.plot([t.x, p.x], [t.y, p.y], linestyle=":", linewidth=1.0, color="gray")
        ax4.annotate(str(i), (p.x, p.y))
    ax4.set_title(f"Best configuration (cost={best.best.cost:.3f})")
    ax4.set_xlabel("x")
    ax4.set_ylabel("y")
    ax4.grid(True, alpha=0.3)
    ax4.legend()

    plt.tight_layout()
    plt.savefig(outpng, dpi=150)
    plt.close(fig)
    return outpng


# -----------------------------
# Main
# -----------------------------
def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Metropolis MCMC search over black-box simulation parameters")
    ap.add_argument("--steps", type=int, default=N_STEPS, help="Chain length, including the initial state")
    ap.add_argument("--chains", type=int, default=1, help="Independent chains (best one is reported)")
    ap.add_argument("--seed", type=int, default=None, help="RNG seed (default: fresh entropy)")
    ap.add_argument("--q_std", type=float, default=Q_STD, help="Proposal random-walk sigma")
    ap.add_argument("--spread", type=float, default=BASE_SPREAD, help="Simulation noise scale")
    ap.add_argument("--x_min", type=float, default=X_MIN)
    ap.add_argument("--x_max", type=float, default=X_MAX)
    ap.add_argument("--y_min", type=float, default=Y_MIN)
    ap.add_argument("--y_max", type=float, default=Y_MAX)
    ap.add_argument("--outdir", type=str, default="particle_mcmc_out", help="Output directory for plots")
    ap.add_argument("--no_plot", action="store_true", help="Skip the trajectory figure")
    ap.add_argument("--progress", action="store_true", help="Show per-chain progress bars")
    ap.add_argument("--verbose", action="store_true", help="Log every chain step at DEBUG level")

    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # only this module gets DEBUG; third-party loggers stay at WARNING
    logger.setLevel(logging.DEBUG if args.verbose else logging.WARNING)

    config = MCMCConfig(
        bounds=Bounds(args.x_min, args.x_max, args.y_min, args.y_max),
        q_std=float(args.q_std),
        base_spread=float(args.spread),
        steps=int(args.steps),
        seed=args.seed,
    )
    config.validate(corner_layout=True)
    target = corner_target(config.bounds)

    print("\n--- Particle MCMC (Metropolis, one simulation per step) ---")
    print(f"particles={config.n_particles} thetas={config.n_theta} | bounds={config.bounds}")
    print(f"steps={config.steps} chains={args.chains} q_std={config.q_std} spread={config.base_spread}")
    print(f"seed={config.seed}\n")

    chains = run_chains(config, int(args.chains), show_progress=bool(args.progress))
    for ci, c in enumerate(chains):
        print(f"chain {ci}: cost0={c.costs[0]:.4f} best={c.best.cost:.4f} acc={c.accept_rate:.3f}")

    best = best_chain(chains).best
    print(f"\nPredicted theta: {np.array2string(best.theta, precision=4)}")
    print(f"Predicted particles: {format_configuration(best.configuration)}")
    print(f"Expected: {format_configuration(target)}")
    print(f"Predicted cost: {best.cost:.6f}")

    ideal = config.bounds.ideal_theta()
    rng_ideal = np.random.default_rng(config.seed)
    particles = simulate(ideal, rng_ideal, config.bounds, config.n_particles, config.base_spread)
    print("\nIdeal case")
    print(f"Best theta: {np.array2string(ideal, precision=4)}")
    print(f"Simulated particles: {format_configuration(particles)}")
    print(f"Cost: {configuration_cost(particles, target):.6f}")

    if not args.no_plot:
        outpng = make_plots(args.outdir, chains, target)
        print(f"\nSaved figure: {outpng}")


if __name__ == "__main__":
    main()
