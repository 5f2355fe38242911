"""Configuration loader for blocked guided-proposal path imputation."""

import logging
import numbers
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

from bridge_mcmc.errors import ConfigurationError

logger = logging.getLogger(__name__)

BLOCKING_SCHEMES = ("chequered", "none")
CHANGE_POINT_KINDS = ("simple", "none")


def is_integer_knot(k) -> bool:
    """True for integral numbers, including floats such as 3.0. Bools are rejected."""
    return not isinstance(k, bool) and isinstance(k, numbers.Real) and float(k).is_integer()


@dataclass(frozen=True)
class BlockingConfig:
    """Blocking scheme for path imputation.

    knots are observation indices (1-based, the starting point is 0) after
    which a block boundary falls. They are split into two interlaced covers.
    """

    scheme: str = "chequered"
    knots: tuple[int, ...] = ()
    epsilon: float = 1e-7
    change_point: str = "simple"
    change_point_buffer: int = 100

    def __post_init__(self):
        if self.scheme not in BLOCKING_SCHEMES:
            raise ConfigurationError(
                f"Unknown blocking scheme {self.scheme!r}, expected one of {BLOCKING_SCHEMES}"
            )
        if self.change_point not in CHANGE_POINT_KINDS:
            raise ConfigurationError(
                f"Unknown change point {self.change_point!r}, expected one of {CHANGE_POINT_KINDS}"
            )
        if not self.epsilon > 0:
            raise ConfigurationError(f"epsilon ({self.epsilon}) must be positive")
        if self.change_point_buffer < 0:
            raise ConfigurationError(
                f"change_point_buffer ({self.change_point_buffer}) must be non-negative"
            )
        for k in self.knots:
            if not is_integer_knot(k):
                raise ConfigurationError(f"Knot {k!r} is not an integer")
        # YAML hands over lists
        object.__setattr__(self, "knots", tuple(int(k) for k in self.knots))

    def change_point_template(self):
        """Change-point policy assigned to knot segments."""
        from bridge_mcmc.guiding.change_points import NoChangePt, SimpleChangePt

        if self.change_point == "simple":
            return SimpleChangePt(self.change_point_buffer)
        return NoChangePt(self.change_point_buffer)


@dataclass(frozen=True)
class GridConfig:
    """Fine time grid used on every segment."""

    dt: float = 0.02
    time_change: bool = True

    def __post_init__(self):
        if not self.dt > 0:
            raise ConfigurationError(f"dt ({self.dt}) must be positive")


@dataclass(frozen=True)
class SolverConfig:
    """Backward-recursion solver settings and output validation.

    stiffness_limit bounds h·‖2ãH‖ on the Riccati form; segments above it
    are solved in the LMμ form.
    """

    check_psd: bool = True
    psd_tol: float = 1e-8
    stiffness_limit: float = 1.0

    def __post_init__(self):
        if not self.stiffness_limit > 0:
            raise ConfigurationError(f"stiffness_limit ({self.stiffness_limit}) must be positive")


@dataclass(frozen=True)
class BridgeConfig:
    """Full configuration."""

    blocking: BlockingConfig = field(default_factory=BlockingConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)


def parse_config(raw: dict | None) -> BridgeConfig:
    """Build a BridgeConfig from an already-parsed YAML mapping.

    Every section is optional and falls back to its defaults.
    """
    raw = dict(raw or {})
    try:
        blocking_raw = raw.get("blocking") or {}
        grid_raw = raw.get("grid") or {}
        solver_raw = raw.get("solver") or {}
        return BridgeConfig(
            blocking=BlockingConfig(**blocking_raw) if blocking_raw else BlockingConfig(),
            grid=GridConfig(**grid_raw) if grid_raw else GridConfig(),
            solver=SolverConfig(**solver_raw) if solver_raw else SolverConfig(),
        )
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _find_config_path() -> Path:
    """Find config.yaml by walking up from this file to the project root."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        config_path = parent / "config.yaml"
        if config_path.exists():
            return config_path
    raise FileNotFoundError("config.yaml not found in any parent directory")


@lru_cache(maxsize=4)
def load_config(path: str | None = None) -> BridgeConfig:
    """Load and parse the configuration.

    Returns cached config on subsequent calls with the same path.
    """
    config_path = Path(path) if path is not None else _find_config_path()

    with config_path.open() as f:
        raw = yaml.safe_load(f)

    config = parse_config(raw)
    logger.info(
        "Loaded %s blocking config from %s (%d knots)",
        config.blocking.scheme,
        config_path,
        len(config.blocking.knots),
    )
    return config
