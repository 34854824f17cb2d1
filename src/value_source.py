import hashlib
import numpy as np

from enum import Enum
from typing import Any, Dict, Optional

# Internal Imports
from errors import ConfigurationError


class DistributionType(Enum):
    FIXED = "fixed"
    NORMAL = "normal"
    UNIFORM = "uniform"


REQUIRED_PARAMS = {
    DistributionType.FIXED: ("value",),
    DistributionType.NORMAL: ("mean", "stdev"),
    DistributionType.UNIFORM: ("lower", "upper"),
}


class ValueSource:
    """
    Seeded sampler shared by everything stochastic inside one trial.

    The seed string is hashed into a numpy generator, so two sources built
    from the same seed return identical sequences as long as the calls
    happen in the same order.
      - fixed:   the constant itself, consumes no draws
      - normal:  Box-Muller over two uniform draws
      - uniform: linear scaling of one uniform draw
    """

    def __init__(self, seed: Any):
        self.seed = str(seed)
        digest = hashlib.sha256(self.seed.encode("utf-8")).digest()
        self.rng = np.random.default_rng(int.from_bytes(digest[:8], "big"))

    def random(self) -> float:
        return float(self.rng.random())

    def uniform(self, lower: float, upper: float) -> float:
        return lower + (upper - lower) * self.random()

    def normal(self, mean: float, stdev: float) -> float:
        # 1 - u keeps the log argument in (0, 1]
        u1 = 1.0 - self.random()
        u2 = self.random()
        z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
        return float(mean + stdev * z)


class Distribution:
    def __init__(self, kind: DistributionType, params: Dict[str, float]):
        missing = [p for p in REQUIRED_PARAMS[kind] if params.get(p) is None]
        if missing:
            raise ConfigurationError(
                f"{kind.value} distribution is missing {', '.join(missing)}"
            )
        self.kind = kind
        self.params = {k: float(v) for k, v in params.items() if v is not None}

        if kind is DistributionType.NORMAL and self.params["stdev"] < 0:
            raise ConfigurationError(
                f"normal distribution has negative stdev {self.params['stdev']}"
            )
        if (
            kind is DistributionType.UNIFORM
            and self.params["lower"] > self.params["upper"]
        ):
            raise ConfigurationError(
                f"uniform distribution has lower {self.params['lower']} "
                f"above upper {self.params['upper']}"
            )

    @classmethod
    def fixed(cls, value: float) -> "Distribution":
        return cls(DistributionType.FIXED, {"value": value})

    @classmethod
    def from_config(
        cls, raw: Optional[Dict[str, Any]], field: str = "distribution"
    ) -> "Distribution":
        if not isinstance(raw, dict) or "type" not in raw:
            raise ConfigurationError(f"{field}: expected a distribution, got {raw!r}")
        try:
            kind = DistributionType(str(raw["type"]).lower())
        except ValueError:
            raise ConfigurationError(
                f"{field}: unknown distribution type '{raw['type']}'"
            ) from None

        params = {k: v for k, v in raw.items() if k != "type"}
        try:
            return cls(kind, params)
        except ConfigurationError as exc:
            raise ConfigurationError(f"{field}: {exc}") from None

    def sample(self, source: ValueSource) -> float:
        if self.kind is DistributionType.FIXED:
            return self.params["value"]
        if self.kind is DistributionType.NORMAL:
            return source.normal(self.params["mean"], self.params["stdev"])
        return source.uniform(self.params["lower"], self.params["upper"])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Distribution):
            return NotImplemented
        return self.kind is other.kind and self.params == other.params

    def __repr__(self) -> str:
        return f"Distribution({self.kind.value}, {self.params})"
