"""
Epidemic Model Variants
=======================
Strategy objects describing which compartments a model uses and how fast
individuals move between them.  A model is chosen once at setup and the
driver only reads its fields.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from .disease_params import RateConstants
from .population import Compartment

StageRate = Callable[[RateConstants], float]


@dataclass(frozen=True)
class Progression:
    """Population-wide stage transition source -> target at rate(constants) per individual"""
    source: Compartment
    target: Compartment
    rate: StageRate


@dataclass(frozen=True)
class EpidemicModel:
    """
    One model variant

    Args:
        name: Registry key
        infection_target: Compartment a newly infected susceptible enters
        progressions: Global stage transitions, in rate-table order
    """
    name: str
    infection_target: Compartment
    progressions: Tuple[Progression, ...]
    symptom_onset: Compartment = Compartment.I1

    @property
    def compartments(self) -> Tuple[Compartment, ...]:
        used = {Compartment.S, self.infection_target}
        for p in self.progressions:
            used.update((p.source, p.target))
        return tuple(sorted(used))


def _stage(name: str, factor: float = 1.0) -> StageRate:
    def rate(constants: RateConstants) -> float:
        return factor * getattr(constants, name)
    rate.__name__ = f"{name}x{factor:g}"
    return rate


def _seeiir(name: str, factor: float) -> EpidemicModel:
    return EpidemicModel(
        name=name,
        infection_target=Compartment.E1,
        progressions=(
            Progression(Compartment.E1, Compartment.E2, _stage('sigma1', factor)),
            Progression(Compartment.E2, Compartment.I1, _stage('sigma2', factor)),
            Progression(Compartment.I1, Compartment.I2, _stage('gamma1', factor)),
            Progression(Compartment.I2, Compartment.R, _stage('gamma2', factor)),
        ),
    )


# Stage rates as configured
SEEIIR = _seeiir('seeiir', 1.0)

# Every stage twice as fast, so E1+E2 (I1+I2) keeps mean 1/sigma (1/gamma)
SEEIIR_ERLANG = _seeiir('seeiir-erlang', 2.0)

SIR = EpidemicModel(
    name='sir',
    infection_target=Compartment.I1,
    progressions=(
        Progression(Compartment.I1, Compartment.R, _stage('gamma1')),
    ),
)

MODELS: Dict[str, EpidemicModel] = {m.name: m for m in (SEEIIR, SEEIIR_ERLANG, SIR)}


def get_model(name: str) -> EpidemicModel:
    """Look up a model variant by name"""
    try:
        return MODELS[name]
    except KeyError:
        raise ValueError(f"Unknown model '{name}', choose from {sorted(MODELS)}") from None
