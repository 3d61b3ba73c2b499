"""Exception hierarchy shared by the fitter, the pricers and the data feed."""


class VolTermStructureError(Exception):
    """Base class for all errors raised by this package."""


class InsufficientData(VolTermStructureError, ValueError):
    """Fewer observations than a fit requires."""

    def __init__(self, n_obs: int, required: int):
        self.n_obs = n_obs
        self.required = required
        super().__init__(
            f"need at least {required} observations to fit a term structure, got {n_obs}"
        )


class DegenerateFit(VolTermStructureError, ValueError):
    """No shape candidate produced a solvable least-squares system."""


class InvalidPricingInput(VolTermStructureError, ValueError):
    """Pricing inputs outside the domain of the Black-Scholes formulas."""


class DataFeedError(VolTermStructureError, RuntimeError):
    """Market data could not be retrieved or parsed."""
