class ConfigurationError(Exception):
    """Invalid scenario, tax table or strategy input."""

    pass


class SimulationCorruptionError(Exception):
    """An accumulator or computed tax became NaN mid-trial."""

    pass
