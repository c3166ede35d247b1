"""Work Exchange: order lifecycle and application arbitration engine."""

__version__ = "0.1.0"
