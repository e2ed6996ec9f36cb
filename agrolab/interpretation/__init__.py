from .rules import (  # noqa: F401
    Rule,
    applicable_rules,
    interpret,
    interpret_measurement,
    opposite_interpretation,
    rule_matches,
    soil_interpretations,
)
