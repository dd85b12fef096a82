"""Analytics services: period arithmetic, classification, derivation, fan-out and scoring."""
