"""paper-league: weekly paper-trading settlement and recompute engine."""
