"""HTTP blueprints for the strategy engine."""
