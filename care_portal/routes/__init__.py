"""Flask blueprints for the care portal."""
