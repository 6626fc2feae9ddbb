"""HTTP blueprints for the Fleet Deliveries app."""
