"""Generation core: providers, registries, services and the task manager."""
