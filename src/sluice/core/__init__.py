"""Core subsystems: configuration, logging, the deployment store and registries."""
