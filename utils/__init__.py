# Shared utilities: configuration, sheet gateway, models and session state
