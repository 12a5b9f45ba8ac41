# Subpackages are imported directly, e.g.
# `from sdkshift.core.migration.coordinator import MigrationCoordinator`.
